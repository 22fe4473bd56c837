"""
Utility modules for the claims backend.
"""

from .logger import setup_logger, get_logger, AuditLogger

__all__ = ['setup_logger', 'get_logger', 'AuditLogger']
