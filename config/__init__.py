"""
Configuration module for the staff claims backend.
"""

from .settings import firebase_config, app_config, smtp_config

__all__ = ['firebase_config', 'app_config', 'smtp_config']
