"""
Claims Backend.

Claims-based authorization and employee directory for the vacation rental
marketplace, backed by Firebase Authentication custom claims.
"""

__version__ = "1.0.0"
__author__ = "Vacation Rental Platform Team"
__description__ = "Claims-based authorization and employee directory backend"
