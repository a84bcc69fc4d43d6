"""Biometric identity verification for bank transactions"""

__version__ = "1.0.0"
