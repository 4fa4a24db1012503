"""
Google Sheets integration for manually tracked team metrics
"""

from .client import GoogleSheetsClient, GoogleSheetsAPIError
from .source import GoogleSheetsSource

__all__ = [
    'GoogleSheetsClient',
    'GoogleSheetsAPIError',
    'GoogleSheetsSource'
]
