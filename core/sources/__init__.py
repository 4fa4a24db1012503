"""
Paginated upstream sources
"""

from .base import BaseSource, Page

__all__ = [
    'BaseSource',
    'Page'
]
