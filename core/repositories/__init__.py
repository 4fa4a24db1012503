"""
Tracked GitHub repositories
"""

from .service import RepositoryManagementService, RepositoryStatus

__all__ = [
    'RepositoryManagementService',
    'RepositoryStatus'
]
