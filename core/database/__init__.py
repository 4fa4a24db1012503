"""
Database module for persisted metrics and tracked repositories.
"""

from .database import DatabaseManager
from .models import Base, MetricRecord, Repository
from .repository import MetricRepository

__all__ = [
    "DatabaseManager",
    "Base",
    "MetricRecord",
    "Repository",
    "MetricRepository"
]
