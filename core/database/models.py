"""
Database models for persisted team health metrics.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Float, Text, Boolean, Index, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricRecord(Base):
    """One stored metric value; rows are appended, never updated."""
    __tablename__ = "metrics"

    id = Column(Integer, primary_key=True, index=True)
    metric_id = Column(String(255), nullable=False, index=True)
    category = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    value = Column(Float, nullable=False)
    unit = Column(String(50), nullable=False, default="")
    additional_info = Column(Text, nullable=True)
    source = Column(String(50), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index('idx_metrics_source_metric', 'source', 'metric_id'),
    )

    def __repr__(self):
        return f"<MetricRecord(id={self.id}, metric_id='{self.metric_id}', source='{self.source}')>"


class Repository(Base):
    """GitHub repository tracked by the dashboard."""
    __tablename__ = "repositories"

    id = Column(Integer, primary_key=True, index=True)
    owner = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    full_name = Column(String(511), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="active", index=True)  # see RepositoryStatus

    # Credentials are used to validate access and are not stored
    credentials_type = Column(String(20), nullable=True)  # token, oauth
    credentials_validated_at = Column(DateTime(timezone=True), nullable=True)

    # Metadata fetched from GitHub
    is_private = Column(Boolean, nullable=True)
    description = Column(Text, nullable=True)
    default_branch = Column(String(255), nullable=True)
    topics = Column(JSON, nullable=True)
    language = Column(String(100), nullable=True)

    # Sync settings
    sync_enabled = Column(Boolean, nullable=False, default=True)
    sync_interval = Column(Integer, nullable=True)  # minutes
    branch_patterns = Column(JSON, nullable=True)
    label_patterns = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_repositories_owner_name', 'owner', 'name'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "owner": self.owner,
            "name": self.name,
            "fullName": self.full_name,
            "status": self.status,
            "credentials": {
                "type": self.credentials_type,
                "lastValidated": _isoformat(self.credentials_validated_at),
            } if self.credentials_type else None,
            "metadata": {
                "isPrivate": self.is_private,
                "description": self.description,
                "defaultBranch": self.default_branch,
                "topics": self.topics or [],
                "language": self.language,
            },
            "settings": {
                "syncEnabled": self.sync_enabled,
                "syncInterval": self.sync_interval,
                "branchPatterns": self.branch_patterns or [],
                "labelPatterns": self.label_patterns or [],
            },
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
            "lastSyncAt": _isoformat(self.last_sync_at),
        }

    def __repr__(self):
        return f"<Repository(id={self.id}, full_name='{self.full_name}', status='{self.status}')>"


def _isoformat(value):
    return value.isoformat() if value is not None else None
