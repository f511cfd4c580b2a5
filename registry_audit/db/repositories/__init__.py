"""Repository package for database access."""

from .feature_records import SqliteFeatureRecordRepository

__all__ = [
    "SqliteFeatureRecordRepository",
]
