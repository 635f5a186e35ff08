"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, close_redis
from .sql_stores import SqlBookingStore, SqlEventStore, SqlUnitOfWork

__all__ = ["get_redis", "close_redis", "SqlBookingStore", "SqlEventStore", "SqlUnitOfWork"]
