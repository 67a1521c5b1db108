"""
Database Package for the Nonprofit Vetting Engine

This package provides:
- SQLAlchemy ORM model for persisted vetting verdicts
- Repository pattern for data access
- Retry logic for transient connection failures
"""

from database.models import (
    Base,
    VettingResultRecord,
)
from database.connection import (
    DatabaseSessionProvider,
    DatabaseSettings,
    create_retry_decorator,
    db_retry,
    create_test_provider,
)
from database.repositories import (
    RepositoryError,
    EntityNotFoundError,
    VettingResultRepository,
)

__all__ = [
    # Models
    "Base",
    "VettingResultRecord",
    # Connection
    "DatabaseSessionProvider",
    "DatabaseSettings",
    "create_retry_decorator",
    "db_retry",
    "create_test_provider",
    # Repositories
    "RepositoryError",
    "EntityNotFoundError",
    "VettingResultRepository",
]
