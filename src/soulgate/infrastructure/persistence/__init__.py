"""Persistence layer: database session management, ORM models and repositories."""

from soulgate.infrastructure.persistence.database import Database
from soulgate.infrastructure.persistence.repositories import SqlAlchemyWhitelistStorage

__all__ = ["Database", "SqlAlchemyWhitelistStorage"]
