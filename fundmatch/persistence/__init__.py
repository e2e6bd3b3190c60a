"""Persistence layer for opportunities, applicant profiles and matches.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - MatchRepository: matches with status-conditioned writes
    - OpportunityRepository: funding opportunities
    - ApplicantRepository: applicant profiles

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - StorageUnavailable: A read or write could not be completed
    - ConcurrentModification: The match changed since it was read
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from fundmatch.persistence import init_database, get_session, MatchRepository
    >>>
    >>> init_database("sqlite:///./data/fundmatch.db")
    >>>
    >>> with get_session() as session:
    ...     match = MatchRepository(session).get(12, 340)
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    ConcurrentModification,
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
    StorageUnavailable,
)
from .repositories import ApplicantRepository, MatchRepository, OpportunityRepository

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "MatchRepository",
    "OpportunityRepository",
    "ApplicantRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "StorageUnavailable",
    "ConcurrentModification",
    "RecordNotFoundError",
    "DataIntegrityError",
]
