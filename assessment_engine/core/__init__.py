"""
Core Package - Assessment Engine
assessment_engine/core/__init__.py

Core infrastructure: exceptions, logging.
"""

from assessment_engine.core.exceptions import (
    AnswerValidationError,
    AssessmentEngineError,
    ConflictError,
    DatabaseConnectionException,
    DuplicateEntityException,
    ExternalServiceError,
    GenerationCancelledError,
    GraphDefinitionError,
    NotFoundError,
    OptimisticLockError,
    RepositoryException,
)
from assessment_engine.core.logging import configure_logging

__all__ = [
    # Domain errors
    "AnswerValidationError",
    "AssessmentEngineError",
    "ConflictError",
    "ExternalServiceError",
    "GenerationCancelledError",
    "GraphDefinitionError",
    "NotFoundError",
    "OptimisticLockError",
    # Repository exceptions
    "DatabaseConnectionException",
    "DuplicateEntityException",
    "RepositoryException",
    # Logging
    "configure_logging",
]
