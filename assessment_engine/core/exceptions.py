"""
Custom Exceptions - Assessment Engine
assessment_engine/core/exceptions.py

Repository exceptions plus the domain error taxonomy surfaced to callers.
"""

from typing import Any, Dict, List, Optional


class RepositoryException(Exception):
    """Base exception for repository operations."""

    pass


class DuplicateEntityException(RepositoryException):
    """Duplicate entity violation."""

    def __init__(self, message: str = "Entity already exists"):
        self.message = message
        super().__init__(message)


class DatabaseConnectionException(RepositoryException):
    """Database connection failure."""

    def __init__(self, message: str = "Database connection failed"):
        self.message = message
        super().__init__(message)


# =============================================================================
# DOMAIN ERRORS
# =============================================================================


class AssessmentEngineError(Exception):
    """Base class for errors surfaced to callers of the engine."""

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class AnswerValidationError(AssessmentEngineError):
    """Answer failed the question's rules. The session is left unchanged."""

    status_code = 422
    error_code = "VALIDATION_ERROR"

    def __init__(self, question_id: str, errors: List[str]):
        self.question_id = question_id
        self.errors = errors
        super().__init__(
            "; ".join(errors),
            details={"question_id": question_id, "errors": errors},
        )


class NotFoundError(AssessmentEngineError):
    """Unknown session, graph, subject or episode."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class ConflictError(AssessmentEngineError):
    """Mutation not allowed in the current state. Do not retry it as-is."""

    status_code = 409
    error_code = "CONFLICT"


class OptimisticLockError(AssessmentEngineError):
    """Row changed between read and conditional write. Safe to retry."""

    status_code = 409
    error_code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently, retry the request",
            details={"entity_type": entity_type, "entity_id": entity_id, "retryable": True},
        )


class ExternalServiceError(AssessmentEngineError):
    """Text-generation collaborator failed after retries."""

    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message, details={"upstream_status": status} if status else None)


class GenerationCancelledError(ExternalServiceError):
    """Generation call was cancelled by the caller. Never retried."""

    def __init__(self, message: str = "Generation request cancelled"):
        super().__init__(message)


class GraphDefinitionError(AssessmentEngineError):
    """Malformed navigation graph rejected at publish time."""

    status_code = 422
    error_code = "INVALID_GRAPH"

    def __init__(self, graph_id: str, problems: List[str]):
        self.graph_id = graph_id
        self.problems = problems
        super().__init__(
            f"Navigation graph {graph_id} is invalid: " + "; ".join(problems),
            details={"graph_id": graph_id, "problems": problems},
        )
