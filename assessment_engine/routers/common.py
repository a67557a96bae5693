"""
Shared Router Helpers - Assessment Engine
assessment_engine/routers/common.py

Exception handlers producing the ErrorResponse envelope, plus the OpenAPI
error examples reused by every router.

Register in main.py:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AssessmentEngineError, engine_exception_handler)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assessment_engine.core.exceptions import AssessmentEngineError
from assessment_engine.models.common import ErrorResponse

logger = logging.getLogger(__name__)


#  Custom Exception Handlers

FIELD_MESSAGES = {
    "graph_id": {
        "missing": "Graph ID is required",
        "string_too_short": "Graph ID must not be empty",
    },
    "question_id": {
        "missing": "Question ID is required",
        "string_too_short": "Question ID must not be empty",
    },
    "session_id": {
        "uuid_parsing": "Session ID must be a valid UUID format",
        "uuid_type": "Session ID must be a valid UUID",
    },
    "occasion_id": {
        "missing": "Occasion ID is required",
        "string_too_long": "Occasion ID must not exceed 100 characters",
    },
    "subject_id": {
        "missing": "Subject ID is required",
        "string_too_long": "Subject ID must not exceed 100 characters",
    },
    "threshold_hours": {
        "greater_than": "Threshold must be greater than 0 hours",
    },
}

DEFAULT_MESSAGES = {
    "missing": "Field '{field}' is required",
    "string_too_short": "Field '{field}' is too short",
    "string_too_long": "Field '{field}' is too long",
    "less_than_equal": "Field '{field}' exceeds maximum allowed value",
    "greater_than_equal": "Field '{field}' is below minimum allowed value",
    "greater_than": "Field '{field}' is below minimum allowed value",
    "uuid_parsing": "Field '{field}' must be a valid UUID",
    "uuid_type": "Field '{field}' must be a valid UUID",
    "string_type": "Field '{field}' must be a string",
    "int_type": "Field '{field}' must be an integer",
    "int_parsing": "Field '{field}' must be a valid integer",
    "enum": "Field '{field}' has an invalid value",
    "union_tag_invalid": "Field '{field}' has an unknown question type",
    "json_invalid": "Malformed JSON request body",
    "extra_forbidden": "Unknown field '{field}' is not allowed",
}


def get_validation_message(field: str, error_type: str) -> str:
    leaf = field.split(".")[-1] if field else field
    if leaf in FIELD_MESSAGES:
        field_msgs = FIELD_MESSAGES[leaf]
        for key in field_msgs:
            if key in error_type:
                return field_msgs[key]

    for key, template in DEFAULT_MESSAGES.items():
        if key in error_type:
            return template.format(field=field)

    return f"Invalid value for field '{field}'"


def error_body(error_code: str, message: str, details: Any = None) -> Dict[str, Any]:
    return ErrorResponse(
        error_code=error_code,
        message=message,
        details=details,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    if not errors:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body("VALIDATION_ERROR", "Request validation failed"),
        )

    err = errors[0]
    error_type = err.get("type", "")
    loc = err.get("loc", [])

    if "json_invalid" in error_type:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("INVALID_REQUEST", "Malformed JSON request body"),
        )

    field = ".".join(str(l) for l in loc if l not in ("body", "path", "query"))
    message = get_validation_message(field, error_type)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(
            "VALIDATION_ERROR",
            message,
            {"field": field, "type": error_type} if field else None,
        ),
    )


async def engine_exception_handler(request: Request, exc: AssessmentEngineError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, exc.message, exc.details),
    )


#  OpenAPI error examples

_EXAMPLES = {
    400: ("Invalid request", "INVALID_REQUEST", "Malformed JSON request body", None),
    404: ("Not found", "NOT_FOUND", "Session with ID 3fa85f64-5717-4562-b3fc-2c963f66afa6 not found",
          {"entity_type": "Session", "entity_id": "3fa85f64-5717-4562-b3fc-2c963f66afa6"}),
    409: ("Conflict", "CONFLICT", "Question q2 is not the current question",
          {"expected": "q3", "received": "q2"}),
    422: ("Validation error", "VALIDATION_ERROR", "Rating must be between 1 and 5",
          {"question_id": "q1", "errors": ["Rating must be between 1 and 5"]}),
    500: ("Internal server error", "INTERNAL_SERVER_ERROR", "Unexpected server error", None),
    502: ("Text generation failed", "EXTERNAL_SERVICE_ERROR", "Text generation failed with HTTP 503",
          {"upstream_status": 503}),
}


def error_responses(*codes: int) -> Dict[int, Dict[str, Any]]:
    responses: Dict[int, Dict[str, Any]] = {}
    for code in codes:
        description, error_code, message, details = _EXAMPLES[code]
        responses[code] = {
            "model": ErrorResponse,
            "description": description,
            "content": {
                "application/json": {
                    "example": {
                        "error_code": error_code,
                        "message": message,
                        "details": details,
                        "timestamp": "2026-01-28T12:00:00Z",
                    }
                }
            },
        }
    return responses
