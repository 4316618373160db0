# backend/exceptions.py
"""Custom exceptions and handlers for the Institute Admin API."""
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class InstituteAPIException(HTTPException):
    """Base exception for the API."""
    def __init__(
        self,
        status_code: int,
        detail: Any,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class RecordNotFound(InstituteAPIException):
    """Raised when a course, admission or student id is unknown."""
    def __init__(self, kind: str, record_id: str):
        super().__init__(
            status_code=404,
            detail={
                "error": f"{kind.capitalize()} not found",
                "message": f"No {kind} with id: {record_id}",
            }
        )


class CourseNotFound(RecordNotFound):
    def __init__(self, course_id: str):
        super().__init__("course", course_id)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unexpected error: {exc!r} - Path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "type": type(exc).__name__}
    )
