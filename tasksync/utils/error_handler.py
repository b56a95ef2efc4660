"""
Error handling utilities
"""

import json
from typing import Optional
import httpx
from tasksync.models.response import ErrorResponse, ErrorType
from tasksync.utils.logger import logger


class TaskSyncError(Exception):
    """Base exception for task sync errors"""
    pass


class AuthenticationError(TaskSyncError):
    """No valid session for the remote service"""
    pass


class APIError(TaskSyncError):
    """API error exception"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(TaskSyncError):
    """Validation error exception"""
    pass


class StaleTaskError(TaskSyncError):
    """Update was based on an outdated task version"""
    pass


class OperationStateError(TaskSyncError):
    """Illegal operation status transition"""
    pass


def _server_message(response: httpx.Response) -> Optional[str]:
    """Extract a message from an error response body, if it has one"""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, str) and message:
            return message
    return None


def describe_error(error: Exception) -> str:
    """
    Convert an exception into the message surfaced in results
    
    Args:
        error: Exception raised while talking to the remote service
        
    Returns:
        Human-readable error message
    """
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        message = f"Motion API error: {response.status_code} {response.reason_phrase}".rstrip()
        detail = _server_message(response)
        if detail:
            message = f"{message} - {detail}"
        return message
    
    if isinstance(error, httpx.RequestError):
        return f"Motion API network error: {error}"
    
    if isinstance(error, json.JSONDecodeError):
        return "Malformed response from Motion API"
    
    if isinstance(error, APIError):
        return error.message
    
    return str(error) or error.__class__.__name__


def classify_error(error: Exception) -> ErrorType:
    """Map an exception to the result error type"""
    if isinstance(error, AuthenticationError):
        return ErrorType.AUTHENTICATION
    if isinstance(error, ValidationError):
        return ErrorType.VALIDATION
    if isinstance(error, StaleTaskError):
        return ErrorType.CONFLICT
    return ErrorType.NETWORK


def handle_error(error: Exception) -> ErrorResponse:
    """
    Handle error and return user-friendly message
    
    Args:
        error: Exception to handle
        
    Returns:
        ErrorResponse with user-friendly message
    """
    logger.error(f"Error occurred: {error}", exc_info=True)
    
    if isinstance(error, AuthenticationError):
        return ErrorResponse(
            message=f"Authentication error: {error}",
            error_type=ErrorType.AUTHENTICATION,
        )
    
    if isinstance(error, (APIError, httpx.HTTPError)):
        return ErrorResponse(
            message=describe_error(error),
            error_type=ErrorType.NETWORK,
            status_code=getattr(error, "status_code", None),
        )
    
    if isinstance(error, ValidationError):
        return ErrorResponse(
            message=f"Validation error: {error}",
            error_type=ErrorType.VALIDATION,
        )
    
    if isinstance(error, ValueError):
        return ErrorResponse(
            message=f"Configuration error: {error}",
            error_type=ErrorType.VALIDATION,
        )
    
    # Generic error message
    return ErrorResponse(
        message="Something went wrong. Please try again later.",
    )


def format_error_message(error: Exception) -> str:
    """
    Format error message for user
    
    Args:
        error: Exception to format
        
    Returns:
        User-friendly error message
    """
    error_response = handle_error(error)
    return error_response.message
