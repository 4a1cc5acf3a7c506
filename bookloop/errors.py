"""
Error taxonomy for the account, session and moderation operations.

Every error carries the HTTP status and stable code it is rendered with, so
service functions raise plain exceptions and the web layer stays thin.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

LOGIN_REDIRECT = '/login'


class BookLoopError(Exception):
    status_code: int = 400
    error_code: str = 'bad_request'

    def __init__(self, message: str, *, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class NotFound(BookLoopError):
    status_code = 404
    error_code = 'not_found'


class Forbidden(BookLoopError):
    status_code = 403
    error_code = 'forbidden'


class InvalidTransition(BookLoopError):
    """A lifecycle guard rejected the requested status change."""
    status_code = 400
    error_code = 'invalid_transition'


class Conflict(BookLoopError):
    status_code = 409
    error_code = 'conflict'


class ValidationError(BookLoopError):
    status_code = 400
    error_code = 'validation_error'

    def __init__(self, message: str, *, fields: Optional[dict] = None):
        super().__init__(message, detail={'fields': fields or {}})


class MissingToken(BookLoopError):
    """No credential was presented; the client should log in."""
    status_code = 403
    error_code = 'missing_token'

    def __init__(self, message: str = 'No token provided'):
        super().__init__(message, detail={'redirect': LOGIN_REDIRECT})


class InvalidToken(BookLoopError):
    """Credential not found, expired or invalidated. Never retried server-side."""
    status_code = 401
    error_code = 'invalid_token'

    def __init__(self, message: str = 'Token is invalid or expired'):
        super().__init__(message, detail={'redirect': LOGIN_REDIRECT})


class AuthenticationFailed(BookLoopError):
    status_code = 401
    error_code = 'unauthorized'


class TransactionFailure(BookLoopError):
    status_code = 500
    error_code = 'server_error'


def _error_response(status_code: int, code: str, message: str, detail: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={'error': {'code': code, 'message': message, 'detail': detail or {}}},
    )


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(BookLoopError)
    async def handle_bookloop_error(request: Request, exc: BookLoopError):
        if exc.status_code >= 500:
            # the cause stays in the log, the client gets a generic message
            logger.error({'msg': 'request_failed', 'path': request.url.path, 'error': repr(exc.__cause__ or exc)})
            return _error_response(exc.status_code, exc.error_code, 'Internal server error')
        logger.info({'msg': 'request_rejected', 'path': request.url.path, 'code': exc.error_code})
        return _error_response(exc.status_code, exc.error_code, exc.message, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        fields = {}
        for err in exc.errors():
            loc = [str(part) for part in err.get('loc', ()) if part not in ('body', 'query', 'path')]
            fields['.'.join(loc) or 'body'] = err.get('msg')
        return _error_response(400, ValidationError.error_code, 'Validation error', {'fields': fields})

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception({'msg': 'unhandled_error', 'path': request.url.path})
        return _error_response(500, 'server_error', 'Internal server error')
