import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger("readmegen.errors")

STATUS_TO_CODE = {
    400: 'BAD_REQUEST',
    401: 'UNAUTHORIZED',
    403: 'FORBIDDEN',
    404: 'NOT_FOUND',
    409: 'CONFLICT',
    422: 'VALIDATION_ERROR',
    429: 'RATE_LIMITED',
    500: 'INTERNAL_ERROR',
    502: 'UPSTREAM_ERROR',
    503: 'SERVICE_UNAVAILABLE',
}


class ServiceError(Exception):
    """Failure raised by a service and rendered by the error envelope handler.

    ``message`` is shown to clients as-is, so it must never carry provider
    tokens, signing keys or raw upstream payloads.
    """

    status_code: int = 500
    default_message: str = 'Unexpected server error'

    def __init__(self, message: str | None = None, details: dict | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return STATUS_TO_CODE.get(self.status_code, 'HTTP_ERROR')


class UnauthenticatedError(ServiceError):
    status_code = 401
    default_message = 'Not authorized, no session'


class InvalidSessionError(ServiceError):
    status_code = 401
    default_message = 'Not authorized, session invalid'


class UserNotFoundError(ServiceError):
    status_code = 401
    default_message = 'User not found'


class OAuthStateError(ServiceError):
    status_code = 400
    default_message = 'Invalid OAuth state'


class UpstreamAuthError(ServiceError):
    status_code = 502
    default_message = 'GitHub authentication failed'


class UpstreamRepoError(ServiceError):
    status_code = 502
    default_message = 'Failed to fetch repository data from GitHub'


class InvalidRepositoryNameError(ServiceError):
    status_code = 400
    default_message = 'Repository name must be in owner/name format'


class PersistenceError(ServiceError):
    status_code = 500
    default_message = 'Failed to store user record'


class CompletionError(ServiceError):
    """Base class for failures of the completion backend."""


class RateLimitedError(CompletionError):
    status_code = 429
    default_message = 'Rate limit exceeded. Please try again in a few minutes.'


class InvalidCredentialsError(CompletionError):
    status_code = 503
    default_message = 'AI service is not configured correctly. Please contact the maintainers.'


class GenerationFailedError(CompletionError):
    status_code = 502
    default_message = 'Failed to generate README from AI. Please try again.'


class RefinementFailedError(CompletionError):
    status_code = 502
    default_message = 'Failed to refine README from AI. Please try again.'


def _error_body(code: str, message: str, details: dict | list | None = None) -> dict:
    return {
        'error': {
            'code': code,
            'message': message,
            'details': details or {},
        }
    }


def install_exception_handlers(app) -> None:
    @app.exception_handler(ServiceError)
    async def service_exception_handler(_request: Request, exc: ServiceError):
        if isinstance(exc, InvalidCredentialsError):
            logger.error("completion backend rejected the configured API key")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=_error_body('VALIDATION_ERROR', 'Request validation failed', {'errors': exc.errors()}),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_request: Request, exc: HTTPException):
        code = STATUS_TO_CODE.get(exc.status_code, 'HTTP_ERROR')

        if isinstance(exc.detail, dict):
            provided_code = exc.detail.get('code')
            message = exc.detail.get('message', 'Request failed')
            details = exc.detail.get('details', {})
            return JSONResponse(
                status_code=exc.status_code,
                content=_error_body(provided_code or code, message, details),
            )

        message = str(exc.detail) if exc.detail else 'Request failed'
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(code, message),
        )

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(_request: Request, exc: StarletteHTTPException):
        code = STATUS_TO_CODE.get(exc.status_code, 'HTTP_ERROR')
        message = str(exc.detail) if exc.detail else 'Request failed'
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(code, message),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception):
        logger.exception("unhandled error: %s", type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content=_error_body('INTERNAL_ERROR', 'Unexpected server error'),
        )
