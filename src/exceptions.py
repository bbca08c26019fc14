"""Domain errors raised by services and their mapping to HTTP responses."""

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class DomainError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class UnauthorizedError(DomainError):
    def __init__(self, message: str = "Non autorisé"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(DomainError):
    def __init__(self, message: str = "Accès refusé"):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_409_CONFLICT)


class InvalidStateError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class TooLateError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ValidationError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.warning(f'{request.method} {request.url.path} -> {exc.status_code}: {exc.message}')
    headers = {'WWW-Authenticate': 'Bearer'} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.message}, headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f'Validation error on {request.url.path}: {exc.errors()}')
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'detail': 'Données invalides', 'errors': jsonable_errors(exc)},
    )


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f'Unhandled exception on {request.url.path}: {exc}')
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'detail': 'Erreur interne du serveur'},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {'loc': list(error.get('loc', ())), 'msg': error.get('msg', '')}
        for error in exc.errors()
    ]


EXCEPTION_HANDLERS = {
    DomainError: domain_error_handler,
    RequestValidationError: validation_error_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app):
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
