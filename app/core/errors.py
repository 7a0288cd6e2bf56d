"""Erreurs métier et leur traduction en réponses HTTP"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal server error"


class TaskError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskError):
    """Entrée absente ou invalide (400)"""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(TaskError):
    """Aucune tâche / pièce jointe correspondante (404)"""
    status_code = status.HTTP_404_NOT_FOUND


class StorageError(TaskError):
    """Lecture, écriture ou suppression d'une pièce jointe en échec (500)"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def task_error_handler(request: Request, exc: TaskError):
    if isinstance(exc, StorageError):
        # le détail reste côté serveur
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc.message)
        return error_response(exc.status_code, "Attachment storage error")
    return error_response(exc.status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request body", details=details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return error_response(exc.status_code, "Route not found")
    return error_response(exc.status_code, str(exc.detail))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_ERROR)


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(TaskError, task_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, unhandled_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
