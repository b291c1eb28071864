import traceback
from typing import Callable
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import IntegrityError, OperationalError, DatabaseError
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError, OperationFailure

from snappy.core.errors import (
    BaseCustomException,
    PersistenceError,
    ValidationError,
    create_error_response,
    create_validation_error_response
)
from snappy.core.config import settings
from snappy.core.logging import get_logger

logger = get_logger(__name__)


def _json(error_response) -> JSONResponse:
    return JSONResponse(
        status_code=error_response.status_code,
        content=error_response.model_dump()
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    통합 에러 처리 미들웨어

    라우터에서 처리되지 않은 예외를 표준화된 에러 응답으로 변환합니다.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except BaseCustomException as e:
            return JSONResponse(
                status_code=e.status_code,
                content=e.to_dict()
            )

        except PydanticValidationError as e:
            # 응답 모델 등 내부 검증 실패
            validation_errors = [
                ValidationError(
                    field=".".join(str(loc) for loc in error["loc"]),
                    message=error["msg"],
                    value=error.get("input")
                )
                for error in e.errors()
            ]

            error_response = create_validation_error_response(
                "Request validation failed",
                validation_errors
            )

            return JSONResponse(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                content=error_response.model_dump(mode="json")
            )

        except PersistenceError as e:
            logger.error(f"Persistence error: {e}")
            return _json(create_error_response(
                "persistence_error",
                "Storage operation failed",
                status.HTTP_503_SERVICE_UNAVAILABLE,
                {"operation": e.operation}
            ))

        except IntegrityError as e:
            error_detail = str(e.orig) if hasattr(e, 'orig') else str(e)
            return _json(create_error_response(
                "database_constraint",
                "Database constraint violation",
                status.HTTP_409_CONFLICT if "Duplicate entry" in error_detail else status.HTTP_400_BAD_REQUEST,
                {"detail": error_detail if settings.debug else None}
            ))

        except (OperationalError, DatabaseError) as e:
            # MySQL 데이터베이스 연결/작업 에러
            logger.error(f"Database error: {type(e).__name__}: {e}")
            error_detail = str(e.orig) if hasattr(e, 'orig') else str(e)
            return _json(create_error_response(
                "database_error",
                "Database connection or operation failed",
                status.HTTP_503_SERVICE_UNAVAILABLE,
                {"detail": error_detail if settings.debug else None}
            ))

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"MongoDB connection error: {type(e).__name__}: {e}")
            return _json(create_error_response(
                "mongodb_connection_error",
                "MongoDB connection failed",
                status.HTTP_503_SERVICE_UNAVAILABLE,
                {"detail": str(e) if settings.debug else None}
            ))

        except OperationFailure as e:
            logger.error(f"MongoDB operation error: {e}")
            return _json(create_error_response(
                "mongodb_operation_error",
                "MongoDB operation failed",
                status.HTTP_400_BAD_REQUEST,
                {"detail": str(e) if settings.debug else None}
            ))

        except Exception as e:
            # 예상하지 못한 모든 에러들
            error_detail = None
            if settings.debug:
                error_detail = {
                    "exception": str(e),
                    "type": type(e).__name__,
                    "traceback": traceback.format_exc()
                }

            logger.error(f"Unhandled exception: {type(e).__name__}: {e}", exc_info=True)

            return _json(create_error_response(
                "internal_server_error",
                "An unexpected error occurred",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                error_detail
            ))


def create_http_exception_handler():
    """FastAPI HTTPException 핸들러 생성"""
    async def http_exception_handler(request: Request, exc):
        """HTTPException을 표준 형식으로 변환"""

        # 커스텀 예외는 그대로 반환
        if isinstance(exc, BaseCustomException):
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_dict()
            )

        error_response = create_error_response(
            "http_error",
            exc.detail if isinstance(exc.detail, str) else "HTTP error occurred",
            exc.status_code,
            {"detail": exc.detail} if not isinstance(exc.detail, str) else None
        )

        return _json(error_response)

    return http_exception_handler
