"""
Snappy Chat Backend - FastAPI Application

실시간 접속 상태(Presence)와 메시지 전달 상태를 WebSocket으로 처리하는 채팅 서버
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from snappy import api
from snappy.core.config import settings
from snappy.core.logging import setup_logging, get_logger
from snappy.database import init_databases, close_databases
from snappy.infrastructure.kafka import get_event_producer
from snappy.middleware.error_handler import ErrorHandlerMiddleware, create_http_exception_handler
from snappy.middleware.logging_middleware import LoggingMiddleware
from snappy.websockets import create_realtime

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    # Startup
    logger.info(f"{settings.app_name} starting up...")
    await init_databases()

    app.state.realtime = create_realtime()

    producer = get_event_producer()
    await producer.start()

    yield

    # Shutdown
    logger.info(f"{settings.app_name} shutting down...")
    await producer.stop()
    await close_databases()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    lifespan=lifespan
)

# Middleware (나중에 추가된 것이 바깥쪽)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(HTTPException, create_http_exception_handler())

# Include routers
api.include_routers(app, "api", api.__path__)

# Prometheus metrics
Instrumentator().instrument(app).expose(app)


@app.get("/")
async def root():
    return {
        "service": settings.app_name,
        "version": settings.version,
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "snappy.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
