import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from http import HTTPStatus

from app.config import settings
from app.database import engine, Base, SessionLocal
from app.exceptions import LibraryError
from app.routes import auth, book, borrow, users, stream, mqtt
from app.services.availability import availability_notifier
from app.services.mqtt_service import mqtt_service
from app.utils.timezone import now_local
from app import bootstrap

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests and their outcome."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")

        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} - {response.status_code}")
        return response


def error_body(request: Request, status_code: int, message: str, code: str) -> dict:
    return {
        "error": HTTPStatus(status_code).phrase,
        "status": status_code,
        "message": message,
        "code": code,
        "path": request.url.path,
        "timestamp": now_local().isoformat(),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, seed accounts and start the MQTT bridge if enabled."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        bootstrap.run(db)
    finally:
        db.close()

    if settings.mqtt_enabled:
        logger.info("Starting MQTT availability bridge...")
        mqtt_service.connect()
        availability_notifier.add_sink(mqtt_service.publish_availability)

    yield

    if settings.mqtt_enabled:
        logger.info("Stopping MQTT availability bridge...")
        availability_notifier.remove_sink(mqtt_service.publish_availability)
        mqtt_service.disconnect()


app = FastAPI(
    title="Library Circulation API",
    description="Backend API for library book borrowing, returns and overdue reporting",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(LoggingMiddleware)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.message, exc.code),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = HTTPStatus(exc.status_code).name
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    logger.warning(f"{request.method} {request.url.path} validation failed: {problems}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, status.HTTP_400_BAD_REQUEST, problems, "VALIDATION_ERROR"),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "INTERNAL_ERROR",
        ),
    )


# Include routers
app.include_router(auth.router)
app.include_router(book.router)
app.include_router(users.router)
app.include_router(borrow.router)
app.include_router(stream.router)
app.include_router(mqtt.router)

@app.get("/")
async def root():
    return {"message": "Library Circulation API", "version": "1.0.0"}

@app.get("/api/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
