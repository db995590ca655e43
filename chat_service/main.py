import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chat_service.database import DATABASE_BACKEND, close_db, init_db
from chat_service.dependencies import Repositories, close_d1_client, get_repositories
from chat_service.errors import ChatServiceError, PersistenceError, status_code_for
from chat_service.logging_config import setup_logging
from chat_service.routers.auth import router as auth_router
from chat_service.routers.bookmarks import router as bookmarks_router
from chat_service.routers.conversations import router as conversations_router
from chat_service.routers.messages import router as messages_router
from chat_service.routers.users import dev_router as dev_users_router
from chat_service.routers.users import router as users_router

# Load environment variables
load_dotenv()

# Environment variable parsing
ENV = os.getenv("ENV")
ENV_IS_PROD = ENV == "prod"
COMMIT_HASH = os.getenv("COMMIT_HASH")
if not COMMIT_HASH and ENV_IS_PROD:
    raise ValueError("COMMIT_HASH is required for production environments")

APP_ADDR = os.getenv("HOST", "0.0.0.0")
APP_PORT = int(os.getenv("PORT", "8000"))

INTERNAL_ERROR_MESSAGE = "Internal server error"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    # Startup
    setup_logging()
    logger.info("Starting chat service with %s storage backend", DATABASE_BACKEND)
    await init_db()
    yield
    # Shutdown
    await close_d1_client()
    await close_db()


app = FastAPI(
    title="Chat Service",
    description="Conversations, messages, reactions, read state and bookmarks",
    version=COMMIT_HASH or "dev",
    lifespan=lifespan,
)


def _error_body(message: str, code: str, details: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"message": message, "code": code}
    if details is not None:
        body["details"] = details
    return body


@app.exception_handler(ChatServiceError)
async def chat_service_error_handler(
    request: Request, exc: ChatServiceError
) -> JSONResponse:
    status_code = status_code_for(exc)
    if isinstance(exc, PersistenceError) or status_code >= 500:
        logger.error(
            "Storage failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500, content=_error_body(INTERNAL_ERROR_MESSAGE, exc.kind.upper())
        )
    return JSONResponse(
        status_code=status_code, content=_error_body(exc.message, exc.kind.upper())
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=_error_body("Invalid request", "VALIDATION_ERROR", details),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500, content=_error_body(INTERNAL_ERROR_MESSAGE, "INTERNAL_ERROR")
    )


# Include routers
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
if not ENV_IS_PROD:
    app.include_router(dev_users_router, prefix="/api/users", tags=["users"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(
    conversations_router, prefix="/api/conversations", tags=["conversations"]
)
app.include_router(messages_router, prefix="/api/messages", tags=["messages"])
app.include_router(bookmarks_router, prefix="/api/bookmarks", tags=["bookmarks"])


@app.get("/health")
async def health_check(
    repos: Repositories = Depends(get_repositories),
) -> Dict[str, Optional[str]]:
    """Health check endpoint with database connectivity."""
    try:
        db_status = "connected" if await repos.chat.ping() else "error"
    except Exception:
        logger.warning("Health check could not reach the database", exc_info=True)
        db_status = "disconnected"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
        "environment": ENV,
        "version": COMMIT_HASH,
    }


# If run directly, start the server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=APP_ADDR, port=APP_PORT)
