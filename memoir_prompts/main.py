import os, logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import HTTPException as FastAPIHTTPException, RequestValidationError
from fastapi.exception_handlers import (
    http_exception_handler as fastapi_http_exception_handler,
    request_validation_exception_handler as fastapi_validation_exception_handler,
)
from passlib.hash import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .database import init_db, async_session_maker
from .routers.prompts import router as prompts_router
from .users import fastapi_users, auth_backend
from .models import User
from .schemas import UserCreate, UserRead, UserUpdate
from .settings.config import settings

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Memoir Prompts")

# Enable CORS if needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------
# Route Includes
# ----------------------
app.include_router(prompts_router)

# Authentication Routes
app.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix="/auth/jwt",
    tags=["auth"]
)

app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"]
)

app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"]
)

# -----------------------------------------------------
# API errors are rendered as {"error": "..."}
# -----------------------------------------------------
@app.exception_handler(FastAPIHTTPException)
async def _api_error_handler(request: Request, exc: FastAPIHTTPException):
    path = request.url.path or "/"
    if path.startswith("/api"):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )
    return await fastapi_http_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def _api_validation_handler(request: Request, exc: RequestValidationError):
    if (request.url.path or "/").startswith("/api"):
        first = (exc.errors() or [{}])[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
        msg = first.get("msg") or "Invalid request"
        return JSONResponse(status_code=400, content={"error": f"{loc}: {msg}" if loc else msg})
    return await fastapi_validation_exception_handler(request, exc)


@app.exception_handler(SQLAlchemyError)
async def _storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

# ----------------------
# Auto-create admin user
# ----------------------
async def create_admin_user():
    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")
    admin_username = os.getenv("ADMIN_USERNAME", "admin")

    if not admin_email or not admin_password:
        logger.info("ADMIN_EMAIL or ADMIN_PASSWORD not set, skipping admin creation.")
        return

    async with async_session_maker() as session:
        result = await session.execute(select(User).where(User.email == admin_email))
        existing_admin = result.scalars().first()
        if not existing_admin:
            user = User(
                email=admin_email,
                hashed_password=bcrypt.hash(admin_password),
                username=admin_username,
                is_superuser=True,
                is_active=True,
            )
            session.add(user)
            await session.commit()
            logger.info("Admin user created: %s", admin_email)
        else:
            logger.info("Admin user already exists: %s", admin_email)


@app.on_event("startup")
async def on_startup():
    from . import models  # Required for SQLAlchemy model detection
    await init_db()
    await create_admin_user()
