import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from seoquota.config import get_settings
from seoquota.database import engine, Base, async_session
from seoquota.models import *
from seoquota.models.user import User
from seoquota.models.role import RoleAssignment, ROLE_ADMIN
from seoquota.services.auth import hash_password
from seoquota.services.quota import seed_plan_limits
from seoquota.routers import auth, users, quotas, billing, subscriptions

settings = get_settings()
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.SEED_PLAN_QUOTAS:
        async with async_session() as session:
            await seed_plan_limits(session)

    async with async_session() as session:
        result = await session.execute(select(User).where(User.email == settings.ADMIN_EMAIL))
        if not result.scalar_one_or_none():
            admin = User(
                email=settings.ADMIN_EMAIL,
                hashed_password=hash_password(settings.ADMIN_PASSWORD),
            )
            session.add(admin)
            await session.flush()
            session.add(RoleAssignment(user_id=admin.id, role=ROLE_ADMIN, is_active=True))
            await session.commit()
            logger.info(f"Created admin user {settings.ADMIN_EMAIL}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": "Invalid request", "code": "VALIDATION_ERROR", "errors": jsonable_errors(exc)}},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler ensuring unhandled exceptions return a proper JSON
    response that passes through the CORS middleware.
    """
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": {"error": "Internal server error", "code": "INTERNAL_ERROR"}},
    )


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(quotas.router)
app.include_router(billing.router)
app.include_router(subscriptions.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": settings.APP_VERSION}
