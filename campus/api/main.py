from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from campus import __version__
from campus.core.config import get_settings
from campus.core.errors import RbacError
from campus.core.logger import configure_logging
from campus.core.rbac.cache import close_redis_client
from campus.api.deps import get_audit_recorder
from campus.api.routers import roles, permissions, user_roles

settings = get_settings()

logger = configure_logging(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} {__version__}")
    yield
    # Drain pending audit writes
    get_audit_recorder().shutdown(wait=True)
    get_audit_recorder.cache_clear()
    close_redis_client()


app = FastAPI(
    title=settings.app_name,
    description="Role-based access control for the Campus school management platform",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RbacError)
async def rbac_error_handler(request: Request, exc: RbacError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Include routers
app.include_router(roles.router, prefix="/api")
app.include_router(permissions.router, prefix="/api")
app.include_router(user_roles.router, prefix="/api")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
