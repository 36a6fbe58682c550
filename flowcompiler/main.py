"""FastAPI application entry point."""
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowcompiler import __version__
from flowcompiler.api import compile
from flowcompiler.compiler.registry import get_registry
from flowcompiler.config import get_settings

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Compiles visual flow graphs into LangChain source code",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(compile.router, prefix="/api", tags=["compilation"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "converters": len(get_registry().registered_types()),
    }


@app.on_event("startup")
async def startup_event():
    """Application startup handler."""
    registry = get_registry()
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        debug=settings.debug,
        converters=len(registry.registered_types()),
        default_target_language=settings.default_target_language,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown handler."""
    logger.info("application_shutdown")
