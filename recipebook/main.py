from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from recipebook.core.config import settings
from recipebook.api.deps import close_recipebook_client, get_recipebook_client
from recipebook.api.router import api_router
from recipebook.services.async_error_handler import AsyncErrorHandler, RecipeBookError

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description=settings.PROJECT_DESCRIPTION,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    redirect_slashes=False,  # Prevent automatic trailing slash redirects that cause HTTPS->HTTP issues
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.exception_handler(RecipeBookError)
async def recipebook_error_handler(request: Request, exc: RecipeBookError):
    """Map data access errors to HTTP responses."""
    code = getattr(exc, "code", None)
    return JSONResponse(
        status_code=AsyncErrorHandler.http_status(exc),
        content=jsonable_encoder({
            "detail": exc.message,
            "code": code.value if code else None,
            "meta": exc.meta,
        }),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"detail": exc.errors()}),
    )


@app.on_event("startup")
async def startup_event():
    """Connect the data access client on application startup."""
    try:
        logger.info("Starting up RecipeBook API...")
        await get_recipebook_client().connect()
        logger.info("RecipeBook API startup completed successfully")
    except Exception as e:
        logger.error(f"Failed to start up application: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up services on application shutdown."""
    try:
        logger.info("Shutting down RecipeBook API...")
        await close_recipebook_client()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application shutdown: {e}")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Welcome to RecipeBook API"}
