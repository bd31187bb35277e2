from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from trendaware.api.routes import research, submissions, summary
from trendaware.config import settings
from trendaware.errors import RateLimited, TrendAwareError, ValidationError
from trendaware.services import logger as log_service
from trendaware.services.research_service import get_research_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log_service.log_event(
        event_type="startup",
        message="TrendAware API starting",
        research_enabled=settings.research_enabled,
        summary_mode=settings.summary_mode,
    )
    yield
    # Shutdown
    await get_research_service().aclose()


app = FastAPI(
    title="TrendAware",
    description="Personalized research summaries with optional web research",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TrendAwareError)
async def trendaware_error_handler(request: Request, exc: TrendAwareError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after is not None:
        headers = {"Retry-After": str(int(exc.retry_after))}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = ValidationError("Invalid request body", details=_error_details(exc))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def _error_details(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


# Routes
app.include_router(summary.router)
app.include_router(research.router)
app.include_router(submissions.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "trendaware"}
