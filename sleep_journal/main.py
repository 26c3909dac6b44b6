import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sleep_journal.config import (
    LOG_LEVEL,
    SIGNIN_MAX_ATTEMPTS,
    SIGNIN_WINDOW_SECONDS,
    STATIC_DIR,
    TEMPLATES_DIR,
)

# Configure logging to match uvicorn's format
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(levelname)s:     %(name)s - %(message)s",
)

from sleep_journal.analytics import generate_advanced_analytics
from sleep_journal.auth import get_current_user, router as auth_router
from sleep_journal.charts import DEFAULT_CHART_DAYS, prepare_chart_data
from sleep_journal.database import check_db_connection, get_db, init_db
from sleep_journal.journal import load_user_entries, router as entries_router
from sleep_journal.models import User
from sleep_journal.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

analytics_router = APIRouter(prefix="/analytics", tags=["analytics"])

# Pre-load dashboard HTML template
_dashboard_html: str = (TEMPLATES_DIR / "dashboard.html").read_text(encoding="utf-8")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    init_db()
    app.state.rate_limiter = RateLimiter(SIGNIN_MAX_ATTEMPTS, SIGNIN_WINDOW_SECONDS)
    logger.info("Sleep Journal API started")
    yield


app = FastAPI(
    title="Sleep Journal API",
    description="""
## Sleep Journal API

Keep a nightly sleep journal and get feedback on it.

### Features
- **Journal**: One rated entry per night, with optional bedtime, wake time and comments
- **Analytics**: Statistics, trends, day-of-week patterns, streaks and recommendations
- **Charts**: Daily ratings with a 7-day moving average
- **Export**: Download entries as CSV

### Authentication
Register at `/auth/register` or sign in at `/auth/signin`; the session is kept in a cookie.
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    openapi_url="/openapi.json",  # OpenAPI schema
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report invalid input as 400 with the first readable message."""
    errors = exc.errors()
    message = errors[0]["msg"].removeprefix("Value error, ") if errors else "Entrada inválida"
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"Datos inválidos: {message}",
            "errors": [
                {"field": ".".join(str(part) for part in error["loc"][1:]), "message": error["msg"]}
                for error in errors
            ],
        },
    )


@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "message": "Sleep Journal API",
        "database": "ok" if check_db_connection() else "unavailable",
    }


@analytics_router.get("")
def advanced_analytics(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get the full analytics aggregate for the signed-in user.

    Returns overview statistics, the 14-day trend, day-of-week pattern,
    recommendations, streaks and week/month period comparison.
    """
    try:
        entries = load_user_entries(db, user)
        return generate_advanced_analytics(entries).to_dict()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load entries for analytics (user {user.id}): {e}")
        raise HTTPException(status_code=500, detail="Error al calcular las estadísticas")


@analytics_router.get("/chart")
def chart_data(
    days: int = Query(DEFAULT_CHART_DAYS, ge=1, le=365, description="Number of days to plot, ending today"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get daily ratings for the last `days` days plus a 7-day moving average.

    Days without an entry are null.
    """
    try:
        entries = load_user_entries(db, user)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load entries for chart (user {user.id}): {e}")
        raise HTTPException(status_code=500, detail="Error al cargar los datos del gráfico")

    chart = prepare_chart_data(entries, days=days)
    return {
        "labels": chart.labels,
        "data": chart.data,
        "moving_average": chart.moving_average,
    }


@app.get("/", response_class=HTMLResponse)
def dashboard():
    """
    Display the journal dashboard.
    """
    return HTMLResponse(content=_dashboard_html)


@app.get("/manifest.json", include_in_schema=False)
def manifest():
    return FileResponse(STATIC_DIR / "manifest.json", media_type="application/manifest+json")


@app.get("/sw.js", include_in_schema=False)
def service_worker():
    return FileResponse(STATIC_DIR / "sw.js", media_type="application/javascript")


app.include_router(auth_router)
app.include_router(entries_router)
app.include_router(analytics_router)
