import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from badman.database import init_db
from badman.routes import carts, enrollments, players, sub_events, sync, tournaments

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

APP_NAME = "Badman Tournament Enrollment API"

app = FastAPI(title=APP_NAME)


def cors_origins():
    """Local frontend plus any comma-separated CORS_ORIGINS."""
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    origins += [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(sub_events.router, prefix="/api", tags=["sub-events"])
app.include_router(players.router, prefix="/api", tags=["players"])
app.include_router(enrollments.router, prefix="/api", tags=["enrollments"])
app.include_router(carts.router, prefix="/api", tags=["carts"])

# Vendor sync (enqueues Celery jobs)
app.include_router(sync.router, prefix="/api", tags=["sync"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info(f"{APP_NAME} started with {len(app.routes)} routes")


@app.get("/api/health")
def health_check():
    return {"app_name": APP_NAME, "status": "healthy"}
