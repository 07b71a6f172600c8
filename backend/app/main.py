import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from backend.app.api.v1.router import api_router
from backend.app.config import get_settings
from backend.app.database import create_tables, drop_tables
from backend.app.logging_config import configure_logging

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)

    if settings.reset_database_on_startup:
        # WARNING: This will delete all data!
        logger.warning("Resetting database on startup")
        drop_tables()
    create_tables()

    logger.info("Envelope ledger started")
    yield
    logger.info("Envelope ledger shutting down")

app = FastAPI(
    title="Envelope Ledger API",
    description="Envelope budgeting ledger: income, allocations, spending and transfers",
    version="1.0.0",
    lifespan=lifespan
)

# Include all API routes
app.include_router(api_router, prefix="/api/v1")

@app.get("/health")
def health():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("backend.app.main:app", host="0.0.0.0", port=8000, reload=True)
