# clinicdesk api
# fastapi app in front of the clinic's php api: attendance marking, ledger, approvals

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinicdesk.config import settings
from clinicdesk.services.api_client import api
from clinicdesk.services.screens import screens
from clinicdesk.routers import attendance, ledger, approvals

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """startup: open the clinic api client. shutdown: stop pollers, close the client."""
    logger.info("Starting ClinicDesk...")
    await api.connect()
    logger.info("ClinicDesk ready")
    yield
    logger.info("Shutting down ClinicDesk...")
    await screens.close_all()
    await api.close()


app = FastAPI(
    title="ClinicDesk API",
    description="Reception and branch-admin workflows: session attendance, daily ledger, approval queue",
    version="0.1.0",
    lifespan=lifespan,
)

# cors — allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# register routers
app.include_router(attendance.router)
app.include_router(ledger.router)
app.include_router(approvals.router)


@app.get("/health")
async def health_check():
    """basic health check endpoint"""
    return {"status": "ok", "service": "clinicdesk"}


def run():
    """console entry point"""
    import uvicorn

    uvicorn.run("clinicdesk.main:app", host="0.0.0.0", port=8000)
