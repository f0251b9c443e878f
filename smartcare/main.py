import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smartcare.config import get_settings
from smartcare.core.logging import setup_logging
from smartcare.database import create_tables
from smartcare.dependencies import get_dispatcher
from smartcare.routers import appointments, doctors, notifications, health

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)


@app.on_event("startup")
def on_startup():
    setup_logging()
    create_tables()
    logger.info(f"{settings.app_name} started ({settings.environment})")


@app.on_event("shutdown")
async def on_shutdown():
    # Let in-flight notification fan-out finish before the loop closes
    await get_dispatcher().drain()


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(appointments.router, prefix="/api/v1")
app.include_router(doctors.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


if __name__ == "__main__":
    uvicorn.run("smartcare.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
