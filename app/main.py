from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.logging import configure_logging
from app.services.outbox_worker import start_outbox_worker_task
from app import models  # noqa: F401
from app.routers.auth import router as auth_router
from app.routers.crew_chief_permissions import router as crew_chief_permissions_router
from app.routers.outbox import router as outbox_router
from app.routers.shifts import router as shifts_router
from app.routers.timesheets import router as timesheets_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    task = start_outbox_worker_task()
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                # worker crash during shutdown; already logged.
                pass


app = FastAPI(
    title="Shift Timesheets",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception")
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(shifts_router)
app.include_router(timesheets_router)
app.include_router(crew_chief_permissions_router)
app.include_router(outbox_router)


@app.get("/")
def root():
    return {"status": "Shift Timesheets running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }
