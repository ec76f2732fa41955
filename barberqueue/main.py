# barberqueue/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import create_db_and_tables
from .errors import (
    BarberUnavailable,
    DataAccessError,
    NotFound,
    OverlapError,
    SlotConflict,
    ValidationError,
)
from .routers.appointments_routes import router as appointments_router
from .routers.barbers_routes import router as barbers_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Creating database tables")
    create_db_and_tables()
    yield


app = FastAPI(title="Barber Queue API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": exc.message})


@app.exception_handler(OverlapError)
async def overlap_handler(request: Request, exc: OverlapError):
    content = {"detail": exc.message}
    if exc.conflicting is not None:
        content["conflicting_day_off"] = exc.conflicting.model_dump(mode="json")
    return JSONResponse(status_code=409, content=content)


@app.exception_handler(SlotConflict)
async def slot_conflict_handler(request: Request, exc: SlotConflict):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(BarberUnavailable)
async def barber_unavailable_handler(request: Request, exc: BarberUnavailable):
    content = {"detail": exc.message}
    if exc.verdict is not None:
        content["availability"] = exc.verdict.model_dump(mode="json")
    return JSONResponse(status_code=409, content=content)


@app.exception_handler(DataAccessError)
async def data_access_handler(request: Request, exc: DataAccessError):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=503, content={"detail": exc.message})


@app.get("/health")
def health_check():
    return {"status": "ok"}


app.include_router(barbers_router)
app.include_router(appointments_router)
