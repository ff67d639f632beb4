import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from core.errors import (
    DistributionError,
    InvalidInput,
    InvalidRange,
    InvalidState,
    NotFound,
    ReconciliationFailed,
    TransactionConflict,
)
from core.logging_config import configure_logging
from db.database import create_db_and_tables
from routers.distributions import router as distributions_router
from routers.inventory import router as inventory_router
from routers.recipes import router as recipes_router

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (InvalidInput, status.HTTP_400_BAD_REQUEST),
    (InvalidRange, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidState, status.HTTP_409_CONFLICT),
    (TransactionConflict, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ReconciliationFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: DistributionError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Food Bank Distribution API",
    description="Meal distribution sessions reconciled against food bank inventory",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DistributionError)
async def distribution_error_handler(request: Request, exc: DistributionError):
    code = status_for(exc)
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.to_dict()})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("%s %s hit a store error", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"code": "STORE_ERROR", "message": "The inventory store could not process the request", "field": None}},
    )


app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])
app.include_router(recipes_router, prefix="/recipes", tags=["recipes"])
app.include_router(distributions_router, prefix="/distributions", tags=["distributions"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
