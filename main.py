import asyncio
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from domain.exceptions import MarketplaceError, ValidationFailedError
from infrastructure import config
from infrastructure.repositiry import db_models  # noqa: F401  registers the tables
from infrastructure.repositiry.base_repository import Base, engine
from infrastructure.services.verification_service import sweep_codes_periodically
from presentation.admin_routes import router as admin_router
from presentation.api_routes import router as api_router
from presentation.chat_routes import router as chat_router, ws_router

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="TaskTrove")

app.include_router(api_router)
app.include_router(admin_router)
app.include_router(chat_router)
app.include_router(ws_router)

_background_tasks = set()


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database connection established")
    task = asyncio.create_task(sweep_codes_periodically())
    _background_tasks.add(task)


@app.on_event("shutdown")
async def shutdown_event():
    for task in _background_tasks:
        task.cancel()
    _background_tasks.clear()
    await engine.dispose()


@app.exception_handler(MarketplaceError)
async def marketplace_exception_handler(request, exc: MarketplaceError):
    content = {"message": exc.message}
    if isinstance(exc, ValidationFailedError) and exc.errors:
        content["details"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(StaleDataError)
async def stale_data_exception_handler(request, exc):
    logger.warning("Concurrent modification on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=409,
        content={"message": "The resource was modified concurrently, please retry"},
    )


@app.exception_handler(Exception)
async def universal_exception_handler(request, exc):
    logger.exception("Unhandled exception")
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(
        status_code=400,
        content={"message": "Validation error", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception objects that JSONResponse cannot serialize
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


if __name__ == '__main__':
    uvicorn.run(app, host='0.0.0.0', port=8000)
