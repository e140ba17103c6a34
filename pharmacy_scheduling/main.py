import uuid
import time
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

load_dotenv()

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.core.logging import setup_logging, request_id_ctx
from pharmacy_scheduling.core.errors import SchedulingError
from pharmacy_scheduling.core.db import init_models
from pharmacy_scheduling.api.router import api_router
from pharmacy_scheduling.modules.events.outbox import run_outbox_relay

setup_logging()
logger = logging.getLogger("scheduling.http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    relay = asyncio.create_task(run_outbox_relay(), name="outbox-relay")
    logger.info(f"{settings.APP_NAME} up (env={settings.ENV}, locks={settings.LOCK_PROVIDER}, bus={settings.EVENT_BUS_PROVIDER})")
    try:
        yield
    finally:
        relay.cancel()
        await asyncio.gather(relay, return_exceptions=True)


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)


@app.middleware("http")
async def request_context(request: Request, call_next):
    # callers may pass their own id so booking logs line up with theirs
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    token = request_id_ctx.set(rid)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["x-request-id"] = rid
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms:.1f}ms")
        return response
    finally:
        request_id_ctx.reset(token)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled error on {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(status_code=500, content={"code": "internal_error", "message": "An internal server error occurred.", "details": {}})


app.include_router(api_router, prefix=settings.API_PREFIX)
