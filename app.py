import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import config
from controllers.detection import router as detection_router
from controllers.health import router as health_router
from database.db import init_db
from services.errors import DetectionError, InvalidRequest
from services.worker import start_reconcile_consumer_thread

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="Detection API")
init_db()
app.include_router(detection_router)
app.include_router(health_router)

_reconcile_thread = None


@app.exception_handler(DetectionError)
async def _detection_error_handler(request: Request, exc: DetectionError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s", exc.kind, request.method, request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request to %s %s: %s", request.method, request.url.path, exc.errors())
    error = InvalidRequest()
    return JSONResponse(status_code=error.status_code, content=error.to_response())


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "kind": "InternalError",
            "message": "Something went very wrong!",
        },
    )


@app.on_event("startup")
async def _app_startup() -> None:
    global _reconcile_thread
    if config.EVENTS_ENABLED:
        _reconcile_thread = start_reconcile_consumer_thread()  # pragma: no cover


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
