# =====================================================================
# SECTION START: IMPORTS
# =====================================================================

import logging
import os
import time

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from db import engine, Base
import models  # noqa: F401
from routers.flights import router as flights_router
from routers.system import list_routes, router as system_router
from services.cache_service import clean_old_cache_files, ensure_directories

# =====================================================================
# SECTION END: IMPORTS
# =====================================================================


# =====================================================================
# SECTION START: LOGGING
# =====================================================================

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("globefare")

# =====================================================================
# SECTION END: LOGGING
# =====================================================================


# =====================================================================
# SECTION START: FastAPI APP AND CORS
# =====================================================================

app = FastAPI(title=config.SERVICE_NAME, version=config.SERVICE_VERSION)


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    ensure_directories()
    deleted = clean_old_cache_files()
    logger.info(
        f"[startup] api_mode={config.API_MODE} amadeus_configured={config.amadeus_configured()} "
        f"cache_dir={config.CACHE_DIR} old_cache_deleted={deleted}"
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.monotonic()
    response = await call_next(request)
    elapsed_ms = (time.monotonic() - started) * 1000
    logger.info(
        f"[http] {request.method} {request.url.path} status={response.status_code} ms={elapsed_ms:.0f}"
    )
    return response


app.include_router(system_router)
app.include_router(flights_router)

# =====================================================================
# SECTION END: FastAPI APP AND CORS
# =====================================================================


# =====================================================================
# SECTION START: ERROR HANDLERS
# =====================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "error": "Route not found",
                "message": f"Cannot {request.method} {request.url.path}",
                "available_routes": list_routes(request.app),
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Invalid request parameters", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"[server error] {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "message": str(exc)},
    )

# =====================================================================
# SECTION END: ERROR HANDLERS
# =====================================================================


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT)
