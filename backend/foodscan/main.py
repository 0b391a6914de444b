"""
FoodScan API - FastAPI Main Entry

LOCAL:
    cd backend
    python -m uvicorn foodscan.main:app --reload --host 0.0.0.0 --port 3001

TEST:
    curl -i http://127.0.0.1:3001/api/health
    curl -i -F image=@apple.png http://127.0.0.1:3001/api/images/upload
    curl -i -H 'Content-Type: application/json' \
         -d '{"filename": "<from upload>"}' http://127.0.0.1:3001/api/images/analyze

Providers:
    VISION_PROVIDER=mock   canned Google Vision response, no credentials needed
    VISION_PROVIDER=cloud  needs GOOGLE_VISION_API_KEY
    OPENAI_API_KEY         enables /api/images/analyze-openai
"""

import logging
import sys
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from foodscan.api.routes_images import router as images_router
from foodscan.api.routes_meta import router as meta_router
from foodscan.api.routes_products import router as products_router
from foodscan.core.config import settings

START_TIME = time.time()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        stream=sys.stdout,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="FoodScan API",
        version=settings.APP_VERSION,
        description="Backend API for the food scanner app (upload + analyze + product search)",
    )

    # Mobile app does not need CORS, the web build and Swagger docs do
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Malformed bodies are client errors: 400, not FastAPI's default 422
    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "detail": {
                    "error": "invalid_input",
                    "message": "Malformed request body",
                    "detail": jsonable_errors(exc),
                }
            },
        )

    @app.get("/")
    def root():
        return {
            "name": "FoodScan API",
            "status": "ok",
            "docs": "/docs",
            "health": "/api/health",
            "version": "/api/version",
        }

    @app.get("/api/health")
    def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.time() - START_TIME, 3),
        }

    app.include_router(images_router)
    app.include_router(products_router)
    app.include_router(meta_router)

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


app = create_app()
