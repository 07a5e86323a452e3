from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import router as api_router
from api.routes.deploy import shutdown_registry
from services.config import api_host, api_port, env_str, log_level


def _parse_origins(raw: str) -> List[str]:
    # Accept comma-separated list. Ignore empties.
    return [o.strip() for o in (raw or "").split(",") if o.strip()]


def _validate_origins(origins: List[str]) -> List[str]:
    """
    Only explicit http(s) origins are accepted; "*" is rejected.
    """
    for origin in origins:
        if origin == "*":
            raise ValueError("CORS_ALLOW_ORIGINS must not contain '*'")
        parsed = urlparse(origin)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid CORS origin: {origin!r}")
    return origins


def _validation_details(exc: RequestValidationError) -> List[str]:
    details = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = str(err.get("msg", "invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        details.append(f"{loc}: {msg}" if loc else msg)
    return details


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    shutdown_registry()


def create_app() -> FastAPI:
    logging.basicConfig(
        level=log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="LLM Dashboard API", version="0.1.0", lifespan=_lifespan)

    origins = _validate_origins(_parse_origins(env_str("CORS_ALLOW_ORIGINS")))
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request",
                "details": _validation_details(exc),
            },
        )

    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    uvicorn.run(app, host=api_host(), port=api_port(), log_level=log_level().lower())


if __name__ == "__main__":
    run()
