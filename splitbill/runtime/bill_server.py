"""FastAPI server: receive bill photos, run the engine chain, answer engine prompts."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from splitbill.application.session import BillSession
from splitbill.runtime import get_logger, get_paths, load_settings

logger = get_logger(__name__)


def default_session(config: Path | None = None) -> BillSession:
    get_paths().ensure_directories()
    return BillSession.from_settings(load_settings(config))


async def _read_image(request: Request) -> bytes | str | None:
    """First file field of a multipart form, or ``image`` from a JSON body (data URL / base64)."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return None
        image = body.get("image") if isinstance(body, dict) else None
        return image if isinstance(image, str) and image else None

    form = await request.form()
    for key, value in form.items():
        logger.debug("Form field: key=%r, type=%s", key, type(value).__name__)
        if hasattr(value, "read"):
            return await value.read()
    return None


def create_app(session_factory: Callable[[], BillSession] = default_session) -> FastAPI:
    """Build the app; the session is created on startup so importing has no side effects."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        app.state.session = session_factory()
        yield

    app = FastAPI(title="Bill Splitter", lifespan=lifespan)

    def session_of(request: Request) -> BillSession:
        return request.app.state.session

    @app.post("/upload")
    async def upload_bill(request: Request, force: bool = False) -> JSONResponse:
        """Receive a bill photo and run it through the engines."""
        image = await _read_image(request)
        if not image:
            return JSONResponse({"status": "error", "message": "No image found in request"}, status_code=400)

        session = session_of(request)
        try:
            await session.upload(image, force=force)
        except ValueError as e:
            logger.warning("Rejected upload: %s", e)
            return JSONResponse({"status": "error", "message": str(e)}, status_code=400)
        return JSONResponse(session.snapshot())

    @app.post("/engines/next")
    async def next_engine(request: Request) -> JSONResponse:
        session = session_of(request)
        if session.orchestrator.state != "engine_failed":
            return JSONResponse(
                {"status": "error", "message": f"No engine prompt pending (state: {session.orchestrator.state})"},
                status_code=409,
            )
        await session.retry_next()
        return JSONResponse(session.snapshot())

    @app.post("/engines/cancel")
    async def cancel_engines(request: Request) -> JSONResponse:
        session = session_of(request)
        session.cancel()
        return JSONResponse(session.snapshot())

    @app.post("/engines/accept-best")
    async def accept_best(request: Request) -> JSONResponse:
        session = session_of(request)
        if not session.accept_best():
            return JSONResponse({"status": "error", "message": "No parse available to accept"}, status_code=409)
        return JSONResponse(session.snapshot())

    @app.post("/bill/reset")
    async def reset_bill(request: Request) -> JSONResponse:
        session = session_of(request)
        session.reset()
        return JSONResponse(session.snapshot())

    @app.get("/bill")
    async def get_bill(request: Request, include_image: bool = False) -> dict[str, Any]:
        return session_of(request).snapshot(include_image=include_image)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
