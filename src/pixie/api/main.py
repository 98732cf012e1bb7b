"""Pixie bridge: FastAPI application exposing sessions and galleries as JSON.

The bridge is a thin local HTTP surface over the client components so that a
UI (or a shell with ``curl``) can drive generation sessions, browse the
cached galleries and validate purchases.  All state lives on ``app.state``
and is built in the lifespan; nothing is a module-level singleton apart from
the default ``app`` used by the console script.

Endpoints
---------
========  ================================  ====================================
Method    Path                              Purpose
========  ================================  ====================================
GET       ``/api/health``                   Bridge version and upstream health
POST      ``/api/sessions``                 Create a session and submit a request
GET       ``/api/sessions/{id}``            Status snapshot
POST      ``/api/sessions/{id}/cancel``     Cancel the in-flight call
DELETE    ``/api/sessions/{id}``            Discard the session
GET       ``/api/gallery/{type}``           Select a gallery and return it
POST      ``/api/gallery/{type}/more``      Load the next page
POST      ``/api/gallery/{type}/refresh``   Clear and reload the first page
DELETE    ``/api/gallery/images/{id}``      Delete an image upstream and locally
GET       ``/api/credits``                  Credit balance
POST      ``/api/credits/validate``         Validate an in-app purchase
========  ================================  ====================================

Usage
-----
CLI (installed entry point)::

    pixie

Direct invocation::

    python -m pixie.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from pixie import __version__
from pixie.api.client import PixieClient
from pixie.api.models import PurchaseRequest, SessionCreateRequest
from pixie.core.config import PixieConfig, config
from pixie.core.errors import (
    ApiError,
    NetworkError,
    PixieError,
    PurchaseRejected,
    ServerError,
    ValidationError,
)
from pixie.core.gallery import GalleryCache
from pixie.core.generation import GenerationSession, SessionRegistry
from pixie.core.models import Edit, Generate, GalleryType, GenerationRequest, status_to_dict
from pixie.core.purchases import CreditPurchaseFlow

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the client components on startup and release them on shutdown.

    On startup:
        Creates one :class:`PixieClient` and the :class:`GalleryCache`,
        :class:`SessionRegistry` and :class:`CreditPurchaseFlow` that share
        it, and stores them on ``app.state``.

    On shutdown:
        Cancels every in-flight session and closes the HTTP connection pool.
    """
    settings: PixieConfig = app.state.config
    client = PixieClient(settings, transport=app.state.transport)

    app.state.client = client
    app.state.gallery = GalleryCache(
        client,
        page_size=settings.gallery_page_size,
        public_page_limit=settings.public_page_limit,
        load_more_threshold=settings.load_more_threshold,
    )
    app.state.sessions = SessionRegistry(client, progress_interval=settings.progress_interval)
    app.state.purchases = CreditPurchaseFlow(client, platform=settings.purchase_platform)
    logger.info(
        f"Pixie bridge started against {settings.api_url} "
        f"({'authenticated' if settings.is_authenticated else 'anonymous'})"
    )

    yield

    app.state.sessions.cancel_all()
    await client.aclose()
    logger.info("Pixie bridge stopped.")


# ---------------------------------------------------------------------------
# Error mapping.
# ---------------------------------------------------------------------------


def _http_exception(error: PixieError) -> HTTPException:
    """Convert a taxonomy error into an HTTP error for the bridge caller.

    Client-side and upstream 4xx errors keep their status.  Upstream 5xx and
    unreachable upstreams surface as gateway errors.
    """
    if isinstance(error, ValidationError):
        status_code = 400
    elif isinstance(error, PurchaseRejected):
        status_code = 402
    elif isinstance(error, NetworkError):
        status_code = 503
    elif isinstance(error, ServerError):
        status_code = 502
    elif isinstance(error, ApiError) and 400 <= error.status_code < 500:
        status_code = error.status_code
    else:
        status_code = 502

    detail: dict = {"message": error.message, "type": type(error).__name__}
    code = getattr(error, "code", None)
    if code:
        detail["code"] = code
    return HTTPException(status_code=status_code, detail=detail)


def _get_session(request: Request, session_id: str) -> GenerationSession:
    session = request.app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


def _session_payload(session: GenerationSession) -> dict:
    return {
        "id": session.id,
        "request_id": session.request.id if session.request else None,
        "active": session.is_active,
        "status": status_to_dict(session.status),
    }


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@router.get("/api/health")
async def health(request: Request) -> dict:
    """Report the bridge version and whether the upstream API answers.

    Upstream failures are reported in the body; the bridge itself is healthy
    as long as it can answer.
    """
    client: PixieClient = request.app.state.client
    try:
        upstream = await client.health_check()
    except PixieError as e:
        return {"version": __version__, "upstream": None, "upstream_error": e.message}
    return {"version": __version__, "upstream": upstream, "upstream_error": None}


@router.post("/api/sessions")
async def create_session(request: Request, body: SessionCreateRequest) -> dict:
    """Create a session and submit one generation or edit.

    ``gallery:<id>`` edit sources are resolved to their image URL first.

    Raises:
        HTTPException: 400 for a blank prompt or invalid options, or the
            mapped status of an upstream failure while resolving the source.
    """
    client: PixieClient = request.app.state.client
    registry: SessionRegistry = request.app.state.sessions

    try:
        if body.source_image is not None:
            source = await client.resolve_source_image(body.source_image)
            mode = Edit(source)
        else:
            mode = Generate()
        generation = GenerationRequest(body.prompt, mode=mode, options=body.options)

        session = registry.create()
        try:
            session.submit(generation)
        except ValidationError:
            registry.discard(session.id)
            raise
    except PixieError as e:
        raise _http_exception(e) from e

    return _session_payload(session)


@router.get("/api/sessions/{session_id}")
async def get_session(request: Request, session_id: str) -> dict:
    return _session_payload(_get_session(request, session_id))


@router.post("/api/sessions/{session_id}/cancel")
async def cancel_session(request: Request, session_id: str) -> dict:
    """Cancel the in-flight call of a session.

    ``cancelled`` is false when nothing was in flight.
    """
    session = _get_session(request, session_id)
    cancelled = session.cancel()
    return {"cancelled": cancelled, **_session_payload(session)}


@router.delete("/api/sessions/{session_id}")
async def discard_session(request: Request, session_id: str) -> dict:
    if not request.app.state.sessions.discard(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return {"success": True, "id": session_id}


@router.get("/api/gallery/{gallery_type}")
async def get_gallery(request: Request, gallery_type: GalleryType) -> dict:
    """Make *gallery_type* the active feed and return its snapshot.

    Served from cache when images are already loaded.  A failed first load is
    reported through the snapshot's ``state`` and ``error`` fields.
    """
    gallery: GalleryCache = request.app.state.gallery
    await gallery.select(gallery_type)
    return gallery.snapshot(gallery_type)


@router.post("/api/gallery/{gallery_type}/more")
async def load_more(request: Request, gallery_type: GalleryType) -> dict:
    gallery: GalleryCache = request.app.state.gallery
    loaded = await gallery.load_next_page(gallery_type)
    return {"loaded": loaded, **gallery.snapshot(gallery_type)}


@router.post("/api/gallery/{gallery_type}/refresh")
async def refresh_gallery(request: Request, gallery_type: GalleryType) -> dict:
    gallery: GalleryCache = request.app.state.gallery
    loaded = await gallery.refresh(gallery_type)
    return {"loaded": loaded, **gallery.snapshot(gallery_type)}


@router.delete("/api/gallery/images/{image_id}")
async def delete_image(request: Request, image_id: str) -> dict:
    """Delete an image upstream, then drop it from the local caches."""
    client: PixieClient = request.app.state.client
    try:
        await client.delete_image(image_id)
    except PixieError as e:
        raise _http_exception(e) from e

    removed = request.app.state.gallery.remove(image_id)
    logger.info(f"Deleted image {image_id} (cached locally: {removed})")
    return {"success": True, "id": image_id, "removed_from_cache": removed}


@router.get("/api/credits")
async def get_credits(request: Request) -> dict:
    client: PixieClient = request.app.state.client
    try:
        balance = await client.get_credit_balance()
    except PixieError as e:
        raise _http_exception(e) from e
    return balance.model_dump()


@router.post("/api/credits/validate")
async def validate_purchase(request: Request, body: PurchaseRequest) -> dict:
    """Forward a store receipt to the billing backend.  Never retried."""
    flow: CreditPurchaseFlow = request.app.state.purchases
    try:
        response = await flow.validate(body.package_id, body.purchase_token, body.product_id)
    except PixieError as e:
        raise _http_exception(e) from e
    return response.model_dump()


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    settings: PixieConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build a bridge application.

    Args:
        settings: Configuration to use.  Defaults to the global
            :data:`~pixie.core.config.config`.
        transport: Custom httpx transport for the upstream client (tests pass
            an ``httpx.MockTransport``).

    Returns:
        A FastAPI application whose lifespan owns the client components.
    """
    app = FastAPI(
        title="Pixie",
        description="Local bridge for Pixie image generation, galleries and credits.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = settings if settings is not None else config
    app.state.transport = transport

    # Browser callers are limited to the configured origins (none by default)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app.state.config.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )
    app.include_router(router)

    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~pixie.core.config.config` (which loads
    from ``PIXIE_SERVER_HOST`` and ``PIXIE_SERVER_PORT`` environment
    variables).  Defaults to ``127.0.0.1:7860``.

    This function is registered as the ``pixie`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "pixie.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
