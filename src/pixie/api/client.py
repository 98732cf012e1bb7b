"""Async HTTP client for the remote Pixie API.

:class:`PixieClient` is the only component that talks to the network.  It
wraps an :class:`httpx.AsyncClient`, attaches the bearer API key, converts
request/response bodies through the Pydantic models in
:mod:`pixie.api.models`, and turns every failure into an exception from
:mod:`pixie.core.errors`.

Endpoints
---------
========  ===========================================  =======================
Method    Path                                         Method on the client
========  ===========================================  =======================
POST      ``/v1/images/generations``                   ``generate``
POST      ``/v1/images/edits``                         ``edit``
GET       ``/v1/images``                               ``list_gallery`` (public)
GET       ``/v1/images/user/{user_id}``                ``list_gallery`` (personal)
GET       ``/v1/images/{id}``                          ``get_image``
DELETE    ``/v1/images/{id}``                          ``delete_image``
GET       ``/v1/credits/balance``                      ``get_credit_balance``
GET       ``/v1/credits/packs``                        ``get_credit_packs``
POST      ``/v1/credits/estimate``                     ``estimate_credits``
POST      ``/v1/credits/purchase/revenuecat/validate`` ``validate_purchase``
GET       ``/``                                        ``health_check``
========  ===========================================  =======================

Usage
-----
::

    async with PixieClient(PixieConfig(api_key="sk-...")) as client:
        response = await client.generate("a cute robot", GenerationOptions())
        print(response.urls)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from pixie import __version__
from pixie.api.models import (
    CreditBalance,
    CreditEstimateRequest,
    CreditEstimateResponse,
    CreditPacksResponse,
    GenerationOptions,
    ImageDetails,
    ImageEditRequest,
    ImageGenerationRequest,
    ImageListResponse,
    ImageResponse,
    PurchaseValidationRequest,
    PurchaseValidationResponse,
)
from pixie.core.config import PixieConfig
from pixie.core.errors import NetworkError, Unauthorized, raise_for_api_error
from pixie.core.models import GalleryType
from pixie.core.validation import encode_image_file, resolve_size, validate_source_image

logger = logging.getLogger(__name__)

GALLERY_REF_PREFIX = "gallery:"


class PixieClient:
    """Async client for the Pixie API.

    Attributes:
        _config (PixieConfig):
            Base URL, credentials and timeout.
        _http (httpx.AsyncClient):
            Underlying connection pool.  Owned by this client unless one was
            injected.
    """

    def __init__(
        self,
        config: PixieConfig,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            config: Client configuration.
            http_client: Pre-built client to use instead of creating one.
            transport: Custom transport for the created client (tests pass an
                ``httpx.MockTransport`` here).
        """
        self._config = config
        self._owns_http = http_client is None

        if http_client is None:
            headers = {"User-Agent": f"pixie-python/{__version__}"}
            if config.api_key:
                headers["Authorization"] = f"Bearer {config.api_key}"
            http_client = httpx.AsyncClient(
                base_url=config.api_url,
                headers=headers,
                timeout=config.request_timeout,
                transport=transport,
            )
        self._http = http_client

    @property
    def config(self) -> PixieConfig:
        return self._config

    async def __aenter__(self) -> PixieClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the connection pool if this client created it."""
        if self._owns_http:
            await self._http.aclose()

    # -- Transport ----------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send one request and map failures into the error taxonomy.

        Raises:
            NetworkError: On connection failure or timeout.
            ApiError: On any non-2xx response.
        """
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise NetworkError() from e

        raise_for_api_error(response)
        logger.debug(f"{method} {path} -> {response.status_code}")
        return response

    # -- Image generation ---------------------------------------------------

    async def generate(self, prompt: str, options: GenerationOptions) -> ImageResponse:
        """Generate images from a text prompt."""
        body = ImageGenerationRequest(
            prompt=prompt,
            n=options.count,
            size=resolve_size(options.size),
            quality=options.quality,
            background=options.background,
            moderation=options.moderation,
            output_compression=options.effective_compression,
            output_format=options.output_format,
        )
        response = await self._request(
            "POST", "/v1/images/generations", json=body.model_dump(exclude_none=True)
        )
        return ImageResponse.model_validate(response.json())

    async def edit(
        self, prompt: str, source_image: str, options: GenerationOptions
    ) -> ImageResponse:
        """Edit an existing image.

        Args:
            prompt: Edit instruction.
            source_image: ``http(s)`` URL, ``data:`` URL, or local file path.
                Local files are encoded in a worker thread; no extra request is
                made.
            options: Edit settings.
        """
        image = await self._prepare_source_image(source_image)
        body = ImageEditRequest(
            image=[image],
            prompt=prompt,
            n=options.count,
            size=resolve_size(options.size),
            quality=options.quality,
            background=options.background or "auto",
            input_fidelity=options.fidelity,
            output_format=options.output_format or "png",
            output_compression=options.effective_compression,
        )
        response = await self._request(
            "POST", "/v1/images/edits", json=body.model_dump(exclude_none=True)
        )
        return ImageResponse.model_validate(response.json())

    @staticmethod
    async def _prepare_source_image(source_image: str) -> str:
        if validate_source_image(source_image) is None:
            return source_image
        # Files up to 50 MB; read and encode off the event loop
        return await asyncio.to_thread(encode_image_file, source_image)

    async def resolve_source_image(self, ref: str) -> str:
        """Resolve a ``gallery:<id>`` reference to the image URL.

        Any other reference is returned unchanged.
        """
        if not ref.startswith(GALLERY_REF_PREFIX):
            return ref
        details = await self.get_image(ref[len(GALLERY_REF_PREFIX) :])
        return details.url

    # -- Gallery ------------------------------------------------------------

    async def list_gallery(
        self, gallery_type: GalleryType, page: int, page_size: int
    ) -> ImageListResponse:
        """Fetch one page of a gallery.

        The caller infers end-of-data when fewer than *page_size* records are
        returned.

        Raises:
            Unauthorized: For the personal gallery when no user id is configured.
        """
        if gallery_type is GalleryType.PERSONAL:
            if not self._config.user_id:
                raise Unauthorized("Please sign in to view your images.")
            path = f"/v1/images/user/{self._config.user_id}"
        else:
            path = "/v1/images"

        response = await self._request(
            "GET", path, params={"page": page, "per_page": page_size}
        )
        return ImageListResponse.model_validate(response.json())

    async def get_image(self, image_id: str) -> ImageDetails:
        response = await self._request("GET", f"/v1/images/{image_id}")
        return ImageDetails.model_validate(response.json())

    async def delete_image(self, image_id: str) -> None:
        await self._request("DELETE", f"/v1/images/{image_id}")

    # -- Credits ------------------------------------------------------------

    async def get_credit_balance(self) -> CreditBalance:
        response = await self._request("GET", "/v1/credits/balance")
        return CreditBalance.model_validate(response.json())

    async def get_credit_packs(self) -> CreditPacksResponse:
        response = await self._request("GET", "/v1/credits/packs")
        return CreditPacksResponse.model_validate(response.json())

    async def estimate_credits(
        self, options: GenerationOptions, prompt: str | None = None, is_edit: bool = False
    ) -> CreditEstimateResponse:
        body = CreditEstimateRequest(
            prompt=prompt,
            quality=options.quality,
            size=resolve_size(options.size),
            n=options.count,
            is_edit=is_edit,
        )
        response = await self._request(
            "POST", "/v1/credits/estimate", json=body.model_dump(exclude_none=True)
        )
        return CreditEstimateResponse.model_validate(response.json())

    async def validate_purchase(
        self, pack_id: str, purchase_token: str, product_id: str, platform: str
    ) -> PurchaseValidationResponse:
        """Forward an in-app purchase receipt to the billing backend.

        Never retried: a duplicate validation could credit the account twice.
        """
        body = PurchaseValidationRequest(
            pack_id=pack_id,
            purchase_token=purchase_token,
            product_id=product_id,
            platform=platform,
        )
        response = await self._request(
            "POST", "/v1/credits/purchase/revenuecat/validate", json=body.model_dump()
        )
        return PurchaseValidationResponse.model_validate(response.json())

    # -- Misc ---------------------------------------------------------------

    async def health_check(self) -> str:
        """Return the API's health response text."""
        response = await self._request("GET", "/")
        return response.text.strip()
