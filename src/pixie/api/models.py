"""Pydantic request and response models for the Pixie API.

These models define the JSON schema exchanged with the remote Pixie API and
with the local bridge.  Responses ignore unknown fields so that server-side
additions never break the client.

Models
------
GenerationOptions
    Immutable generation/edit settings chosen by the user.
ImageGenerationRequest / ImageEditRequest
    Payloads for ``POST /v1/images/generations`` and ``POST /v1/images/edits``.
ImageResponse
    Result of a generation or edit: one ``ImageData`` per produced image.
ImageDetails / ImageListResponse
    Gallery records and a gallery page.
PurchaseValidationRequest / PurchaseValidationResponse
    Receipt forwarding to the billing backend.
SessionCreateRequest / PurchaseRequest
    Bodies accepted by the local bridge.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Quality = Literal["low", "medium", "high", "auto"]
Background = Literal["auto", "transparent", "white", "black"]
OutputFormat = Literal["png", "jpeg", "webp"]
Moderation = Literal["auto", "low"]
Fidelity = Literal["low", "high"]

IMAGE_MODEL = "gpt-image-1"


class _Response(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GenerationOptions(BaseModel):
    """User-selected settings for a generation or edit.

    Frozen: a submitted request can never have its options changed.

    Attributes:
        quality: Output quality; affects credit cost.
        size: ``auto``, an alias (``square``, ``landscape``, ``portrait``) or
            explicit ``WxH`` dimensions.
        count: Number of images to produce (1-10).
        background: Background style, or ``None`` for the server default.
        output_format: Encoded image format, or ``None`` for the default.
        compression: JPEG/WebP compression level (0-100).  Ignored for PNG.
        moderation: Moderation strictness.
        fidelity: Input preservation for edits.
    """

    model_config = ConfigDict(frozen=True)

    quality: Quality = "auto"
    size: str = "auto"
    count: int = Field(default=1, ge=1, le=10)
    background: Background | None = None
    output_format: OutputFormat | None = None
    compression: int | None = Field(default=None, ge=0, le=100)
    moderation: Moderation | None = None
    fidelity: Fidelity = "low"

    @property
    def effective_compression(self) -> int | None:
        """Compression to send; PNG output never carries one."""
        if self.output_format == "png":
            return None
        return self.compression


class ImageGenerationRequest(BaseModel):
    """Request body for ``POST /v1/images/generations``."""

    prompt: str
    model: str = IMAGE_MODEL
    n: int = 1
    size: str = "auto"
    quality: str = "auto"
    background: str | None = None
    moderation: str | None = None
    output_compression: int | None = None
    output_format: str | None = None


class ImageEditRequest(BaseModel):
    """Request body for ``POST /v1/images/edits``.

    ``image`` holds one URL or ``data:`` URL per source image.
    """

    image: list[str]
    prompt: str
    model: str = IMAGE_MODEL
    n: int = 1
    size: str = "auto"
    quality: str = "auto"
    background: str = "auto"
    input_fidelity: str = "low"
    output_format: str = "png"
    output_compression: int | None = None


class ImageMetadata(_Response):
    width: int | None = None
    height: int | None = None
    format: str | None = None
    size_bytes: int | None = None
    credits_used: int | None = None
    quality: str | None = None
    model: str | None = None
    revised_prompt: str | None = None


class ImageData(_Response):
    url: str | None = None
    b64_json: str | None = None
    revised_prompt: str | None = None
    id: str | None = None
    metadata: ImageMetadata | None = None


class ImageResponse(_Response):
    """Result of a generation or edit call."""

    created: int = 0
    data: list[ImageData] = Field(default_factory=list)

    @property
    def urls(self) -> list[str]:
        """URLs of the produced images, skipping inline-only results."""
        return [item.url for item in self.data if item.url]

    @property
    def revised_prompts(self) -> list[str]:
        return [item.revised_prompt for item in self.data if item.revised_prompt]


class ImageDetails(_Response):
    """A single gallery record."""

    id: str
    url: str
    thumbnail_url: str | None = None
    prompt: str = ""
    user_id: str | None = None
    created_at: str | None = None
    size: str | None = None
    model: str | None = None
    quality: str | None = None
    metadata: ImageMetadata | None = None
    is_public: bool | None = None
    tags: list[str] | None = None


class ImageListResponse(_Response):
    """One page of a gallery listing."""

    images: list[ImageDetails] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 20


class CreditBalance(_Response):
    balance: int
    currency: str = "credits"


class CreditPack(_Response):
    id: str
    name: str
    credits: int
    price_usd_cents: int
    bonus_credits: int = 0
    description: str = ""


class CreditPacksResponse(_Response):
    packs: list[CreditPack] = Field(default_factory=list)


class CreditEstimateRequest(BaseModel):
    """Request body for ``POST /v1/credits/estimate``."""

    prompt: str | None = None
    quality: str
    size: str
    n: int | None = None
    is_edit: bool | None = None
    model: str | None = IMAGE_MODEL


class CreditEstimateResponse(_Response):
    estimated_credits: int
    estimated_usd: str | None = None
    note: str | None = None


class PurchaseValidationRequest(BaseModel):
    """Receipt forwarded to ``POST /v1/credits/purchase/revenuecat/validate``."""

    pack_id: str
    purchase_token: str
    product_id: str
    platform: str


class PurchaseValidationResponse(_Response):
    success: bool
    purchase_id: str | None = None
    credits_added: int = 0
    new_balance: int | None = None


# ---------------------------------------------------------------------------
# Bridge request bodies
# ---------------------------------------------------------------------------


class SessionCreateRequest(BaseModel):
    """Request body for ``POST /api/sessions``.

    Attributes:
        prompt: Prompt or edit instruction.
        source_image: Edit source (URL, ``data:`` URL, local path or
            ``gallery:<id>``).  Omit for a plain generation.
        options: Generation settings.
    """

    prompt: str
    source_image: str | None = None
    options: GenerationOptions = Field(default_factory=GenerationOptions)


class PurchaseRequest(BaseModel):
    """Request body for ``POST /api/credits/validate``."""

    package_id: str
    purchase_token: str
    product_id: str
