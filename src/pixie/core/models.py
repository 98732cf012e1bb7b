"""Data models for generation sessions and gallery state."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from pixie.api.models import GenerationOptions

from .errors import PixieError


# ---------------------------------------------------------------------------
# Generation request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Generate:
    """Text-to-image mode."""

    @property
    def is_edit(self) -> bool:
        return False


@dataclass(frozen=True)
class Edit:
    """Image edit mode.

    ``source_image`` is an ``http(s)`` URL, a ``data:`` URL or a local file
    path.  Gallery references (``gallery:<id>``) must be resolved by the
    caller before the request is built.
    """

    source_image: str

    @property
    def is_edit(self) -> bool:
        return True


GenerationMode = Union[Generate, Edit]


@dataclass(frozen=True)
class GenerationRequest:
    """One user submission.  Immutable once created."""

    prompt: str
    mode: GenerationMode = field(default_factory=Generate)
    options: GenerationOptions = field(default_factory=GenerationOptions)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def image_count(self) -> int:
        return self.options.count


# ---------------------------------------------------------------------------
# Generation status (tagged union)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Queued:
    is_terminal = False

    @property
    def kind(self) -> str:
        return "queued"


@dataclass(frozen=True)
class InProgress:
    """Synthetic progress while the API call is pending.

    The counters only animate the UI; they say nothing about server progress.
    """

    images_completed: int
    images_total: int
    elapsed: float = 0.0

    is_terminal = False

    @property
    def kind(self) -> str:
        return "in_progress"


@dataclass(frozen=True)
class Succeeded:
    image_urls: tuple[str, ...]
    revised_prompts: tuple[str, ...] = ()

    is_terminal = True

    @property
    def kind(self) -> str:
        return "succeeded"


@dataclass(frozen=True)
class Failed:
    error_message: str
    error: PixieError | None = None

    is_terminal = True

    @property
    def kind(self) -> str:
        return "failed"


@dataclass(frozen=True)
class Cancelled:
    is_terminal = True

    @property
    def kind(self) -> str:
        return "cancelled"


GenerationStatus = Union[Queued, InProgress, Succeeded, Failed, Cancelled]


def status_to_dict(status: GenerationStatus | None) -> dict:
    """Flatten a status into a JSON-friendly dict."""
    if status is None:
        return {"kind": "idle"}

    data: dict = {"kind": status.kind, "terminal": status.is_terminal}
    if isinstance(status, InProgress):
        data.update(
            images_completed=status.images_completed,
            images_total=status.images_total,
            elapsed=round(status.elapsed, 2),
        )
    elif isinstance(status, Succeeded):
        data.update(
            image_urls=list(status.image_urls),
            revised_prompts=list(status.revised_prompts),
        )
    elif isinstance(status, Failed):
        data["error_message"] = status.error_message
        data["error_type"] = type(status.error).__name__ if status.error else None
    return data


# ---------------------------------------------------------------------------
# Gallery state
# ---------------------------------------------------------------------------


class GalleryType(str, Enum):
    """Partition of the image feed."""

    PERSONAL = "personal"
    PUBLIC = "public"


class SeriesState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    LOADING_MORE = "loading_more"
    LOADED = "loaded"
    EXHAUSTED = "exhausted"
    ERROR = "error"
