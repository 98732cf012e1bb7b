"""Validation utilities for generation and edit requests.

Everything here runs before a request is allowed near the network.  Failures
raise :class:`~pixie.core.errors.ValidationError` with a message meant to be
shown to the user as-is.
"""

import base64
import logging
import mimetypes
import re
from pathlib import Path

from pixie.api.models import GenerationOptions

from .errors import ValidationError

logger = logging.getLogger(__name__)

SIZE_ALIASES = {
    "square": "1024x1024",
    "landscape": "1536x1024",
    "portrait": "1024x1536",
}

MAX_IMAGE_BYTES = 50 * 1024 * 1024

_DIMENSIONS_RE = re.compile(r"^(\d{2,5})x(\d{2,5})$")
_EDITABLE_TYPES = {"image/png", "image/jpeg", "image/webp"}


def validate_prompt(prompt: str | None, max_length: int = 32000) -> str:
    """Validate prompt text and return it stripped.

    Args:
        prompt: Prompt or edit instruction entered by the user
        max_length: Maximum allowed prompt length in characters

    Returns:
        The prompt without surrounding whitespace

    Raises:
        ValidationError: If the prompt is blank or too long
    """
    if prompt is None or not prompt.strip():
        raise ValidationError("Please enter a prompt")

    prompt = prompt.strip()
    if len(prompt) > max_length:
        raise ValidationError(
            f"Prompt is too long ({len(prompt)} characters). Maximum is {max_length} characters."
        )
    return prompt


def resolve_size(size: str) -> str:
    """Resolve a size alias to the wire value.

    ``auto`` passes through, aliases map to fixed dimensions, and explicit
    ``WxH`` values are checked for shape.

    Raises:
        ValidationError: If the size is neither an alias nor ``WxH``
    """
    value = size.strip().lower()
    if value == "auto":
        return value
    if value in SIZE_ALIASES:
        return SIZE_ALIASES[value]
    if _DIMENSIONS_RE.match(value):
        return value
    raise ValidationError(
        f"Invalid size '{size}'. Use auto, square, landscape, portrait or WIDTHxHEIGHT."
    )


def validate_options(options: GenerationOptions) -> None:
    """Validate option combinations the model constraints cannot express.

    Raises:
        ValidationError: If the options are inconsistent
    """
    resolve_size(options.size)

    if options.background == "transparent" and options.output_format == "jpeg":
        raise ValidationError("Transparent backgrounds require PNG or WebP output")

    if options.compression is not None and options.output_format == "png":
        # Compression is dropped on the wire for PNG, so warn rather than fail.
        logger.warning("Compression is ignored for PNG output")


def is_remote_image(ref: str) -> bool:
    """Whether *ref* is sent to the API as-is rather than read from disk."""
    return ref.startswith(("http://", "https://", "data:"))


def validate_source_image(ref: str | Path) -> str | None:
    """Check an edit source before submission.

    Remote references (URLs, ``data:`` URLs) are accepted without a request.
    Local paths must point to a PNG, JPEG or WebP file of at most 50MB.

    Args:
        ref: Edit source reference

    Returns:
        The MIME type of a local file, or ``None`` for remote references

    Raises:
        ValidationError: If the reference is empty or the local file is unusable
    """
    if isinstance(ref, str):
        if not ref.strip():
            raise ValidationError("Please select an image to edit")
        if is_remote_image(ref):
            return None
        if ref.startswith("gallery:"):
            raise ValidationError("Gallery images must be resolved before editing")

    file_path = Path(ref).expanduser()

    if not file_path.exists():
        raise ValidationError(f"File not found: {file_path.name}")
    if not file_path.is_file():
        raise ValidationError(f"Path is not a file: {file_path.name}")

    mime_type, _ = mimetypes.guess_type(file_path.name)
    if mime_type not in _EDITABLE_TYPES:
        raise ValidationError("Invalid image. Please select a PNG, JPEG or WebP file.")

    if file_path.stat().st_size > MAX_IMAGE_BYTES:
        raise ValidationError("Image file too large. Maximum size is 50MB.")

    return mime_type


def encode_image_file(path: str | Path) -> str:
    """Read a local image and encode it as a ``data:`` URL.

    Args:
        path: Path to a PNG, JPEG or WebP file

    Returns:
        ``data:<mime>;base64,<payload>`` string

    Raises:
        ValidationError: If the file is missing, not an image, or too large
    """
    mime_type = validate_source_image(Path(path))
    file_path = Path(path).expanduser()

    data = file_path.read_bytes()
    payload = base64.b64encode(data).decode("ascii")
    logger.debug(f"Encoded {file_path.name} ({len(data)} bytes) as {mime_type}")
    return f"data:{mime_type};base64,{payload}"
