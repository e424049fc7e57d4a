"""Deposit receipt and avatar images.

Images travel as base64 `data:` URLs so they can be stored in a text
column and embedded in backups. Incoming payloads are checked with Pillow
before they are accepted.
"""
import base64
import binascii
import io
import logging
import re

from PIL import Image, UnidentifiedImageError

from fundcircle.config import ALLOWED_IMAGE_FORMATS, AVATAR_SIZE
from fundcircle.exceptions import ValidationError

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+)?;base64,(?P<payload>.*)$", re.DOTALL)


def decode_image_payload(image) -> bytes:
    """Return the raw bytes of a data URL, a bare base64 string or bytes."""
    if isinstance(image, (bytes, bytearray)):
        return bytes(image)
    if not isinstance(image, str) or not image.strip():
        raise ValidationError("No image data provided")
    match = _DATA_URL.match(image.strip())
    payload = match.group('payload') if match else image.strip()
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid image data")


def _open_verified(raw: bytes) -> str:
    """Check the bytes form a complete image of an allowed format; return the format."""
    try:
        with Image.open(io.BytesIO(raw)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError("Unreadable image", {'reason': str(e)})
    if image_format not in ALLOWED_IMAGE_FORMATS:
        raise ValidationError(
            f"Unsupported image format. Allowed: {', '.join(ALLOWED_IMAGE_FORMATS)}",
            {'format': image_format},
        )
    return image_format


def to_data_url(raw: bytes, image_format: str) -> str:
    mime = Image.MIME.get(image_format, f"image/{image_format.lower()}")
    return f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"


def normalize_receipt(image) -> str:
    """Validate a deposit receipt and return it as a data URL.

    Raises:
        ValidationError: The payload is not a supported image.
    """
    raw = decode_image_payload(image)
    image_format = _open_verified(raw)
    return to_data_url(raw, image_format)


def normalize_avatar(image) -> str:
    """Validate an avatar, shrink it to AVATAR_SIZE and return it as a PNG data URL."""
    raw = decode_image_payload(image)
    _open_verified(raw)
    with Image.open(io.BytesIO(raw)) as img:
        img = img.convert("RGBA")
        img.thumbnail(AVATAR_SIZE)
        out = io.BytesIO()
        img.save(out, format="PNG")
    logger.debug(f"Avatar normalized to {img.size}")
    return to_data_url(out.getvalue(), "PNG")
