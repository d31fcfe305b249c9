"""Image input helpers: data URLs, content sniffing and pre-OCR resizing."""

import base64
import binascii
import hashlib
import io
import re

MAX_IMAGE_DIMENSION = 3000  # Resize if either dimension exceeds this
OCR_IMAGE_PADDING = 50  # White border so OCR does not clip text at the edges

DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[^,;]+)*?)(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)

_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_mime_type(image_bytes: bytes, default: str = "image/jpeg") -> str:
    """Guess the image MIME type from its leading bytes."""
    for signature, mime in _SIGNATURES:
        if image_bytes.startswith(signature):
            return mime
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return default


def encode_data_url(image_bytes: bytes, mime_type: str | None = None) -> str:
    """Encode raw image bytes as a ``data:<mime>;base64,...`` URL."""
    mime = mime_type or sniff_mime_type(image_bytes)
    return f"data:{mime};base64,{base64.b64encode(image_bytes).decode('ascii')}"


def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """
    Decode a data URL into bytes and MIME type.

    Args:
        data_url: ``data:image/jpeg;base64,...`` string

    Returns:
        Tuple of (image bytes, mime type)

    Raises:
        ValueError: If the string is not a base64 data URL
    """
    match = DATA_URL.match(data_url.strip())
    if not match or not match.group("b64"):
        raise ValueError("Not a base64 data URL")
    try:
        payload = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
    return payload, match.group("mime") or sniff_mime_type(payload)


def load_image_input(value: str | bytes) -> bytes:
    """Accept raw bytes, a data URL or bare base64 text and return image bytes."""
    if isinstance(value, bytes):
        return value
    if value.startswith("data:"):
        return decode_data_url(value)[0]
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Image is neither a data URL nor base64: {e}") from e


def image_digest(image_bytes: bytes) -> str:
    """Stable identity of an image, used to skip re-processing the same upload."""
    return hashlib.sha256(image_bytes).hexdigest()


def resize_image_bytes(
    image_bytes: bytes, max_dimension: int = MAX_IMAGE_DIMENSION, padding: int = OCR_IMAGE_PADDING
) -> bytes:
    """
    Prepare an image for OCR.

    EXIF orientation is applied, the image is shrunk so neither side exceeds
    ``max_dimension``, and a white border of ``padding`` pixels is added.

    Args:
        image_bytes: Image data as bytes
        max_dimension: Maximum allowed dimension (width or height)
        padding: White padding to add around image (pixels)

    Returns:
        JPEG bytes
    """
    from PIL import Image, ImageOps

    img = ImageOps.exif_transpose(Image.open(io.BytesIO(image_bytes)))
    if max(img.size) > max_dimension:
        # thumbnail() keeps the aspect ratio and only ever shrinks
        img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
    if padding > 0:
        img = ImageOps.expand(img, border=padding, fill="white")

    buffer = io.BytesIO()
    img.convert("RGB").save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()
