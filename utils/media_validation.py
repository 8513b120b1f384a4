"""Validation helpers for image payloads attached to chat messages."""

import base64
import binascii
import os

MAX_PAYLOAD_BYTES = int(os.getenv("MAX_PAYLOAD_BYTES", "5000000"))

ALLOWED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
}


def ensure_image_payload(raw: str, max_bytes: int = MAX_PAYLOAD_BYTES) -> str:
    """Return `raw` if it is an acceptable image payload, else raise ValueError.

    Accepted forms are `data:image/...;base64,...` URIs, bare base64 text and
    http(s) URLs. Payloads larger than `max_bytes` are rejected.
    """
    value = (raw or "").strip()
    if not value:
        raise ValueError("Image payload is empty.")
    if len(value.encode("utf-8")) > max_bytes:
        raise ValueError(f"Image payload exceeds {max_bytes} bytes.")
    if value.startswith(("http://", "https://")):
        return value
    if value.startswith("data:"):
        header, sep, data = value.partition(",")
        if not sep or not header.endswith(";base64"):
            raise ValueError("Image data URI must be base64 encoded.")
        mime_type = header[len("data:"):-len(";base64")].lower()
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise ValueError(f"Unsupported image content type: {mime_type}")
        _ensure_base64(data)
        return value
    _ensure_base64(value)
    return value


def _ensure_base64(data: str) -> None:
    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Image payload is not valid base64.") from exc
