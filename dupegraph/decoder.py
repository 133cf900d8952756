"""
Module: decoder
Purpose: Pillow-backed decoder turning raw bytes into a pixel buffer.
"""

import io

from PIL import Image

from .exceptions import DecodeError
from .utils import ensure_heif_registered, enforce_pixel_limit, log_warning


def decode_image(data: bytes) -> Image.Image:
    """
    Decode raw file bytes into a fully loaded Pillow image.

    Args:
        data: Raw encoded bytes.

    Returns:
        Loaded image; the caller owns it and should close it.

    Raises:
        DecodeError: If the bytes are not a decodable image or exceed the
            decompression-bomb pixel limit.
    """
    if not data:
        raise DecodeError("Empty input")
    ensure_heif_registered()
    enforce_pixel_limit()
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        return image
    except Image.DecompressionBombError as exc:
        log_warning(f"Refused oversized image (decompression-bomb protection: {exc}).")
        raise DecodeError(f"Decompression bomb detected: {exc}") from exc
    except Exception as exc:
        raise DecodeError(f"Undecodable image data: {exc}") from exc
