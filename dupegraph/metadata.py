"""
Module: metadata
Purpose: EXIF parsing and filename normalization for corroborating evidence.
"""

import os
import re
from datetime import datetime
from typing import FrozenSet, Optional

from PIL import Image

from .exceptions import MetadataError
from .models.record import ExifData
from .utils import log_warning

EXIF_IFD_POINTER = 0x8769
TAG_DATETIME_ORIGINAL = 0x9003
TAG_DATETIME = 0x0132
TAG_MAKE = 0x010F
TAG_MODEL = 0x0110
TAG_ORIENTATION = 0x0112
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

# Tokens that carry no identity: camera prefixes and copy markers.
FILENAME_STOPWORDS = frozenset(
    {"img", "image", "dsc", "dscn", "dscf", "pxl", "photo", "pic", "copy", "edited", "final", "jpg", "jpeg"}
)
_COPY_SUFFIX = re.compile(r"(\s*\(\d+\)|\s*-\s*copy(\s*\d+)?|_copy\d*)$")
_TOKEN_SPLIT = re.compile(r"[^0-9a-z]+")


def _clean_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    cleaned = str(value).replace("\x00", "").strip()
    return cleaned or None


def _parse_datetime(value) -> Optional[datetime]:
    text = _clean_text(value)
    if not text:
        return None
    try:
        return datetime.strptime(text[:19], EXIF_DATETIME_FORMAT)
    except ValueError:
        return None


def _parse_orientation(value) -> Optional[int]:
    try:
        orientation = int(value)
    except (TypeError, ValueError):
        return None
    if 1 <= orientation <= 8:
        return orientation
    return None


def parse_exif(blob: bytes | None) -> ExifData | None:
    """
    Parse a raw EXIF block best-effort.

    Args:
        blob: Raw EXIF bytes (with or without the "Exif\\0\\0" header).

    Returns:
        ExifData with whatever fields could be read, or None when empty.

    Raises:
        MetadataError: When the block cannot be parsed at all.
    """
    if not blob:
        return None
    exif = Image.Exif()
    try:
        exif.load(blob)
    except Exception as exc:
        raise MetadataError(f"Unparsable EXIF block: {exc}") from exc

    fields: dict = {}

    captured_at = None
    try:
        captured_at = _parse_datetime(exif.get_ifd(EXIF_IFD_POINTER).get(TAG_DATETIME_ORIGINAL))
    except Exception as exc:
        log_warning(f"Ignoring unreadable EXIF sub-IFD: {exc}")
    if captured_at is None:
        try:
            captured_at = _parse_datetime(exif.get(TAG_DATETIME))
        except Exception:
            captured_at = None
    fields["captured_at"] = captured_at

    for name, tag in (("camera_make", TAG_MAKE), ("camera_model", TAG_MODEL)):
        try:
            fields[name] = _clean_text(exif.get(tag))
        except Exception:
            fields[name] = None
    try:
        fields["orientation"] = _parse_orientation(exif.get(TAG_ORIENTATION))
    except Exception:
        fields["orientation"] = None

    data = ExifData(**fields)
    if data.is_empty():
        return None
    return data


def exif_blob_from_image(image: Image.Image) -> bytes | None:
    """Raw EXIF block carried by a decoded image, if any."""
    blob = image.info.get("exif")
    if isinstance(blob, bytes) and blob:
        return blob
    return None


def timestamps_close(a: ExifData | None, b: ExifData | None, tolerance_seconds: float) -> Optional[float]:
    """
    Return the capture delta in seconds when both timestamps exist and fall
    within tolerance, otherwise None.
    """
    if a is None or b is None or a.captured_at is None or b.captured_at is None:
        return None
    delta = abs((a.captured_at - b.captured_at).total_seconds())
    if delta <= tolerance_seconds:
        return delta
    return None


def cameras_match(a: ExifData | None, b: ExifData | None) -> bool:
    if a is None or b is None:
        return False
    camera_a = a.camera
    camera_b = b.camera
    if not camera_a or not camera_b:
        return False
    return camera_a.casefold() == camera_b.casefold()


def filename_tokens(path: str) -> FrozenSet[str]:
    """
    Normalize a file name into identity tokens: lower-case stem, copy
    markers stripped, split on non-alphanumerics, stopwords dropped.
    """
    stem = os.path.splitext(os.path.basename(path))[0].lower()
    stem = _COPY_SUFFIX.sub("", stem)
    tokens = {token for token in _TOKEN_SPLIT.split(stem) if token}
    return frozenset(token for token in tokens if token not in FILENAME_STOPWORDS)


def filename_overlap(path_a: str, path_b: str) -> float:
    """Jaccard overlap of normalized filename tokens (0.0 when either is empty)."""
    tokens_a = filename_tokens(path_a)
    tokens_b = filename_tokens(path_b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
