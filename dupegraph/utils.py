"""
Module: utils
Purpose: Process-wide decoder settings, console helpers and run-log wrappers.
"""

import os
from typing import Tuple

from PIL import Image

from . import reporting
from .exceptions import DupegraphError

DEFAULT_PIXEL_LIMIT = 50_000_000  # Pillow refuses larger images unless raised
MAX_OVERRIDE_LIMIT = 90_000_000
PIXEL_LIMIT_ENV = "DUPEGRAPH_MAX_PIXELS"

COLOR_RESET = "\033[0m"
COLOR_GREEN = "\033[32m"
COLOR_RED = "\033[31m"
COLOR_YELLOW = "\033[33m"

_SIZE_UNITS = (("GB", 1024**3), ("MB", 1024**2), ("KB", 1024))

# (limit, source) for this process; worker processes pick it up from the env.
_pixel_limit: Tuple[int, str] = (DEFAULT_PIXEL_LIMIT, "default")


def check_pixel_limit(value: int) -> int:
    if not DEFAULT_PIXEL_LIMIT <= value <= MAX_OVERRIDE_LIMIT:
        raise ValueError(
            f"Pixel limit must be between {DEFAULT_PIXEL_LIMIT:,} and {MAX_OVERRIDE_LIMIT:,}."
        )
    return value


def configure_pixel_limit(override: int | None = None) -> Tuple[int, str]:
    """
    Set the decompression-bomb limit used by the decoder.

    Precedence is override > DUPEGRAPH_MAX_PIXELS > default. An override is
    exported to the environment so worker processes decode with the same
    limit. Returns (limit, source).

    Raises:
        ValueError: If the override is outside the accepted range.
    """
    global _pixel_limit
    if override is not None:
        setting = (check_pixel_limit(override), "cli")
        os.environ[PIXEL_LIMIT_ENV] = str(override)
    else:
        setting = (DEFAULT_PIXEL_LIMIT, "default")
        raw = os.getenv(PIXEL_LIMIT_ENV)
        if raw:
            try:
                setting = (check_pixel_limit(int(raw)), "env")
            except ValueError:
                log_warning(
                    f"Ignoring invalid {PIXEL_LIMIT_ENV} value '{raw}'; "
                    f"using {DEFAULT_PIXEL_LIMIT:,} pixels."
                )
    _pixel_limit = setting
    Image.MAX_IMAGE_PIXELS = setting[0]
    return setting


def current_pixel_limit() -> int:
    return _pixel_limit[0]


def pixel_limit_source() -> str:
    return _pixel_limit[1]


def enforce_pixel_limit() -> None:
    """Re-apply the configured limit in case another caller changed Pillow's global."""
    if Image.MAX_IMAGE_PIXELS != _pixel_limit[0]:
        Image.MAX_IMAGE_PIXELS = _pixel_limit[0]


def ensure_heif_registered() -> None:
    # pillow-heif is an optional extra; without it HEIC files fail to decode and are skipped.
    try:
        from pillow_heif import register_heif_opener
    except Exception:
        return
    try:
        register_heif_opener()
    except Exception as exc:
        log_error(f"HEIF registration failed: {exc}")


def color_text(text: str, color: str) -> str:
    return f"{color}{text}{COLOR_RESET}"


def human_readable_size(size: int) -> str:
    """
    Format a byte count for the scan summary, e.g. "2.00 KB".
    """
    for suffix, unit in _SIZE_UNITS:
        if size >= unit:
            return f"{size / unit:.2f} {suffix}"
    return f"{size} B"


def ensure_directory(path: str) -> str:
    """
    Create `path` (and parents) for report output.

    Returns:
        The absolute directory path.

    Raises:
        DupegraphError: If the directory cannot be created.
    """
    normalized = os.path.abspath(path)
    try:
        os.makedirs(normalized, exist_ok=True)
    except OSError as exc:
        log_error(f"Failed to create output directory {normalized}: {exc}")
        raise DupegraphError(f"Unable to create directory: {normalized}") from exc
    return normalized


def _log(level: str, message: str) -> None:
    reporting.write_log([f"[{level}] {message}"])


def log_error(message: str) -> None:
    _log("ERROR", message)


def log_warning(message: str) -> None:
    _log("WARNING", message)


def log_info(message: str) -> None:
    _log("INFO", message)


# Worker processes import this module fresh and inherit the exported limit.
configure_pixel_limit(None)
