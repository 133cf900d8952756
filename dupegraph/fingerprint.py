"""
Module: fingerprint
Purpose: Turn one decoded image plus its raw bytes into an ImageRecord.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image

from .decoder import decode_image
from .exceptions import DecodeError, MetadataError, SourceReadError
from .hashing import compute_phash, iter_bytes, sha256_chunks
from .metadata import exif_blob_from_image, parse_exif
from .models.record import ImageRecord, SourceFile
from .utils import log_error, log_warning

Decoder = Callable[[bytes], Image.Image]

SKIP_DECODE_ERROR = "decode_error"
SKIP_IO_ERROR = "io_error"


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of fingerprinting one source; exactly one of record/skip_reason is set."""
    source: SourceFile
    record: Optional[ImageRecord] = None
    skip_reason: Optional[str] = None
    detail: str = ""
    metadata_warning: bool = False


def extract_fingerprint(
    record_id: int,
    path: str,
    raw_bytes: bytes,
    image: Image.Image,
    exif_blob: bytes | None = None,
    mtime: float = 0.0,
) -> tuple[ImageRecord, bool]:
    """
    Build the multi-signal fingerprint for one decoded image.

    Args:
        record_id: Identifier assigned at ingestion.
        path: Original location (informational).
        raw_bytes: Undecoded file contents.
        image: Decoded pixel buffer.
        exif_blob: Raw EXIF block; taken from the image when omitted.
        mtime: Source modification time.

    Returns:
        Tuple of (record, metadata_warning). The flag is set when an EXIF
        block was present but unparsable.

    Raises:
        DecodeError: If the pixel buffer cannot be hashed.
    """
    exact_hash = sha256_chunks(iter_bytes(raw_bytes))
    perceptual_hash = compute_phash(image)

    blob = exif_blob if exif_blob is not None else exif_blob_from_image(image)
    metadata_warning = False
    try:
        exif = parse_exif(blob)
    except MetadataError as exc:
        log_warning(f"Proceeding without EXIF for {path}: {exc}")
        exif = None
        metadata_warning = True

    width, height = image.size
    record = ImageRecord(
        id=record_id,
        path=path,
        byte_size=len(raw_bytes),
        width=width,
        height=height,
        format=(image.format or "unknown").lower(),
        exact_hash=exact_hash,
        perceptual_hash=perceptual_hash,
        exif=exif,
        mtime=mtime,
    )
    return record, metadata_warning


def read_source_bytes(source: SourceFile, attempts: int = 3, backoff_seconds: float = 0.05) -> bytes:
    """
    Return the raw bytes for a source, retrying transient read failures.

    Raises:
        SourceReadError: When every attempt fails.
    """
    if source.data is not None:
        return source.data
    last_error: OSError | None = None
    for attempt in range(attempts):
        try:
            with open(source.path, "rb") as handle:
                return handle.read()
        except OSError as exc:
            last_error = exc
            if attempt + 1 < attempts:
                time.sleep(backoff_seconds * (2 ** attempt))
    log_error(f"Giving up on {source.path} after {attempts} read attempts: {last_error}")
    raise SourceReadError(f"Failed to read {source.path}: {last_error}") from last_error


def fingerprint_source(
    record_id: int,
    source: SourceFile,
    decoder: Decoder = decode_image,
    attempts: int = 3,
    backoff_seconds: float = 0.05,
) -> ExtractionResult:
    """
    Read, decode and fingerprint a single source.
    Designed to be used with a process pool; never raises for per-file errors.
    """
    try:
        raw_bytes = read_source_bytes(source, attempts, backoff_seconds)
    except SourceReadError as exc:
        return ExtractionResult(source=source, skip_reason=SKIP_IO_ERROR, detail=str(exc))

    try:
        image = decoder(raw_bytes)
    except DecodeError as exc:
        log_error(f"Skipping undecodable file {source.path}: {exc}")
        return ExtractionResult(source=source, skip_reason=SKIP_DECODE_ERROR, detail=str(exc))

    try:
        record, metadata_warning = extract_fingerprint(
            record_id,
            source.path,
            raw_bytes,
            image,
            exif_blob=source.exif_blob,
            mtime=source.mtime,
        )
    except DecodeError as exc:
        log_error(f"Skipping unhashable file {source.path}: {exc}")
        return ExtractionResult(source=source, skip_reason=SKIP_DECODE_ERROR, detail=str(exc))
    finally:
        image.close()
    return ExtractionResult(source=source, record=record, metadata_warning=metadata_warning)


def fingerprint_task(task: tuple) -> ExtractionResult:
    record_id, source, decoder, attempts, backoff_seconds = task
    return fingerprint_source(record_id, source, decoder, attempts, backoff_seconds)
