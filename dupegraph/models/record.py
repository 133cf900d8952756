"""
Module: record
Purpose: Dataclasses for source files and fingerprinted image records.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ExifData:
    """
    Best-effort EXIF fields. Any field may be missing.
    """

    captured_at: Optional[datetime] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    orientation: Optional[int] = None

    @property
    def camera(self) -> Optional[str]:
        parts = [part for part in (self.camera_make, self.camera_model) if part]
        if not parts:
            return None
        return " ".join(parts)

    def is_empty(self) -> bool:
        return (
            self.captured_at is None
            and self.camera_make is None
            and self.camera_model is None
            and self.orientation is None
        )


@dataclass(frozen=True)
class SourceFile:
    """
    One candidate file handed over by the directory walker.
    When `data` is None the bytes are streamed from `path`.
    """

    path: str
    size: int
    mtime: float
    data: Optional[bytes] = None
    exif_blob: Optional[bytes] = None

    @property
    def checkpoint_key(self) -> str:
        return f"{self.path}|{self.size}|{self.mtime!r}"


@dataclass(frozen=True)
class ImageRecord:
    """
    Fingerprint of a single successfully decoded image.
    """

    id: int
    path: str
    byte_size: int
    width: int
    height: int
    format: str
    exact_hash: str
    perceptual_hash: str
    exif: Optional[ExifData]
    mtime: float = 0.0

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def captured_at(self) -> Optional[datetime]:
        if self.exif is None:
            return None
        return self.exif.captured_at
