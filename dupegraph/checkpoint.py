"""
Module: checkpoint
Purpose: Resumable on-disk fingerprint index keyed by path, size and mtime.
"""

import json
import os
import tempfile
from dataclasses import asdict, replace
from datetime import datetime
from typing import Any, Dict, Optional

from .exceptions import CheckpointError, IndexCorruptionError
from .models.record import ExifData, ImageRecord, SourceFile
from .utils import log_info, log_warning

CHECKPOINT_VERSION = 1
_RECORD_FIELDS = ("path", "byte_size", "width", "height", "format", "exact_hash", "perceptual_hash", "mtime")


def record_to_entry(record: ImageRecord) -> Dict[str, Any]:
    entry = {name: getattr(record, name) for name in _RECORD_FIELDS}
    if record.exif is None:
        entry["exif"] = None
    else:
        exif = asdict(record.exif)
        if record.exif.captured_at is not None:
            exif["captured_at"] = record.exif.captured_at.isoformat()
        entry["exif"] = exif
    return entry


def entry_to_record(entry: Dict[str, Any], record_id: int) -> ImageRecord:
    """
    Rebuild a record from a checkpoint entry.

    Raises:
        IndexCorruptionError: If the entry is malformed.
    """
    try:
        exif_entry = entry.get("exif")
        exif = None
        if exif_entry is not None:
            captured_at = exif_entry.get("captured_at")
            exif = ExifData(
                captured_at=datetime.fromisoformat(captured_at) if captured_at else None,
                camera_make=exif_entry.get("camera_make"),
                camera_model=exif_entry.get("camera_model"),
                orientation=exif_entry.get("orientation"),
            )
        record = ImageRecord(
            id=record_id,
            path=str(entry["path"]),
            byte_size=int(entry["byte_size"]),
            width=int(entry["width"]),
            height=int(entry["height"]),
            format=str(entry["format"]),
            exact_hash=str(entry["exact_hash"]),
            perceptual_hash=str(entry["perceptual_hash"]),
            exif=exif,
            mtime=float(entry["mtime"]),
        )
        int(record.perceptual_hash, 16)
        return record
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise IndexCorruptionError(f"Malformed checkpoint entry: {exc}") from exc


class CheckpointStore:
    """
    Mapping from (path, size, mtime) to previously computed fingerprints.

    Loaded once at start and rewritten at the end of a run. An unreadable or
    inconsistent file is discarded as a whole, never trusted partially.
    """

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        self.corrupt = False
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._fresh: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def ensure_writable(self) -> None:
        """
        Raises:
            CheckpointError: If the checkpoint location cannot be written.
        """
        directory = os.path.dirname(self.path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise CheckpointError(f"Checkpoint directory {directory} cannot be created: {exc}") from exc
        if not os.access(directory, os.W_OK):
            raise CheckpointError(f"Checkpoint directory {directory} is not writable")
        if os.path.exists(self.path) and not os.access(self.path, os.W_OK):
            raise CheckpointError(f"Checkpoint file {self.path} is not writable")

    def _parse(self, raw: str) -> Dict[str, Dict[str, Any]]:
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise IndexCorruptionError(f"Checkpoint is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict) or payload.get("version") != CHECKPOINT_VERSION:
            raise IndexCorruptionError("Checkpoint version mismatch")
        entries = payload.get("entries")
        if not isinstance(entries, dict):
            raise IndexCorruptionError("Checkpoint entries missing")
        for key, entry in entries.items():
            if not isinstance(entry, dict):
                raise IndexCorruptionError(f"Checkpoint entry {key!r} is not an object")
            entry_to_record(entry, -1)
        return entries

    def load(self) -> "CheckpointStore":
        self.ensure_writable()
        self._entries = {}
        self.corrupt = False
        if not os.path.exists(self.path):
            return self
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                self._entries = self._parse(handle.read())
        except (IndexCorruptionError, OSError, UnicodeDecodeError) as exc:
            log_warning(f"Discarding unreadable checkpoint {self.path}: {exc}. Rebuilding from scratch.")
            self._entries = {}
            self.corrupt = True
        else:
            log_info(f"Loaded {len(self._entries)} checkpoint entries from {self.path}")
        return self

    def get(self, source: SourceFile, record_id: int) -> Optional[ImageRecord]:
        """Return the cached record for an unchanged source, or None."""
        entry = self._entries.get(source.checkpoint_key)
        if entry is None:
            return None
        try:
            record = entry_to_record(entry, record_id)
        except IndexCorruptionError as exc:
            log_warning(f"Ignoring checkpoint entry for {source.path}: {exc}")
            return None
        if record.path != source.path or record.byte_size != source.size:
            return None
        return replace(record, mtime=source.mtime)

    def put(self, source: SourceFile, record: ImageRecord) -> None:
        self._fresh[source.checkpoint_key] = record_to_entry(record)

    def save(self, prune: bool = True) -> str:
        """
        Atomically rewrite the checkpoint.

        Args:
            prune: Keep only entries seen this run. An interrupted run passes
                False so entries for files it never reached survive.

        Raises:
            CheckpointError: If the file cannot be written.
        """
        directory = os.path.dirname(self.path) or "."
        entries = dict(self._fresh) if prune else {**self._entries, **self._fresh}
        payload = {"version": CHECKPOINT_VERSION, "entries": dict(sorted(entries.items()))}
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".checkpoint-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=1)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise CheckpointError(f"Unable to write checkpoint {self.path}: {exc}") from exc
        log_info(f"Checkpoint saved with {len(entries)} entries to {self.path}")
        return self.path
