import random
from datetime import datetime

import pytest
from PIL import Image

from dupegraph.hashing import format_hash
from dupegraph.models.record import ExifData, ImageRecord


@pytest.fixture(autouse=True)
def isolated_run(tmp_path, monkeypatch):
    # Logs and artifacts land in the per-test directory; workers stay in-process.
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DUPEGRAPH_SENSITIVITY", raising=False)
    monkeypatch.setenv("DUPEGRAPH_EXECUTOR", "thread")


def block_image(seed: int, size: int = 256, cells: int = 8) -> Image.Image:
    """Picture made of cells x cells blocks, half dark and half light, shuffled by seed."""
    values = [40, 210] * (cells * cells // 2)
    random.Random(seed).shuffle(values)
    pattern = Image.new("L", (cells, cells))
    pattern.putdata(values)
    return pattern.resize((size, size), Image.NEAREST).convert("RGB")


def make_record(
    record_id: int,
    path: str | None = None,
    *,
    exact_hash: str | None = None,
    phash: int | str = 0,
    size: tuple[int, int] = (100, 100),
    byte_size: int = 1000,
    fmt: str = "jpeg",
    captured_at: datetime | None = None,
    camera: tuple[str, str] | None = None,
) -> ImageRecord:
    exif = None
    if captured_at is not None or camera is not None:
        make, model = camera or (None, None)
        exif = ExifData(captured_at=captured_at, camera_make=make, camera_model=model)
    return ImageRecord(
        id=record_id,
        path=path or f"/photos/img_{record_id:03d}.jpg",
        byte_size=byte_size,
        width=size[0],
        height=size[1],
        format=fmt,
        exact_hash=exact_hash or f"sha-{record_id}",
        perceptual_hash=phash if isinstance(phash, str) else format_hash(phash),
        exif=exif,
    )
