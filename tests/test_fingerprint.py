import io
from datetime import datetime

import pytest
from PIL import Image

from conftest import block_image
from dupegraph import decoder, fingerprint, utils
from dupegraph.exceptions import DecodeError, SourceReadError
from dupegraph.models.record import SourceFile


def encode(img: Image.Image, fmt: str = "PNG", **params) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, **params)
    return buffer.getvalue()


def exif_bytes(stamp: str) -> bytes:
    exif = Image.Exif()
    exif[0x0132] = stamp
    return exif.tobytes()


def test_decode_image_loads_pixels():
    img = decoder.decode_image(encode(block_image(1, size=64)))
    assert img.size == (64, 64)
    assert img.format == "PNG"


@pytest.mark.parametrize("data", [b"", b"not an image", encode(block_image(1))[:40]])
def test_decode_image_rejects_bad_data(data):
    with pytest.raises(DecodeError):
        decoder.decode_image(data)


def test_decode_image_refuses_decompression_bombs(monkeypatch):
    monkeypatch.setattr(utils, "_pixel_limit", (1000, "cli"))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", Image.MAX_IMAGE_PIXELS)
    data = encode(Image.new("L", (100, 100)))
    with pytest.raises(DecodeError):
        decoder.decode_image(data)


def test_fingerprint_source_builds_full_record(tmp_path):
    data = encode(block_image(2, size=80), "JPEG", exif=exif_bytes("2018:03:04 05:06:07"))
    path = tmp_path / "shot.jpg"
    path.write_bytes(data)
    source = SourceFile(path=str(path), size=len(data), mtime=12.5)

    result = fingerprint.fingerprint_source(3, source)

    record = result.record
    assert result.skip_reason is None
    assert record.id == 3
    assert (record.width, record.height) == (80, 80)
    assert record.format == "jpeg"
    assert record.byte_size == len(data)
    assert len(record.exact_hash) == 64
    assert len(record.perceptual_hash) == 16
    assert record.captured_at == datetime(2018, 3, 4, 5, 6, 7)
    assert record.mtime == 12.5


def test_fingerprint_source_uses_inline_bytes_and_exif_blob():
    data = encode(block_image(2, size=32))
    source = SourceFile(path="/virtual/a.png", size=len(data), mtime=0.0, data=data,
                        exif_blob=exif_bytes("2001:01:01 00:00:00"))
    record = fingerprint.fingerprint_source(0, source).record
    assert record.captured_at == datetime(2001, 1, 1)


def test_unparsable_exif_keeps_record_without_metadata():
    data = encode(block_image(4, size=32))
    source = SourceFile(path="/virtual/a.png", size=len(data), mtime=0.0, data=data, exif_blob=b"garbage!")
    result = fingerprint.fingerprint_source(0, source)
    assert result.record is not None
    assert result.record.exif is None
    assert result.metadata_warning


def test_corrupt_file_is_skipped_with_decode_error():
    source = SourceFile(path="/virtual/broken.jpg", size=5, mtime=0.0, data=b"\xff\xd8\xff\x00\x00")
    result = fingerprint.fingerprint_source(0, source)
    assert result.record is None
    assert result.skip_reason == fingerprint.SKIP_DECODE_ERROR


def test_custom_decoder_is_used():
    calls = []

    def fake_decoder(data: bytes) -> Image.Image:
        calls.append(data)
        return block_image(5, size=16)

    source = SourceFile(path="/virtual/raw.bin", size=3, mtime=0.0, data=b"raw")
    record = fingerprint.fingerprint_source(0, source, decoder=fake_decoder).record
    assert calls == [b"raw"]
    assert record.format == "unknown"


def test_read_retries_transient_failures(monkeypatch, tmp_path):
    path = tmp_path / "flaky.png"
    path.write_bytes(encode(block_image(6, size=16)))
    real_open = open
    failures = iter([OSError("busy"), OSError("busy")])

    def flaky_open(file, *args, **kwargs):
        if str(file) == str(path):
            error = next(failures, None)
            if error is not None:
                raise error
        return real_open(file, *args, **kwargs)

    monkeypatch.setattr("builtins.open", flaky_open)
    source = SourceFile(path=str(path), size=0, mtime=0.0)
    assert fingerprint.read_source_bytes(source, attempts=3, backoff_seconds=0) == path.read_bytes()


def test_persistent_read_failure_is_skipped_as_io_error(tmp_path):
    source = SourceFile(path=str(tmp_path / "gone.jpg"), size=1, mtime=0.0)
    with pytest.raises(SourceReadError):
        fingerprint.read_source_bytes(source, attempts=2, backoff_seconds=0)
    result = fingerprint.fingerprint_source(0, source, attempts=2, backoff_seconds=0)
    assert result.record is None
    assert result.skip_reason == fingerprint.SKIP_IO_ERROR


def test_fingerprint_task_unpacks_tuple():
    data = encode(block_image(7, size=16))
    source = SourceFile(path="/virtual/t.png", size=len(data), mtime=0.0, data=data)
    result = fingerprint.fingerprint_task((9, source, decoder.decode_image, 1, 0.0))
    assert result.record.id == 9
