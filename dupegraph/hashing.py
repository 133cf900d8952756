"""Hashing helpers for duplicate detection."""

import hashlib
from typing import Iterable, List

import numpy as np
from PIL import Image

from .exceptions import DecodeError
from .utils import log_error

CHUNK_SIZE = 65536
GRID_SIZE = 8
HASH_BITS = GRID_SIZE * GRID_SIZE
HASH_HEX_WIDTH = HASH_BITS // 4
HIGH_DEPTH_MODES = frozenset({"I", "I;16", "I;16L", "I;16B", "I;16N", "F"})


def sha256_chunks(chunks: Iterable[bytes]) -> str:
    """Streaming SHA256 over an iterable of byte chunks."""
    sha = hashlib.sha256()
    for chunk in chunks:
        sha.update(chunk)
    return sha.hexdigest()


def iter_bytes(data: bytes, chunk_size: int = CHUNK_SIZE):
    view = memoryview(data)
    for start in range(0, len(view), chunk_size):
        yield view[start:start + chunk_size]


def _overlap_weights(length: int, bins: int = GRID_SIZE) -> np.ndarray:
    """
    Integer area weights mapping `length` samples onto `bins` cells.

    Sample i covers [i*bins, (i+1)*bins) and cell b covers
    [b*length, (b+1)*length) on a common integer axis. The matrix is
    symmetric under reversal of both axes, so the downsample commutes
    exactly with flips and 90 degree rotations.
    """
    samples = np.arange(length, dtype=np.int64)
    cells = np.arange(bins, dtype=np.int64)[:, None]
    low = np.maximum(samples * bins, cells * length)
    high = np.minimum((samples + 1) * bins, (cells + 1) * length)
    return np.clip(high - low, 0, None)


def _gray_pixels(image: Image.Image) -> np.ndarray:
    """
    8-bit grayscale intensities. High bit depth modes are stretched onto
    0..255 instead of going through convert("L"), which clips them at 255.
    """
    if image.mode not in HIGH_DEPTH_MODES:
        return np.asarray(image.convert("L"), dtype=np.int64)
    pixels = np.nan_to_num(np.asarray(image, dtype=np.float64))
    low, high = float(pixels.min()), float(pixels.max())
    if high <= low:
        return np.zeros(pixels.shape, dtype=np.int64)
    return np.rint((pixels - low) * (255.0 / (high - low))).astype(np.int64)


def downsample_grid(image: Image.Image, size: int = GRID_SIZE) -> np.ndarray:
    """
    Grayscale and area-average the image onto a size x size grid of
    integer sums (every cell carries the same total weight).
    """
    width, height = image.size
    if width == 0 or height == 0:
        raise DecodeError("Image has no pixels")
    pixels = _gray_pixels(image)
    rows = _overlap_weights(height, size)
    cols = _overlap_weights(width, size)
    return rows @ pixels @ cols.T


def _grid_bits(grid: np.ndarray) -> np.ndarray:
    total = int(grid.sum())
    return grid * grid.size > total


def pack_bits(bits: np.ndarray) -> int:
    value = 0
    for bit in bits.flatten():
        value = (value << 1) | int(bool(bit))
    return value


def unpack_bits(value: int, size: int = GRID_SIZE) -> np.ndarray:
    count = size * size
    flat = [(value >> (count - 1 - index)) & 1 for index in range(count)]
    return np.array(flat, dtype=bool).reshape(size, size)


def hash_rotations(value: int) -> List[int]:
    """Return the hash of the 0/90/180/270 degree rotations of a grid hash."""
    bits = unpack_bits(value)
    return [pack_bits(np.rot90(bits, k)) for k in range(4)]


def canonical_hash(grid: np.ndarray) -> int:
    """
    Smallest bit vector across the four rotations of the grid.
    """
    bits = _grid_bits(grid)
    return min(pack_bits(np.rot90(bits, k)) for k in range(4))


def compute_phash(image: Image.Image) -> str:
    """
    Compute the rotation-canonical average hash of a decoded image.

    Args:
        image: Decoded Pillow image.

    Returns:
        16-character hex string.

    Raises:
        DecodeError: If the pixel data cannot be read.
    """
    try:
        grid = downsample_grid(image)
    except DecodeError:
        raise
    except Exception as exc:
        log_error(f"Failed to compute perceptual hash: {exc}")
        raise DecodeError("Failed to compute perceptual hash") from exc
    return format_hash(canonical_hash(grid))


def format_hash(value: int) -> str:
    return f"{value:0{HASH_HEX_WIDTH}x}"


def parse_hash(value: str) -> int:
    return int(value, 16)


def hamming_distance(a: int, b: int) -> int:
    return (a ^ b).bit_count()

