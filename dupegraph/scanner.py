"""
Module: scanner
Purpose: Directory walking that feeds SourceFile entries to the engine.
"""

import os
from typing import List

from .exceptions import ScanError
from .models.record import SourceFile
from .utils import log_error, log_warning

SUPPORTED_FORMATS = {
    "jpeg",
    "jpg",
    "png",
    "heic",
    "heif",
    "tiff",
    "tif",
    "bmp",
    "gif",
    "webp",
}


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def scan_paths(paths: List[str]) -> List[SourceFile]:
    """
    Recursively scan directories and return SourceFile entries
    (path, size, mtime) sorted by path.

    Args:
        paths: List of directory paths to scan.

    Returns:
        List of SourceFile entries without file contents.

    Raises:
        ScanError: If validation fails.
    """
    results, _ = scan_paths_with_stats(paths)
    return results


def scan_paths_with_stats(paths: List[str]) -> tuple[List[SourceFile], int]:
    """
    Recursively scan directories. Hidden entries are ignored and symlinks
    are never followed, which also rules out symlink loops.

    Args:
        paths: List of directory paths to scan.

    Returns:
        Tuple of (SourceFile list sorted by path, skipped symlink count).

    Raises:
        ScanError: If validation fails.
    """
    if not paths or not isinstance(paths, list):
        log_error("Invalid paths argument supplied to scan_paths")
        raise ScanError("paths must be a non-empty list")

    normalized_paths = [os.path.abspath(p) for p in paths]
    results: dict[str, SourceFile] = {}
    skipped_symlinks = 0

    for path in normalized_paths:
        if not os.path.exists(path):
            log_error(f"Path does not exist: {path}")
            raise ScanError(f"Path does not exist: {path}")
        if not os.path.isdir(path):
            log_error(f"Path is not a directory: {path}")
            raise ScanError(f"Path is not a directory: {path}")
        for root, dirs, files in os.walk(path, topdown=True, followlinks=False):
            safe_dirs: List[str] = []
            for dirname in sorted(dirs):
                if is_hidden(dirname):
                    continue
                dir_path = os.path.join(root, dirname)
                if os.path.islink(dir_path):
                    skipped_symlinks += 1
                    log_warning(f"Skipping symlinked directory during scan: {dir_path}")
                    continue
                safe_dirs.append(dirname)
            dirs[:] = safe_dirs
            for name in files:
                if is_hidden(name):
                    continue
                file_path = os.path.abspath(os.path.join(root, name))
                if os.path.islink(file_path):
                    skipped_symlinks += 1
                    log_warning(f"Skipping symlinked file during scan: {file_path}")
                    continue
                _, ext = os.path.splitext(file_path)
                if ext.lstrip(".").lower() not in SUPPORTED_FORMATS:
                    continue
                try:
                    stat = os.stat(file_path)
                except OSError as exc:
                    log_error(f"Failed to read file info for {file_path}: {exc}")
                    continue
                results[file_path] = SourceFile(path=file_path, size=stat.st_size, mtime=stat.st_mtime)

    return [results[key] for key in sorted(results)], skipped_symlinks
