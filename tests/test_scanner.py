import os

import pytest

from dupegraph import scanner
from dupegraph.exceptions import ScanError


def test_scan_paths_filters_supported(tmp_path):
    root = tmp_path / "photos"
    root.mkdir()
    jpg = root / "a.jpg"
    jpg.write_bytes(b"123")
    txt = root / "note.txt"
    txt.write_text("ignore")

    res = scanner.scan_paths([str(root)])
    assert len(res) == 1
    source = res[0]
    assert source.path.endswith("a.jpg")
    assert source.size == 3
    assert source.mtime == os.stat(jpg).st_mtime
    assert source.data is None


def test_scan_paths_sorted_and_deduplicated(tmp_path):
    root = tmp_path / "photos"
    (root / "nested").mkdir(parents=True)
    for name in ("b.PNG", "a.jpg", "nested/c.heic"):
        (root / name).write_bytes(b"x")

    res = scanner.scan_paths([str(root), str(root / "nested")])
    assert [os.path.relpath(s.path, root) for s in res] == [
        "a.jpg",
        "b.PNG",
        os.path.join("nested", "c.heic"),
    ]


def test_scan_paths_skips_hidden_entries(tmp_path):
    root = tmp_path / "photos"
    (root / ".thumbnails").mkdir(parents=True)
    (root / ".thumbnails" / "t.jpg").write_bytes(b"x")
    (root / ".hidden.jpg").write_bytes(b"x")
    (root / "visible.jpg").write_bytes(b"x")

    res = scanner.scan_paths([str(root)])
    assert [os.path.basename(s.path) for s in res] == ["visible.jpg"]


def test_scan_paths_does_not_follow_symlinks(tmp_path):
    root = tmp_path / "photos"
    root.mkdir()
    (root / "real.jpg").write_bytes(b"x")
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "other.jpg").write_bytes(b"x")
    try:
        os.symlink(root / "real.jpg", root / "link.jpg")
        os.symlink(outside, root / "linked_dir")
        os.symlink(root, root / "loop")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")

    res, skipped = scanner.scan_paths_with_stats([str(root)])
    assert [os.path.basename(s.path) for s in res] == ["real.jpg"]
    assert skipped == 3


def test_scan_paths_skips_unreadable_files(monkeypatch, tmp_path):
    root = tmp_path / "photos"
    root.mkdir()
    (root / "good.jpg").write_bytes(b"ok")
    (root / "bad.jpg").write_bytes(b"x")

    original_stat = scanner.os.stat

    def fake_stat(path, *args, **kwargs):
        if str(path).endswith("bad.jpg"):
            raise OSError("boom")
        return original_stat(path, *args, **kwargs)

    logged: list[str] = []
    monkeypatch.setattr(scanner, "log_error", logged.append)
    monkeypatch.setattr(scanner.os, "stat", fake_stat)

    res = scanner.scan_paths([str(root)])

    assert len(res) == 1
    assert res[0].path.endswith("good.jpg")
    assert any("bad.jpg" in entry for entry in logged)


@pytest.mark.parametrize("paths", [[], "not-a-list"])
def test_scan_paths_rejects_bad_arguments(paths):
    with pytest.raises(ScanError):
        scanner.scan_paths(paths)


def test_scan_paths_rejects_missing_and_non_directory(tmp_path):
    with pytest.raises(ScanError):
        scanner.scan_paths([str(tmp_path / "missing")])
    afile = tmp_path / "a.jpg"
    afile.write_bytes(b"x")
    with pytest.raises(ScanError):
        scanner.scan_paths([str(afile)])
