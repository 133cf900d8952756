import json
import os

import pytest
from PIL import Image

from conftest import block_image
from dupegraph import cli, utils


def make_library(root):
    photos = root / "photos"
    photos.mkdir()
    img = block_image(8, size=64)
    img.save(photos / "original.png")
    img.save(photos / "original_copy.png")
    block_image(9, size=64).save(photos / "other.jpg", quality=95)
    (photos / "notes.txt").write_text("ignore me")
    return photos


def snapshot(directory):
    return {
        name: (directory / name).read_bytes()
        for name in sorted(os.listdir(directory))
    }


def test_plan_writes_reports_and_leaves_files_untouched(tmp_path, capsys):
    photos = make_library(tmp_path)
    before = snapshot(photos)

    code = cli.main(["plan", str(photos), "--out-dir", str(tmp_path / "out")])

    assert code == cli.EXIT_OK
    assert snapshot(photos) == before
    out = capsys.readouterr().out
    assert "DRY RUN (plan only): 3 files in 2 clusters" in out
    report = json.loads((tmp_path / "out" / "dedupe_report.json").read_text())
    assert report["duplicate_cluster_count"] == 1
    plan = json.loads((tmp_path / "out" / "action_plan.json").read_text())
    assert plan["dry_run"] is True
    assert (tmp_path / "out" / "dedupe_report.csv").exists()


def test_plan_for_execution_with_delete_policy(tmp_path):
    photos = make_library(tmp_path)
    code = cli.main(["plan", str(photos), "--policy", "delete", "--for-execution", "--out-dir", "out"])
    assert code == cli.EXIT_OK
    plan = json.loads((tmp_path / "out" / "action_plan.json").read_text())
    assert plan["dry_run"] is False
    assert plan["disposition_counts"]["delete"] == 1
    assert (photos / "original_copy.png").exists()


def test_plan_with_checkpoint_reuses_fingerprints(tmp_path, capsys):
    photos = make_library(tmp_path)
    checkpoint = str(tmp_path / "state" / "checkpoint.json")
    assert cli.main(["plan", str(photos), "--checkpoint", checkpoint]) == cli.EXIT_OK
    capsys.readouterr()
    assert cli.main(["plan", str(photos), "--checkpoint", checkpoint]) == cli.EXIT_OK
    assert "from checkpoint: 3" in capsys.readouterr().out


def test_invalid_thresholds_exit_with_config_error(tmp_path, capsys):
    photos = make_library(tmp_path)
    code = cli.main(["plan", str(photos), "--tight", "12", "--loose", "10"])
    assert code == cli.EXIT_CONFIG
    assert "Configuration error" in capsys.readouterr().out
    assert not (tmp_path / "artifacts" / "dedupe_report.json").exists()


def test_unknown_method_is_a_config_error(tmp_path):
    photos = make_library(tmp_path)
    assert cli.main(["plan", str(photos), "--methods", "exact,colour"]) == cli.EXIT_CONFIG


def test_missing_directory_fails(tmp_path, capsys):
    code = cli.main(["plan", str(tmp_path / "missing")])
    assert code == cli.EXIT_FAILURE
    assert "Path does not exist" in capsys.readouterr().out


def test_scan_lists_candidates(tmp_path, capsys):
    photos = make_library(tmp_path)
    assert cli.main(["scan", str(photos)]) == cli.EXIT_OK
    out = capsys.readouterr().out
    assert "3 candidate files" in out
    assert "notes.txt" not in out


def test_max_pixels_argument_validation(monkeypatch, tmp_path):
    monkeypatch.setenv(utils.PIXEL_LIMIT_ENV, str(utils.DEFAULT_PIXEL_LIMIT))
    photos = make_library(tmp_path)
    with pytest.raises(SystemExit):
        cli.main(["--max-pixels", "10", "scan", str(photos)])
    assert cli.main(["--max-pixels", str(utils.DEFAULT_PIXEL_LIMIT + 1), "scan", str(photos)]) == cli.EXIT_OK
    assert Image.MAX_IMAGE_PIXELS == utils.DEFAULT_PIXEL_LIMIT + 1
    monkeypatch.delenv(utils.PIXEL_LIMIT_ENV)
    utils.configure_pixel_limit(None)


def test_sensitivity_choice_is_validated(tmp_path):
    photos = make_library(tmp_path)
    with pytest.raises(SystemExit):
        cli.main(["plan", str(photos), "--sensitivity", "extreme"])
