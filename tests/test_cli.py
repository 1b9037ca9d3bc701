import os

import orjson
import pytest
from click.testing import CliRunner

from dataset_forge.__main__ import ExitCodes, cli


@pytest.fixture
def invoke(tmp_path):
    runner = CliRunner()

    def _invoke(*args):
        return runner.invoke(cli, ["--logs-dir", str(tmp_path / "logs"), *args])

    return _invoke


def count_files(root):
    return sum(len(files) for _, _, files in os.walk(root))


def test_estimate_prints_budget(tmp_path, invoke):
    root = tmp_path / "ds"
    result = invoke(
        "build", str(root), "--width", "3", "--depth", "3", "--max-files", "3",
        "--min-size", "10KB", "--max-size", "10MB", "--estimate", "--seed", "1",
    )
    assert result.exit_code == ExitCodes.SUCCESS, result.output
    assert "Minimum:  90.00 KB (9 files)" in result.output
    assert "Maximum:  270.00 MB (27 files)" in result.output
    assert "Expected:" in result.output
    assert not root.exists()


def test_build_from_spec_file_with_gauge(tmp_path, invoke):
    spec = tmp_path / "spec.json"
    spec.write_bytes(orjson.dumps({"foldersWidth": 2, "foldersDepth": 2, "maxFilesPerDir": 3}))
    root = tmp_path / "ds"

    result = invoke("build", str(root), "--spec", str(spec), "--gauge", "tiny", "--seed", "3")
    assert result.exit_code == ExitCodes.SUCCESS, result.output
    assert "Created:" in result.output
    assert count_files(root) >= 4
    log_lines = (tmp_path / "logs" / "dataset_forge.jsonl").read_text(encoding="utf-8").splitlines()
    events = [orjson.loads(line)["event"] for line in log_lines]
    assert "build_started" in events and "build_finished" in events


def test_build_missing_fields_is_usage_error(tmp_path, invoke):
    result = invoke("build", str(tmp_path / "ds"), "--width", "2", "--depth", "2")
    assert result.exit_code == ExitCodes.USAGE
    assert "maxFilesPerDir" in result.output


def test_build_inverted_dates(tmp_path, invoke):
    result = invoke(
        "build", str(tmp_path / "ds"), "--width", "1", "--depth", "1", "--max-files", "1",
        "--gauge", "tiny", "--min-date", "2021-01-01", "--max-date", "2020-01-01",
    )
    assert result.exit_code == ExitCodes.USAGE
    assert not (tmp_path / "ds").exists()


def test_build_missing_spec_file(tmp_path, invoke):
    result = invoke("build", str(tmp_path / "ds"), "--spec", str(tmp_path / "nope.json"))
    assert result.exit_code == ExitCodes.NOT_FOUND


def test_scan_writes_snapshot_and_summary(tmp_path, invoke):
    root = tmp_path / "ds"
    invoke("build", str(root), "--width", "2", "--depth", "1", "--max-files", "1",
           "--min-size", "5", "--max-size", "5")
    out = tmp_path / "snap.json"

    result = invoke("scan", str(root), "--out", str(out), "--pretty")
    assert result.exit_code == ExitCodes.SUCCESS, result.output
    assert "Directories" in result.output and "Files" in result.output
    payload = orjson.loads(out.read_bytes())
    kinds = [e["kind"] for e in payload["entries"]]
    assert kinds.count("file") == 2
    assert kinds.count("directory") == 4


def test_scan_missing_root(tmp_path, invoke):
    result = invoke("scan", str(tmp_path / "missing"))
    assert result.exit_code == ExitCodes.NOT_FOUND


def test_mutate_rewrites_files(tmp_path, invoke):
    root = tmp_path / "ds"
    invoke("build", str(root), "--width", "2", "--depth", "2", "--max-files", "1",
           "--min-size", "64", "--max-size", "64")

    result = invoke("mutate", str(root), "--perc-files", "50", "--perc-data", "150", "--seed", "2")
    assert result.exit_code == ExitCodes.SUCCESS, result.output
    sizes = sorted(
        os.path.getsize(os.path.join(d, f)) for d, _, files in os.walk(root) for f in files
    )
    assert sizes == [64, 64, 96, 96]


def test_mutate_invalid_percentage(tmp_path, invoke):
    tmp_path.joinpath("ds").mkdir()
    result = invoke("mutate", str(tmp_path / "ds"), "--perc-files", "0")
    assert result.exit_code == ExitCodes.USAGE


def test_mutate_from_snapshot(tmp_path, invoke):
    root = tmp_path / "ds"
    invoke("build", str(root), "--width", "1", "--depth", "1",
           "--max-files", "1", "--min-size", "64", "--max-size", "64")
    snap = tmp_path / "snap.json"
    invoke("scan", str(root), "--out", str(snap))

    result = invoke("mutate", str(root), "--perc-files", "100",
                    "--perc-data", "150", "--snapshot", str(snap))
    assert result.exit_code == ExitCodes.SUCCESS, result.output
    (path,) = [os.path.join(d, f) for d, _, files in os.walk(root) for f in files]
    assert os.path.getsize(path) == 96


def test_mutate_malformed_snapshot(tmp_path, invoke):
    tmp_path.joinpath("ds").mkdir()
    snap = tmp_path / "snap.json"
    snap.write_bytes(b"{}")
    result = invoke("mutate", str(tmp_path / "ds"), "--perc-files", "10",
                    "--snapshot", str(snap))
    assert result.exit_code == ExitCodes.WRITE_ERROR
