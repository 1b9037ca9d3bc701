import os
import random

import orjson
import pytest

from dataset_forge.builder import build_tree
from dataset_forge.errors import IOFailure, PathNotFound
from dataset_forge.scanner import (
    DIRECTORY,
    FILE,
    ROOT_TOKEN,
    iter_scan,
    load_snapshot,
    relative_to_root,
    save_snapshot,
    scan,
    summarize,
)
from dataset_forge.spec import DatasetSpec


@pytest.fixture
def small_tree(tmp_path):
    root = tmp_path / "tree"
    (root / "a" / "b").mkdir(parents=True)
    (root / "c").mkdir()
    (root / "top.bin").write_bytes(b"x" * 10)
    (root / "a" / "one.bin").write_bytes(b"x" * 20)
    (root / "a" / "b" / "two.bin").write_bytes(b"x" * 30)
    return root


def test_scan_counts_and_tags(small_tree):
    entries = scan(str(small_tree))
    dirs = [e for e in entries if e.kind == DIRECTORY]
    files = [e for e in entries if e.kind == FILE]
    assert len(entries) == 7
    assert len(dirs) == 4
    assert len(files) == 3
    assert entries[0].kind == DIRECTORY
    assert entries[0].name == "tree"
    assert entries[0].relative_directory == ROOT_TOKEN


def test_relative_directories(small_tree):
    by_name = {e.name: e for e in scan(str(small_tree))}
    assert by_name["top.bin"].relative_directory == ROOT_TOKEN
    assert by_name["one.bin"].relative_directory == os.path.join(ROOT_TOKEN, "a")
    assert by_name["two.bin"].relative_directory == os.path.join(ROOT_TOKEN, "a", "b")
    assert by_name["b"].relative_directory == os.path.join(ROOT_TOKEN, "a", "b")
    assert by_name["two.bin"].directory == str(small_tree / "a" / "b")
    assert by_name["two.bin"].path == str(small_tree / "a" / "b" / "two.bin")
    assert by_name["two.bin"].size == 30


def test_scans_of_copies_are_comparable(tmp_path):
    spec = DatasetSpec(
        folders_width=2, folders_depth=2, max_files_per_dir=3,
        min_file_size=1, max_file_size=64,
    )
    for name in ("one", "two"):
        build_tree(spec, str(tmp_path / name), rng=random.Random(5), tag_clock=lambda: 9)

    def shape(root):
        return [(e.kind, e.name, e.size, e.relative_directory) for e in scan(str(root))[1:]]

    one = shape(tmp_path / "one")
    assert one == shape(tmp_path / "two")
    assert all(rel.startswith(ROOT_TOKEN) for *_, rel in one)


def test_generated_tree_scan_matches_build(tmp_path, rng):
    spec = DatasetSpec(
        folders_width=3, folders_depth=2, max_files_per_dir=4,
        min_file_size=1, max_file_size=100,
    )
    result = build_tree(spec, str(tmp_path), rng=rng)
    summary = summarize(scan(str(tmp_path)))
    assert summary.file_count == result.file_count
    assert summary.file_size == result.total_size
    assert summary.dir_count == result.dir_count + 1


def test_relative_to_root_only_replaces_prefix():
    root = os.path.join(os.sep, "data", "set")
    assert relative_to_root(root, root) == ROOT_TOKEN
    assert relative_to_root(os.path.join(root, "x"), root) == os.path.join(ROOT_TOKEN, "x")
    assert relative_to_root(root + "tle", root) == root + "tle"


def test_missing_root(tmp_path):
    with pytest.raises(PathNotFound):
        scan(str(tmp_path / "missing"))


def test_file_root_is_rejected(tmp_path):
    target = tmp_path / "f.bin"
    target.write_bytes(b"")
    with pytest.raises(PathNotFound):
        list(iter_scan(str(target)))


def test_snapshot_round_trip(small_tree, tmp_path):
    entries = scan(str(small_tree))
    out = tmp_path / "out" / "snap.json"
    save_snapshot(entries, str(out), str(small_tree))

    payload = orjson.loads(out.read_bytes())
    assert payload["root"] == str(small_tree)
    assert len(payload["entries"]) == len(entries)
    assert "T" in payload["entries"][0]["modified"]

    restored = load_snapshot(str(out))
    assert [(e.kind, e.name, e.size, e.relative_directory) for e in restored] == [
        (e.kind, e.name, e.size, e.relative_directory) for e in entries
    ]
    for before, after in zip(entries, restored):
        assert after.modified == pytest.approx(before.modified, abs=1e-5)


def test_load_snapshot_missing(tmp_path):
    with pytest.raises(PathNotFound):
        load_snapshot(str(tmp_path / "none.json"))


@pytest.mark.parametrize(
    "payload",
    [
        b"[]",
        b'{"root": "/x"}',
        b'{"entries": {"kind": "file"}}',
        b'{"entries": [{"kind": "file", "name": "a"}]}',
        b'{"entries": [{"created": "soon", "accessed": 1, "modified": 1}]}',
    ],
)
def test_load_snapshot_rejects_bad_shape(tmp_path, payload):
    path = tmp_path / "bad.json"
    path.write_bytes(payload)
    with pytest.raises(IOFailure):
        load_snapshot(str(path))


def test_created_prefers_birth_time(small_tree):
    entry = next(e for e in scan(str(small_tree)) if e.name == "top.bin")
    st = os.stat(entry.path)
    assert entry.created == getattr(st, "st_birthtime", st.st_ctime)
