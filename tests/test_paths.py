"""Tests for folder creation and collision-free naming."""

import threading
from concurrent.futures import ThreadPoolExecutor

from notesexporter.paths import (
    candidate_name,
    ensure_path,
    resolve_unique_path,
    write_unique,
)
from notesexporter.sanitize import FormatRules


class TestEnsurePath:
    """Tests for ensure_path."""

    def test_creates_nested_folders(self, tmp_path):
        folder = ensure_path(tmp_path, ["Cooking", "Cakes"])
        assert folder == tmp_path / "Cooking" / "Cakes"
        assert folder.is_dir()

    def test_empty_segments_return_root(self, tmp_path):
        assert ensure_path(tmp_path, []) == tmp_path

    def test_sanitizes_and_skips_empty_segments(self, tmp_path):
        folder = ensure_path(tmp_path, ["Work/Home", "..", "\U0001F4DA", "Books"])
        assert folder == tmp_path / "WorkHome" / "Books"

    def test_twice_is_idempotent(self, tmp_path):
        first = ensure_path(tmp_path, ["A", "B"])
        second = ensure_path(tmp_path, ["A", "B"])
        assert first == second
        assert [p.name for p in tmp_path.iterdir()] == ["A"]

    def test_concurrent_calls_never_fail(self, tmp_path):
        """Many notes sharing a folder create it at the same time."""
        barrier = threading.Barrier(8)

        def create():
            barrier.wait()
            return ensure_path(tmp_path, ["Shared", "Deep", "Folder"])

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lambda _: create(), range(8)))

        assert set(results) == {tmp_path / "Shared" / "Deep" / "Folder"}

    def test_uses_format_rules(self, tmp_path):
        folder = ensure_path(tmp_path, ["[Archive]"], FormatRules(extra_illegal=frozenset("[]")))
        assert folder == tmp_path / "Archive"


class TestCollisionNaming:
    """Tests for candidate_name, resolve_unique_path and write_unique."""

    def test_candidate_names(self):
        assert candidate_name("Groceries", "html", 0) == "Groceries.html"
        assert candidate_name("Groceries", "html", 3) == "Groceries (3).html"

    def test_resolve_skips_taken_names(self, tmp_path):
        (tmp_path / "Note.txt").write_text("x")
        (tmp_path / "Note (1).txt").write_text("x")
        assert resolve_unique_path(tmp_path, "Note", "txt") == tmp_path / "Note (2).txt"

    def test_sequential_collisions_are_numbered_in_order(self, tmp_path):
        """N writes of the same name give base, base (1) ... base (N-1)."""
        names = [write_unique(tmp_path, "Same", "md", str(i).encode()).name for i in range(5)]
        assert names == ["Same.md", "Same (1).md", "Same (2).md", "Same (3).md", "Same (4).md"]
        assert (tmp_path / "Same (3).md").read_bytes() == b"3"

    def test_never_overwrites(self, tmp_path):
        existing = tmp_path / "Keep.html"
        existing.write_bytes(b"original")
        path = write_unique(tmp_path, "Keep", "html", b"new")
        assert path.name == "Keep (1).html"
        assert existing.read_bytes() == b"original"

    def test_concurrent_writes_get_distinct_names(self, tmp_path):
        barrier = threading.Barrier(6)

        def write(i):
            barrier.wait()
            return write_unique(tmp_path, "Race", "txt", f"{i}".encode())

        with ThreadPoolExecutor(max_workers=6) as executor:
            paths = list(executor.map(write, range(6)))

        assert len(set(paths)) == 6
        expected = {"Race.txt"} | {f"Race ({n}).txt" for n in range(1, 6)}
        assert {p.name for p in paths} == expected
        assert sorted(p.read_text() for p in paths) == [str(i) for i in range(6)]
