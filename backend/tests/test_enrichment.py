"""Tests for concurrent file enrichment (size, complexity, authors)."""

import asyncio
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

from git import Actor, Repo

from models.history import FileRecord
from services.enrichment import (
    enrich_files,
    extract_primary_authors,
    measure_file,
    parse_shortlog,
    run_settled_batches,
)
from utils.pipeline_config import PipelineLimits


def _record(path: str, language: str | None = None) -> FileRecord:
    segments = path.split("/")
    return FileRecord(
        path=path,
        name=segments[-1],
        directory="/".join(segments[:-1]),
        depth=len(segments) - 1,
        extension=os.path.splitext(path)[1],
        language=language,
        first_seen=0,
        last_modified=0,
    )


def _root(tmp_path: Path) -> Path:
    return Path(os.path.realpath(tmp_path))


# ----------------------------------------------------------------------------
# Batch runner
# ----------------------------------------------------------------------------


def test_settled_batches_collect_failures_without_cancelling_siblings():
    """Test that one failing item does not cancel the rest of its batch."""
    seen = []

    async def worker(item):
        await asyncio.sleep(0)
        seen.append(item)
        if item == 3:
            raise RuntimeError("boom")
        return item * 10

    outcomes = asyncio.run(run_settled_batches(range(7), worker, 2))

    assert sorted(seen) == list(range(7))
    assert [o.item for o in outcomes] == list(range(7))
    assert [o.ok for o in outcomes] == [True, True, True, False, True, True, True]
    assert outcomes[3].error.args == ("boom",)
    assert outcomes[6].result == 60


def test_settled_batches_never_exceed_batch_size():
    """Test that no more than batch_size workers run at once."""
    in_flight = 0
    peak = 0

    async def worker(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1

    asyncio.run(run_settled_batches(range(23), worker, 5))

    assert peak == 5


def test_settled_batches_with_no_items():
    """Test that an empty item list yields no outcomes."""
    async def worker(item):
        return item

    assert asyncio.run(run_settled_batches([], worker, 10)) == []


# ----------------------------------------------------------------------------
# Size / complexity pass
# ----------------------------------------------------------------------------


def test_measure_file_scores_text_content(tmp_path):
    """Test that a readable file gets its size and complexity."""
    root = _root(tmp_path)
    (root / "app.js").write_text("async function f() { if (x) { return 1; } }", encoding="utf-8")
    record = _record("app.js", "javascript")

    asyncio.run(measure_file(root, record, PipelineLimits()))

    assert record.current_size == (root / "app.js").stat().st_size
    assert record.max_complexity == 1 + 3 + 1
    assert record.current_complexity == record.max_complexity
    assert record.is_deleted is False


def test_missing_file_is_marked_deleted(tmp_path):
    """Test that a file absent from disk is marked deleted with zero complexity."""
    record = _record("gone.py", "python")

    asyncio.run(measure_file(_root(tmp_path), record, PipelineLimits()))

    assert record.is_deleted is True
    assert record.current_size == 0
    assert record.max_complexity == 0
    assert record.current_complexity == 0


def test_oversized_file_is_never_read(tmp_path):
    """Test that a file over the size limit gets the sentinel without being read."""
    root = _root(tmp_path)
    big = root / "big.ts"
    big.write_bytes(b"if " * (1024 * 1024 // 3 + 10))
    record = _record("big.ts", "typescript")
    reader = MagicMock(return_value="if if if")

    with patch("services.enrichment._read_text", reader):
        asyncio.run(measure_file(root, record, PipelineLimits()))

    reader.assert_not_called()
    assert record.current_size == big.stat().st_size
    assert record.max_complexity == 1
    assert record.current_complexity == 1


def test_binary_file_gets_sentinel_complexity(tmp_path):
    """Test that undecodable content gets the unreadable sentinel."""
    root = _root(tmp_path)
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe\x00\x00")
    record = _record("logo.png")

    asyncio.run(measure_file(root, record, PipelineLimits()))

    assert record.is_deleted is False
    assert record.current_size == 12
    assert record.max_complexity == 1


def test_symlink_escaping_repository_is_skipped(tmp_path):
    """Test that a symlink resolving outside the repository is not measured."""
    root = _root(tmp_path) / "repo"
    root.mkdir()
    outside = _root(tmp_path) / "outside.py"
    outside.write_text("if if if", encoding="utf-8")
    (root / "link.py").symlink_to(outside)
    record = _record("link.py", "python")

    asyncio.run(measure_file(root, record, PipelineLimits()))

    assert record.current_size == 0
    assert record.max_complexity == 0
    assert record.is_deleted is False


# ----------------------------------------------------------------------------
# Author pass
# ----------------------------------------------------------------------------


def _init_repo(tmp_path: Path) -> Repo:
    repo = Repo.init(tmp_path)
    repo.config_writer().set_value("user", "name", "Tester").release()
    repo.config_writer().set_value("user", "email", "tester@example.com").release()
    return repo


def _commit_as(repo: Repo, name: str, message: str):
    actor = Actor(name, f"{name.lower()}@example.com")
    repo.git.add("--all")
    repo.index.commit(message, author=actor, committer=actor)


def test_parse_shortlog_keeps_order_and_limit():
    """Test that shortlog parsing keeps git's ordering and the author limit."""
    output = "    5\tAlice\n    3\tBob\n    2\tCarol\n    1\tDave\n"

    assert parse_shortlog(output, 3) == ["Alice", "Bob", "Carol"]


def test_parse_shortlog_drops_implausible_names():
    """Test that overlong author names are dropped."""
    output = f"    9\t{'x' * 150}\n    1\tBob\n"

    assert parse_shortlog(output, 3) == ["Bob"]


def test_primary_authors_sorted_by_contribution(tmp_path):
    """Test that primary authors are ordered by commit count."""
    root = _root(tmp_path)
    repo = _init_repo(root)
    target = root / "shared.py"
    for i, name in enumerate(["Bob", "Alice", "Alice", "Carol", "Alice", "Bob", "Dave"]):
        target.write_text(f"v{i}\n", encoding="utf-8")
        _commit_as(repo, name, f"change {i}")
    record = _record("shared.py", "python")

    asyncio.run(extract_primary_authors(root, record, PipelineLimits()))

    assert record.primary_authors[:2] == ["Alice", "Bob"]
    assert len(record.primary_authors) == 3


def test_author_failure_leaves_empty_list(tmp_path):
    """Outside a repository git fails; the file gets [] instead of an error."""
    record = _record("any.py", "python")
    record.primary_authors = ["stale"]

    asyncio.run(extract_primary_authors(_root(tmp_path), record, PipelineLimits()))

    assert record.primary_authors == []


def test_enrich_files_runs_both_passes(tmp_path):
    """Test that enrichment measures files and fills in authors."""
    root = _root(tmp_path)
    repo = _init_repo(root)
    (root / "main.py").write_text("def f():\n    if x:\n        return 1\n", encoding="utf-8")
    (root / "old.py").write_text("x = 1\n", encoding="utf-8")
    _commit_as(repo, "Alice", "init")
    (root / "old.py").unlink()
    _commit_as(repo, "Bob", "remove old")

    files = {"main.py": _record("main.py", "python"), "old.py": _record("old.py", "python")}
    asyncio.run(enrich_files(root, files, PipelineLimits()))

    assert files["main.py"].max_complexity == 3
    assert files["main.py"].primary_authors == ["Alice"]
    assert files["old.py"].is_deleted is True
    assert set(files["old.py"].primary_authors) == {"Alice", "Bob"}
