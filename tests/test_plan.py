"""Tests for depth bucketing."""

from pathlib import Path

import pytest

from turbodelete.plan import DeletionPlan, build_plan
from turbodelete.scanner import Entry, EntryKind, EntryScanner


def _entry(path: str, depth: int, kind: EntryKind = EntryKind.FILE) -> Entry:
    return Entry(Path(path), depth, kind)


def test_buckets_iterate_deepest_first():
    """Test that buckets come out in strictly descending depth."""
    entries = [
        _entry("r/a", 1),
        _entry("r/d/b", 2),
        _entry("r/d", 1, EntryKind.DIRECTORY),
        _entry("r/d/e/c", 3),
        _entry("r/d/e", 2, EntryKind.DIRECTORY),
    ]

    plan = build_plan(entries)

    assert [bucket.depth for bucket in plan] == [3, 2, 1]
    assert plan.depths == [3, 2, 1]
    assert plan.max_depth == 3


def test_same_depth_accumulates_into_one_bucket():
    """Test that many entries at one depth share a single bucket."""
    entries = [_entry(f"r/file{i}", 1) for i in range(100)]

    plan = build_plan(entries)

    assert len(plan) == 1
    assert len(plan.bucket(1)) == 100


def test_no_entry_lost_or_duplicated():
    """Test that the union of buckets is exactly the scanned set."""
    entries = [_entry(f"r/{i}/{j}", j) for i in range(10) for j in range(1, 5)]

    plan = build_plan(entries)

    paths = [path for bucket in plan for path in bucket.paths]
    assert len(paths) == len(entries)
    assert set(paths) == {entry.path for entry in entries}
    assert plan.total_entries == len(entries)


def test_repeated_path_kept_once():
    """Test that a path reported twice ends up in one bucket only once."""
    plan = build_plan([_entry("r/a", 1), _entry("r/a", 1)])

    assert plan.total_entries == 1


def test_empty_scan_gives_empty_plan():
    """Test that an empty directory produces no buckets."""
    plan = build_plan([])

    assert len(plan) == 0
    assert list(plan) == []
    assert plan.max_depth == 0
    assert plan.total_entries == 0


def test_bucket_owns_its_entries():
    """Test that a bucket is an immutable copy, unaffected by the input list."""
    entries = [_entry("r/a", 1)]
    plan = build_plan(entries)
    entries.append(_entry("r/b", 1))

    assert plan.bucket(1).paths == [Path("r/a")]
    assert isinstance(plan.bucket(1).entries, tuple)


def test_missing_depth_raises_key_error():
    """Test looking up a depth with no entries."""
    with pytest.raises(KeyError):
        build_plan([_entry("r/a", 1)]).bucket(2)


def test_plan_sorts_unordered_buckets():
    """Test that a plan built from an unordered mapping still iterates deepest first."""
    plans = build_plan([_entry("r/a", 1), _entry("r/a/b", 2)])
    reordered = DeletionPlan({1: plans.bucket(1), 2: plans.bucket(2)})

    assert reordered.depths == [2, 1]


@pytest.mark.asyncio
async def test_bucketing_is_deterministic(sample_tree):
    """Test that bucketing the same scan twice gives the same partition."""
    entries = await EntryScanner().scan(sample_tree)

    first = build_plan(entries)
    second = build_plan(list(reversed(entries)))

    assert first.depths == second.depths
    for depth in first.depths:
        assert set(first.bucket(depth).paths) == set(second.bucket(depth).paths)


@pytest.mark.asyncio
async def test_three_files_make_one_bucket(temp_dir):
    """Test that a directory with three files has a single depth-1 bucket."""
    for name in ("a", "b", "c"):
        (temp_dir / name).write_text(name)

    plan = build_plan(await EntryScanner().scan(temp_dir))

    assert plan.depths == [1]
    assert len(plan.bucket(1)) == 3
