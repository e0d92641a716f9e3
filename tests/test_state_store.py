from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from vrcwatch.state.store import StateDiffStore


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _store(tmp_path: Path, **kwargs: object) -> StateDiffStore:
    return StateDiffStore(tmp_path / "data" / "user-locations.json", clock=_dt, **kwargs)  # type: ignore[arg-type]


def test_first_observation_is_a_transition(tmp_path: Path) -> None:
    store = _store(tmp_path)

    result = store.update("usr_a", "Alice", "wrld_1:123")

    assert result.changed
    assert result.previous is None
    assert result.current == "wrld_1:123"
    record = store.get_record("usr_a")
    assert record is not None
    assert record.display_name == "Alice"
    assert record.state == "wrld_1:123"


def test_repeated_observation_is_idempotent(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.update("usr_a", "Alice", "wrld_1:123")
    writes = store.writes

    result = store.update("usr_a", "Alice", "wrld_1:123")

    assert not result.changed
    assert result.previous == result.current == "wrld_1:123"
    assert store.writes == writes


def test_offline_for_unknown_entity_creates_nothing(tmp_path: Path) -> None:
    store = _store(tmp_path)

    result = store.update("usr_a", "Alice", None)

    assert not result.changed
    assert store.get_record("usr_a") is None
    assert store.writes == 0


def test_transition_reports_previous_state(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.update("usr_a", "Alice", "wrld_1:123")

    moved = store.update("usr_a", "Alice", "wrld_2:456")
    offline = store.update("usr_a", "Alice", None)

    assert (moved.changed, moved.previous, moved.current) == (True, "wrld_1:123", "wrld_2:456")
    assert (offline.changed, offline.previous, offline.current) == (True, "wrld_2:456", None)
    record = store.get_record("usr_a")
    assert record is not None and record.state is None


def test_update_after_offline_seed(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set_initial("u1", "Alice", None)

    result = store.update("u1", "Alice", "world:A")

    assert (result.changed, result.previous, result.current) == (True, None, "world:A")


def test_get_record_returns_copy(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.update("usr_a", "Alice", "wrld_1:123")

    record = store.get_record("usr_a")
    assert record is not None
    record.display_name = "Mallory"

    assert store.get_display_name("usr_a") == "Alice"


def test_update_display_name_only_for_known_entities(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.update("usr_a", "Alice", "wrld_1:123")

    store.update_display_name("usr_a", "Alice (new)")
    store.update_display_name("usr_b", "Bob")

    assert store.get_display_name("usr_a") == "Alice (new)"
    assert store.get_display_name("usr_b") is None
    assert len(store) == 1


def test_set_initial_overwrites_without_diff(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.update("usr_a", "Alice", "wrld_1:123")

    store.set_initial("usr_a", "Alice", None)
    store.set_initial("usr_b", "Bob", "wrld_9:1")

    assert store.get_record("usr_a").state is None  # type: ignore[union-attr]
    assert store.get_record("usr_b").state == "wrld_9:1"  # type: ignore[union-attr]


def test_snapshot_uses_camel_case_document(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.update("usr_a", "Alice", "wrld_1:123")

    document = json.loads(store.path.read_text(encoding="utf-8"))

    assert document == {
        "users": {
            "usr_a": {
                "userId": "usr_a",
                "displayName": "Alice",
                "location": "wrld_1:123",
                "updatedAt": "2026-01-01T00:00:00Z",
            }
        }
    }


def test_snapshot_round_trips_through_load(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.update("usr_a", "Alice", "wrld_1:123")
    store.set_initial("usr_b", "Bob", None)

    reloaded = _store(tmp_path)
    reloaded.load()

    assert len(reloaded) == 2
    assert reloaded.get_record("usr_a").state == "wrld_1:123"  # type: ignore[union-attr]
    assert reloaded.get_record("usr_b").state is None  # type: ignore[union-attr]
    assert {record.id for record in reloaded} == {"usr_a", "usr_b"}


@pytest.mark.parametrize(
    "content",
    [
        '{"not": "valid"}',
        "not json at all",
        '{"users": []}',
        '{"users": {"usr_a": {"displayName": "Alice"}}}',
        "[1, 2, 3]",
    ],
)
def test_malformed_snapshot_loads_empty(tmp_path: Path, content: str) -> None:
    path = tmp_path / "data" / "user-locations.json"
    path.parent.mkdir(parents=True)
    path.write_text(content, encoding="utf-8")

    store = StateDiffStore(path, clock=_dt)
    store.load()

    assert len(store) == 0
    assert store.get_record("usr_a") is None


def test_missing_snapshot_loads_empty_and_creates_directory(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.load()

    assert len(store) == 0
    assert store.path.parent.is_dir()


@pytest.mark.asyncio
async def test_burst_of_updates_collapses_to_one_write(tmp_path: Path) -> None:
    store = _store(tmp_path, debounce=0.05)

    store.update("usr_a", "Alice", "wrld_1:1")
    store.update("usr_a", "Alice", "wrld_1:2")
    store.update("usr_b", "Bob", "wrld_2:1")
    store.update("usr_a", "Alice", "wrld_1:3")
    assert store.save_pending
    assert store.writes == 0

    await asyncio.sleep(0.2)

    assert store.writes == 1
    assert not store.save_pending
    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document["users"]["usr_a"]["location"] == "wrld_1:3"
    assert document["users"]["usr_b"]["location"] == "wrld_2:1"


@pytest.mark.asyncio
async def test_flush_writes_immediately_and_cancels_timer(tmp_path: Path) -> None:
    store = _store(tmp_path, debounce=10.0)
    store.update("usr_a", "Alice", "wrld_1:1")
    assert store.save_pending

    store.flush()

    assert not store.save_pending
    assert store.writes == 1
    assert json.loads(store.path.read_text(encoding="utf-8"))["users"]["usr_a"]["location"] == "wrld_1:1"


def test_write_failure_is_logged_not_raised(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = StateDiffStore(blocker / "user-locations.json", clock=_dt)

    store.update("usr_a", "Alice", "wrld_1:1")

    assert store.writes == 0
    assert store.get_display_name("usr_a") == "Alice"
    assert "Failed to save location snapshot" in caplog.text
