"""Last-known location store with transition detection.

This is the only component allowed to read or write the location snapshot
file. Mutations are applied synchronously, in the order they are received;
durable writes are debounced so a burst of updates costs one write.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vrcwatch._constants import SAVE_DEBOUNCE
from vrcwatch.exceptions import PersistenceError

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EntityRecord(BaseModel):
    """Last observation of one watched user.

    ``state`` is ``None`` while the user is offline; any other value is an
    opaque location token.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="userId")
    display_name: str = Field(alias="displayName")
    state: str | None = Field(default=None, alias="location")
    updated_at: datetime = Field(alias="updatedAt")


class StoreSnapshot(BaseModel):
    """On-disk document: ``{"users": {id: record}}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    entities: dict[str, EntityRecord] = Field(default_factory=dict, alias="users")


class TransitionResult(BaseModel):
    """Outcome of :meth:`StateDiffStore.update`."""

    model_config = ConfigDict(frozen=True)

    changed: bool
    previous: str | None
    current: str | None


class StateDiffStore:
    """Entity id → last known state, persisted with write-behind.

    Parameters
    ----------
    path : str or Path
        Location of the JSON snapshot. The parent directory is created on
        demand.
    debounce : float
        Quiet period in seconds before a pending write hits the disk.
    clock : callable
        Returns the current aware datetime; injected for tests.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        debounce: float = SAVE_DEBOUNCE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._path = Path(path)
        self._debounce = debounce
        self._clock = clock
        self._snapshot = StoreSnapshot()
        self._save_handle: asyncio.TimerHandle | None = None
        self.writes = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def save_pending(self) -> bool:
        return self._save_handle is not None

    def __len__(self) -> int:
        return len(self._snapshot.entities)

    def __iter__(self) -> Iterator[EntityRecord]:
        return iter(list(self._snapshot.entities.values()))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace in-memory state with the snapshot on disk.

        A missing, unreadable or malformed file leaves the store empty; it
        never blocks startup.
        """
        self._snapshot = StoreSnapshot()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._path.exists():
                _logger.info("No location snapshot at %s, starting empty", self._path)
                return
            content = self._path.read_text(encoding="utf-8")
        except OSError:
            _logger.exception("Failed to read location snapshot %s", self._path)
            return

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            _logger.warning("Location snapshot %s is not valid JSON, starting empty", self._path)
            return

        if not isinstance(parsed, dict) or not isinstance(parsed.get("users"), dict):
            _logger.warning("Invalid data structure in %s, starting empty", self._path)
            return

        try:
            self._snapshot = StoreSnapshot.model_validate(parsed)
        except ValidationError as exc:
            _logger.warning(
                "Location snapshot %s failed validation (%d error(s)), starting empty",
                self._path,
                exc.error_count(),
            )
            return

        _logger.info("Loaded %d user(s) from %s", len(self._snapshot.entities), self._path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_record(self, entity_id: str) -> EntityRecord | None:
        record = self._snapshot.entities.get(entity_id)
        return record.model_copy() if record is not None else None

    def get_display_name(self, entity_id: str) -> str | None:
        record = self._snapshot.entities.get(entity_id)
        return record.display_name if record is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update(self, entity_id: str, display_name: str, new_state: str | None) -> TransitionResult:
        """Record an observation and report whether it is a transition.

        An observation equal to the stored state (including ``None`` for an
        unknown entity) changes nothing and schedules no write.
        """
        record = self._snapshot.entities.get(entity_id)
        previous = record.state if record is not None else None

        if previous == new_state:
            return TransitionResult(changed=False, previous=previous, current=new_state)

        self._put(entity_id, display_name, new_state)
        self._schedule_save()
        return TransitionResult(changed=True, previous=previous, current=new_state)

    def set_initial(self, entity_id: str, display_name: str, state: str | None) -> None:
        """Seed state during reconciliation without reporting a transition."""
        self._put(entity_id, display_name, state)
        self._schedule_save()

    def update_display_name(self, entity_id: str, display_name: str) -> None:
        """Patch the display name of a known entity; unknown ids are ignored."""
        record = self._snapshot.entities.get(entity_id)
        if record is None:
            return
        record.display_name = display_name
        self._schedule_save()

    def _put(self, entity_id: str, display_name: str, state: str | None) -> None:
        self._snapshot.entities[entity_id] = EntityRecord(
            id=entity_id,
            display_name=display_name,
            state=state,
            updated_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _schedule_save(self) -> None:
        self._cancel_pending()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop there is nothing to debounce against.
            self._save_now()
            return
        self._save_handle = loop.call_later(self._debounce, self._on_save_timer)

    def _on_save_timer(self) -> None:
        self._save_handle = None
        self._save_now()

    def _cancel_pending(self) -> None:
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None

    def flush(self) -> None:
        """Cancel any pending debounce and write immediately."""
        self._cancel_pending()
        self._save_now()

    def _save_now(self) -> None:
        try:
            self._write_snapshot()
        except PersistenceError:
            _logger.exception("Failed to save location snapshot")

    def _write_snapshot(self) -> None:
        document = self._snapshot.model_dump(mode="json", by_alias=True)
        content = json.dumps(document, indent=2, ensure_ascii=False)
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(content)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Could not write {self._path}: {exc}") from exc
        self.writes += 1
        _logger.debug("Saved %d user(s) to %s", len(self._snapshot.entities), self._path)
