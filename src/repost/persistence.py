"""Snapshot persistence: the gateway protocol, two gateways and the auto-saver.

On disk (``~/.config/repost/state.json`` by default) a snapshot is stored as:

    {
        "version": "1.0.0",
        "appState": { "tabs": [...], "activeTabId": "...", ... }
    }

A version other than ``STORAGE_VERSION`` is logged and the data is used
as-is; there is no migration step.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from repost.constants import STORAGE_VERSION
from repost.models import AppState

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a snapshot cannot be written or read back."""


class PersistenceGateway(Protocol):
    """Protocol that all snapshot stores must satisfy."""

    async def save(self, state: AppState) -> None: ...

    async def load(self) -> AppState | None:
        """Return the stored snapshot, or None if nothing was saved yet."""
        ...


def encode_snapshot(state: AppState) -> str:
    document = {
        "version": STORAGE_VERSION,
        "appState": state.model_dump(mode="json", by_alias=True),
    }
    return json.dumps(document, indent=2)


def decode_snapshot(text: str) -> AppState:
    """Parse a stored document. Raises PersistenceError if it is unusable."""
    try:
        raw: object = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"snapshot is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict) or not isinstance(raw.get("appState"), dict):
        raise PersistenceError("snapshot must be a JSON object with an 'appState' object")

    version = raw.get("version")
    if version != STORAGE_VERSION:
        logger.warning(
            "Storage version mismatch: expected %s, got %s", STORAGE_VERSION, version
        )
    try:
        return AppState.model_validate(raw["appState"])
    except ValidationError as exc:
        raise PersistenceError(f"snapshot does not match the state schema: {exc}") from exc


class JsonFileGateway:
    """Stores the snapshot as a JSON document in a single file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def save(self, state: AppState) -> None:
        await asyncio.to_thread(self._write, encode_snapshot(state))

    async def load(self) -> AppState | None:
        if not self._path.exists():
            return None
        try:
            text = await asyncio.to_thread(self._path.read_text)
        except OSError as exc:
            raise PersistenceError(f"cannot read {self._path}: {exc}") from exc
        if not text.strip():
            return None
        return decode_snapshot(text)

    async def clear(self) -> None:
        self._path.unlink(missing_ok=True)

    def _write(self, text: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(text)
            tmp.replace(self._path)
        except OSError as exc:
            raise PersistenceError(f"cannot write {self._path}: {exc}") from exc


class MemoryGateway:
    """In-memory gateway; keeps the last saved document as text."""

    def __init__(self, document: str | None = None) -> None:
        self.document = document
        self.saves = 0

    async def save(self, state: AppState) -> None:
        self.document = encode_snapshot(state)
        self.saves += 1

    async def load(self) -> AppState | None:
        if self.document is None:
            return None
        return decode_snapshot(self.document)


class AutoSaver:
    """Store listener that persists every new snapshot in the background.

    Inside a running event loop the save is scheduled as a task chained
    behind the previous one, so snapshots land in mutation order.  Outside a
    loop it is run to completion immediately.  Failures are logged and never
    reach the caller whose mutation triggered the save.
    """

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway
        self._pending: set[asyncio.Task[None]] = set()
        self._last: asyncio.Task[None] | None = None
        self.failures = 0

    def __call__(self, state: AppState) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._save(state))
            return
        task = loop.create_task(self._save(state, after=self._last))
        self._last = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for every scheduled save to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _save(self, state: AppState, after: asyncio.Task[None] | None = None) -> None:
        if after is not None and not after.done():
            await asyncio.wait([after])
        try:
            await self._gateway.save(state)
        except Exception:
            self.failures += 1
            logger.exception("Failed to save application state")
