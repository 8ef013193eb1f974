"""JSON file persistence for PlayFab approvals/history and QA counters.

Each store owns a single JSON document on disk. The in-memory copy is the
working state; mutations mark the store dirty and arm a short coalescing
timer, after which the whole file is rewritten. ``flush()`` writes
immediately and is used on shutdown and in tests.
"""

import asyncio
import dataclasses
import json
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from supportbot.models import (
    AgentCounters,
    HistoryEntry,
    PendingRequest,
    history_entry_from_dict,
)


@dataclass
class LoadResult:
    """Outcome of reading a store file.

    ``used_defaults`` is set when the file was missing or unreadable as a whole;
    ``skipped`` lists individual entries that could not be decoded. Whenever
    anything on disk was discarded, the original file is copied to
    ``backup_path`` first.
    """

    data: Dict[str, Any]
    used_defaults: bool = False
    reason: Optional[str] = None
    skipped: List[str] = dataclasses.field(default_factory=list)
    backup_path: Optional[Path] = None


class JsonDocumentStore:
    """Base class: one JSON document, full rewrite on every flush, debounced saves."""

    def __init__(self, path: Union[str, Path], debounce_seconds: float = 1.0):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.path = Path(path)
        self.debounce_seconds = debounce_seconds
        self._dirty = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self.last_load: Optional[LoadResult] = None

    # --- hooks for subclasses ---

    def _default_document(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _restore(self, document: Dict[str, Any]) -> List[str]:
        """Replace the in-memory state. Returns descriptions of entries that were skipped."""
        raise NotImplementedError

    def _snapshot(self) -> Dict[str, Any]:
        raise NotImplementedError

    # --- loading ---

    def _read_document(self) -> LoadResult:
        if not self.path.exists():
            return LoadResult(self._default_document(), True, "file not found")
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            return LoadResult(self._default_document(), True, f"unreadable: {e}")
        if not isinstance(document, dict):
            return LoadResult(
                self._default_document(),
                True,
                f"expected a JSON object, found {type(document).__name__}",
            )
        return LoadResult(document)

    def _backup(self) -> Optional[Path]:
        """Copy the file on disk to ``<name>.corrupt`` before its content is dropped."""
        backup = self.path.with_name(f"{self.path.name}.corrupt")
        try:
            shutil.copyfile(self.path, backup)
        except OSError as e:
            self.logger.error(f"Could not back up {self.path} to {backup}: {e}")
            return None
        self.logger.warning(f"Copied {self.path} to {backup} before discarding unreadable content.")
        return backup

    @staticmethod
    def _decode_rows(rows, decode: Callable[[Any], Any], label: str, skipped: List[str]) -> list:
        """Decode ``(key, raw)`` pairs one by one; undecodable rows are reported in ``skipped``."""
        decoded = []
        for key, raw in rows:
            try:
                decoded.append((key, decode(raw)))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                skipped.append(f"{label}[{key}]: {e}")
        return decoded

    def load(self) -> LoadResult:
        """Read the file into memory, falling back to an empty document.

        Entries that cannot be decoded are skipped one at a time; the rest of
        the document is kept.
        """
        result = self._read_document()
        try:
            result.skipped = self._restore(result.data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            result = LoadResult(self._default_document(), True, f"malformed content: {e}")
            self._restore(result.data)

        if self.path.exists() and (result.skipped or result.used_defaults):
            result.backup_path = self._backup()

        if result.used_defaults:
            self.logger.warning(
                f"Using empty defaults for {self.path} ({result.reason})."
            )
        else:
            self.logger.info(f"Loaded store from {self.path}")
        for problem in result.skipped:
            self.logger.warning(f"Skipped unreadable entry in {self.path}: {problem}")
        self._dirty = False
        self.last_load = result
        return result

    # --- saving ---

    @property
    def dirty(self) -> bool:
        return self._dirty

    def schedule_save(self) -> None:
        """Mark dirty and arm the save timer unless one is already pending."""
        self._dirty = True
        if self._timer is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug(
                f"No running event loop; {self.path} stays dirty until flush()."
            )
            return
        self._timer = loop.call_later(self.debounce_seconds, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        try:
            self.flush()
        except OSError as e:
            self.logger.error(f"Deferred save of {self.path} failed: {e}")

    def flush(self) -> bool:
        """Write the document now if anything changed. Returns True when a write happened."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self._dirty:
            return False

        document = self._snapshot()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        self._dirty = False
        self.logger.debug(f"Saved {self.path}")
        return True

    def close(self) -> None:
        self.flush()


def new_request_id() -> str:
    """Short, time-prefixed unique id (base36 milliseconds + random suffix)."""
    millis = int(time.time() * 1000)
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    prefix = ""
    while millis:
        millis, rem = divmod(millis, 36)
        prefix = digits[rem] + prefix
    return f"{prefix}{uuid.uuid4().hex[:6]}"


class PlayFabStore(JsonDocumentStore):
    """Pending approvals keyed by request id plus the append-only action history."""

    FILE_NAME = "playfab_store.json"

    def __init__(self, path: Union[str, Path], debounce_seconds: float = 1.0):
        super().__init__(path, debounce_seconds)
        self._pending: Dict[str, PendingRequest] = {}
        self._history: List[HistoryEntry] = []

    def _default_document(self) -> Dict[str, Any]:
        return {"pending": {}, "history": []}

    def _restore(self, document: Dict[str, Any]) -> List[str]:
        pending_raw = document.get("pending") or {}
        history_raw = document.get("history") or []
        if not isinstance(pending_raw, dict) or not isinstance(history_raw, list):
            raise ValueError("'pending' must be an object and 'history' a list")
        skipped: List[str] = []
        self._pending = {
            str(key): request
            for key, request in self._decode_rows(
                pending_raw.items(), PendingRequest.from_dict, "pending", skipped
            )
        }
        self._history = [
            entry
            for _, entry in self._decode_rows(
                enumerate(history_raw), history_entry_from_dict, "history", skipped
            )
        ]
        return skipped

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "pending": {key: req.to_dict() for key, req in self._pending.items()},
            "history": [entry.to_dict() for entry in self._history],
        }

    new_id = staticmethod(new_request_id)

    # --- pending requests ---

    def get(self, request_id: str) -> Optional[PendingRequest]:
        """Returns a copy; changes only persist through put()."""
        request = self._pending.get(request_id)
        return dataclasses.replace(request) if request else None

    def put(self, request: PendingRequest) -> None:
        self._pending[request.id] = dataclasses.replace(request)
        self.schedule_save()

    def delete(self, request_id: str) -> bool:
        removed = self._pending.pop(request_id, None)
        if removed is not None:
            self.schedule_save()
        return removed is not None

    def list_pending(self) -> List[PendingRequest]:
        return [dataclasses.replace(req) for req in self._pending.values()]

    def list_pending_by_requester(self, actor_id: str) -> List[PendingRequest]:
        return [req for req in self.list_pending() if req.requested_by == actor_id]

    # --- history ---

    def append_history(self, entry: HistoryEntry) -> None:
        self._history.append(entry)
        self.schedule_save()

    def query_history(self, predicate: Callable[[HistoryEntry], bool]) -> List[HistoryEntry]:
        return [entry for entry in self._history if predicate(entry)]

    def history_for_account(self, account_id: str) -> List[HistoryEntry]:
        return self.query_history(lambda entry: entry.account_id == account_id)


class AgentStatsStore(JsonDocumentStore):
    """QA counters keyed by agent id.

    get() hands out the live AgentCounters object; callers mutate it and then
    call put() so the change is scheduled for saving.
    """

    FILE_NAME = "qa_stats.json"

    def __init__(self, path: Union[str, Path], debounce_seconds: float = 1.0):
        super().__init__(path, debounce_seconds)
        self._agents: Dict[str, AgentCounters] = {}

    def _default_document(self) -> Dict[str, Any]:
        return {"users": {}}

    def _restore(self, document: Dict[str, Any]) -> List[str]:
        users = document.get("users") or {}
        if not isinstance(users, dict):
            raise ValueError("'users' must be an object")
        skipped: List[str] = []
        self._agents = {
            str(agent_id): counters
            for agent_id, counters in self._decode_rows(
                users.items(), AgentCounters.from_dict, "users", skipped
            )
        }
        return skipped

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "users": {agent_id: c.to_dict() for agent_id, c in self._agents.items()}
        }

    def get(self, agent_id: str) -> Optional[AgentCounters]:
        return self._agents.get(agent_id)

    def put(self, agent_id: str, counters: AgentCounters) -> None:
        self._agents[agent_id] = counters
        self.schedule_save()

    def delete(self, agent_id: str) -> bool:
        removed = self._agents.pop(agent_id, None)
        if removed is not None:
            self.schedule_save()
        return removed is not None

    def all(self) -> Dict[str, AgentCounters]:
        return dict(self._agents)
