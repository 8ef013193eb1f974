"""Data models for the application."""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Set, Tuple, Union

ACTION_BAN = "ban"
ACTION_MUTE = "mute"
ACTION_RESET = "reset"
ACTION_TYPES = (ACTION_BAN, ACTION_MUTE, ACTION_RESET)
ENTRY_NOTE = "note"

STATUS_EXECUTED = "executed"
STATUS_REJECTED = "rejected"


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class ResolvedPlayer:
    """A PlayFab account plus the Steam identifiers seen while resolving it."""

    account_id: str
    steam64: Optional[str] = None
    vanity: Optional[str] = None


@dataclass
class PendingRequest:
    """A privileged PlayFab action waiting for an administrator."""

    id: str
    type: str
    account_id: str
    requested_by: str
    requested_at: str
    reason: Optional[str] = None
    duration: Optional[str] = None
    expires_at: Optional[str] = None
    steam64: Optional[str] = None
    vanity: Optional[str] = None
    input: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingRequest":
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class ActionRecord:
    """History entry for an executed or rejected ban/mute/reset."""

    id: str
    type: str
    account_id: str
    requested_by: str
    approved_by: str
    status: str
    executed_at: str
    reason: Optional[str] = None
    duration: Optional[str] = None
    expires_at: Optional[str] = None
    steam64: Optional[str] = None
    vanity: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AccountNote:
    """Free-form staff note attached to an account's history."""

    id: str
    account_id: str
    title: str
    text: str
    created_by: str
    created_at: str
    type: str = ENTRY_NOTE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


HistoryEntry = Union[ActionRecord, AccountNote]


def history_entry_from_dict(data: Dict[str, Any]) -> HistoryEntry:
    if data.get("type") == ENTRY_NOTE:
        return AccountNote(**_known_fields(AccountNote, data))
    return ActionRecord(**_known_fields(ActionRecord, data))


@dataclass
class AccountStandings:
    account_id: str
    bans: List[ActionRecord]
    mutes: List[ActionRecord]
    resets: List[ActionRecord]
    notes: List[AccountNote]
    note_count: int = 0
    rejected: List[ActionRecord] = field(default_factory=list)


@dataclass
class ActiveTicket:
    context: Optional[str]
    assigned_at: int
    first_response_ms: Optional[int] = None


@dataclass
class AgentCounters:
    """Per-agent QA counters. Timestamps and durations are in milliseconds."""

    handled: Set[str] = field(default_factory=set)
    active: Dict[str, ActiveTicket] = field(default_factory=dict)
    closed_count: int = 0
    response_samples: List[int] = field(default_factory=list)
    messages_public: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handled": sorted(self.handled),
            "active": {tid: asdict(slot) for tid, slot in self.active.items()},
            "closed": self.closed_count,
            "responses": list(self.response_samples),
            "messages_public": self.messages_public,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentCounters":
        active = {
            str(tid): ActiveTicket(**_known_fields(ActiveTicket, slot))
            for tid, slot in (data.get("active") or {}).items()
        }
        return cls(
            handled=set(data.get("handled") or []),
            active=active,
            closed_count=int(data.get("closed") or 0),
            response_samples=[int(v) for v in data.get("responses") or []],
            messages_public=int(data.get("messages_public") or 0),
        )


@dataclass
class AgentSummary:
    handled: int
    closed: int
    active: List[Tuple[str, Optional[str]]]
    avg_response_ms: int
    median_response_ms: int
    messages_public: int = 0
