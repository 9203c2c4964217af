"""Session delta tracking for MCP clients.

Each MCP session remembers the last snapshot version it saw plus the rules
that had an impl or a verify reference at that version. Every tool call
computes what changed since, then advances the session.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ..models.enums import Verb
from .core.document import Reference
from .core.rule_id import RuleId
from .snapshot import Snapshot

logger = logging.getLogger(__name__)

RuleKey = tuple[str, str, RuleId]


@dataclass(frozen=True)
class RuleChange:
    """One rule whose coverage changed for a spec/impl pair."""

    spec: str
    impl: str
    rule_id: RuleId
    file: str | None = None
    line: int | None = None


@dataclass(frozen=True)
class Delta:
    from_version: int | None
    to_version: int
    newly_covered: tuple[RuleChange, ...] = ()
    newly_verified: tuple[RuleChange, ...] = ()
    newly_uncovered: tuple[RuleChange, ...] = ()
    first_query: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.newly_covered or self.newly_verified or self.newly_uncovered)


@dataclass
class Session:
    """Per-connection state; mutated only through compute_delta."""

    session_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_seen_version: int | None = None
    last_seen_implemented: frozenset[RuleKey] = frozenset()
    last_seen_verified: frozenset[RuleKey] = frozenset()
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


def _first_reference(snapshot: Snapshot, key: RuleKey, verb: Verb) -> Reference | None:
    spec, impl, rule_id = key
    view = snapshot.impl_view(spec, impl)
    if view is None:
        return None
    refs = view.forward.references(rule_id, verb)
    return refs[0] if refs else None


def _changes(snapshot: Snapshot, keys, verb: Verb | None = None) -> tuple[RuleChange, ...]:
    changes = []
    for key in sorted(keys):
        ref = _first_reference(snapshot, key, verb) if verb is not None else None
        changes.append(
            RuleChange(
                spec=key[0],
                impl=key[1],
                rule_id=key[2],
                file=ref.file if ref else None,
                line=ref.line if ref else None,
            )
        )
    return tuple(changes)


def compute_delta(session: Session, snapshot: Snapshot) -> Delta:
    """Coverage changes since the session's last query; advances the session.

    The first query of a session returns an empty delta with
    ``first_query`` set. Querying the same version twice yields an empty
    delta. A rule is newly covered when it gains its first impl reference;
    depends and related references do not count.
    """
    with session.lock:
        implemented = snapshot.implemented_set()
        verified = snapshot.verified_set()

        if session.last_seen_version is None:
            delta = Delta(from_version=None, to_version=snapshot.version, first_query=True)
        elif session.last_seen_version == snapshot.version:
            delta = Delta(from_version=snapshot.version, to_version=snapshot.version)
        else:
            delta = Delta(
                from_version=session.last_seen_version,
                to_version=snapshot.version,
                newly_covered=_changes(
                    snapshot, implemented - session.last_seen_implemented, Verb.IMPL
                ),
                newly_verified=_changes(
                    snapshot, verified - session.last_seen_verified, Verb.VERIFY
                ),
                newly_uncovered=_changes(snapshot, session.last_seen_implemented - implemented),
            )

        session.last_seen_version = snapshot.version
        session.last_seen_implemented = implemented
        session.last_seen_verified = verified
        return delta


class SessionStore:
    """Creates, looks up and destroys sessions.

    Holds at most ``max_sessions`` sessions; adding one past the limit
    evicts the least recently used.
    """

    def __init__(self, max_sessions: int = 1000):
        self.max_sessions = max_sessions
        self._lock = threading.Lock()
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    def _add(self, session: Session) -> Session:
        with self._lock:
            existing = self._sessions.get(session.session_id)
            if existing is not None:
                self._sessions.move_to_end(session.session_id)
                return existing
            self._sessions[session.session_id] = session
            evicted = []
            while len(self._sessions) > self.max_sessions:
                evicted.append(self._sessions.popitem(last=False)[0])
        for session_id in evicted:
            logger.debug(f"Session {session_id} evicted")
        return session

    def create(self) -> Session:
        session = self._add(Session(session_id=uuid.uuid4().hex))
        logger.debug(f"Session {session.session_id} created")
        return session

    def get(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def get_or_create(self, session_id: str | None) -> Session:
        session = self.get(session_id)
        if session is not None:
            return session
        return self._add(Session(session_id=session_id or uuid.uuid4().hex))

    def destroy(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.debug(f"Session {session_id} destroyed")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
