"""
Fusion session state.

A FusionSession is immutable; every user action is a transition function that
returns a new session. Generation results carry the generation_id they were
started with, and results for a superseded generation are dropped.
"""
import logging
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional

from config.palettes import DEFAULT_PALETTE_ID, PALETTES
from core.config import settings
from core.exceptions import InvalidStateError
from services.upload_service import InlineImage, base_size_for

logger = logging.getLogger(__name__)


class UIState(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    DONE = "done"
    ERROR = "error"


class GenerationKind(str, Enum):
    COMPOSITE = "composite"
    POSE_GRID = "pose_grid"
    COLOR_GRID = "color_grid"
    HIRES = "hires"


@dataclass(frozen=True)
class FusionSession:
    session_id: str
    state: UIState = UIState.IDLE
    person: Optional[InlineImage] = None
    item: Optional[InlineImage] = None
    base_width: int = 0
    base_height: int = 0
    composite_b64: Optional[str] = None
    pose_grid_b64: Optional[str] = None
    pose_grid_accepted: bool = False
    color_grid_b64: Optional[str] = None
    color_grid_accepted: bool = False
    hires_b64: Optional[str] = None
    hires_index: Optional[int] = None
    hires_width: int = 0
    hires_height: int = 0
    palette_id: str = DEFAULT_PALETTE_ID
    error: str = ""
    generation_id: int = 0
    pending: Optional[GenerationKind] = None
    updated_at: float = 0.0

    @property
    def has_base_size(self) -> bool:
        return self.base_width > 0 and self.base_height > 0


def new_session(session_id: Optional[str] = None) -> FusionSession:
    return FusionSession(session_id=session_id or str(uuid.uuid4()), updated_at=time.time())


def _touch(session: FusionSession, **changes) -> FusionSession:
    return replace(session, updated_at=time.time(), **changes)


def _clear_outputs() -> dict:
    return {
        "composite_b64": None,
        "pose_grid_b64": None,
        "pose_grid_accepted": False,
        "color_grid_b64": None,
        "color_grid_accepted": False,
        "hires_b64": None,
        "hires_index": None,
        "hires_width": 0,
        "hires_height": 0,
    }


def upload_person(session: FusionSession, person: InlineImage) -> FusionSession:
    """New person image: base size is recomputed and previous outputs discarded."""
    base_width, base_height = base_size_for(person)
    return _touch(
        session,
        person=person,
        base_width=base_width,
        base_height=base_height,
        state=UIState.IDLE,
        error="",
        pending=None,
        generation_id=session.generation_id + 1,
        **_clear_outputs(),
    )


def upload_item(session: FusionSession, item: InlineImage) -> FusionSession:
    return _touch(
        session,
        item=item,
        state=UIState.IDLE,
        error="",
        pending=None,
        generation_id=session.generation_id + 1,
        **_clear_outputs(),
    )


def start_generation(session: FusionSession, kind: GenerationKind, hires_index: Optional[int] = None) -> FusionSession:
    """
    Enter WORKING for a generation step.

    Raises:
        InvalidStateError: the step's inputs are missing or another step is running
    """
    kind = GenerationKind(kind)
    if session.state == UIState.WORKING:
        raise InvalidStateError(f"A {session.pending.value if session.pending else 'generation'} is already running")

    if kind == GenerationKind.COMPOSITE:
        if session.person is None or session.item is None:
            raise InvalidStateError("Upload both a person image and an item image first")
        if not session.has_base_size:
            raise InvalidStateError("Base size unavailable")
    elif kind in (GenerationKind.POSE_GRID, GenerationKind.COLOR_GRID):
        if not session.composite_b64:
            raise InvalidStateError("Generate the composite image first")
    elif kind == GenerationKind.HIRES:
        if not session.pose_grid_b64:
            raise InvalidStateError("No pose grid available")
        if hires_index is None or not 0 <= hires_index <= 8:
            raise InvalidStateError(f"Invalid cell index: {hires_index}")

    return _touch(
        session,
        state=UIState.WORKING,
        pending=kind,
        error="",
        generation_id=session.generation_id + 1,
    )


def _is_current(session: FusionSession, generation_id: int, kind: GenerationKind) -> bool:
    if generation_id != session.generation_id or session.pending != kind:
        logger.info(
            f"[Session] Dropping stale {kind.value} result for {session.session_id[:8]} "
            f"(generation {generation_id}, current {session.generation_id})"
        )
        return False
    return True


def composite_ready(session: FusionSession, generation_id: int, composite_b64: str) -> FusionSession:
    if not _is_current(session, generation_id, GenerationKind.COMPOSITE):
        return session
    outputs = _clear_outputs()
    outputs["composite_b64"] = composite_b64
    return _touch(session, state=UIState.DONE, pending=None, **outputs)


def pose_grid_ready(session: FusionSession, generation_id: int, grid_b64: str, accepted: bool = True) -> FusionSession:
    if not _is_current(session, generation_id, GenerationKind.POSE_GRID):
        return session
    return _touch(
        session,
        state=UIState.DONE,
        pending=None,
        pose_grid_b64=grid_b64,
        pose_grid_accepted=accepted,
        hires_b64=None,
        hires_index=None,
    )


def color_grid_ready(session: FusionSession, generation_id: int, grid_b64: str, accepted: bool = True) -> FusionSession:
    if not _is_current(session, generation_id, GenerationKind.COLOR_GRID):
        return session
    return _touch(session, state=UIState.DONE, pending=None, color_grid_b64=grid_b64, color_grid_accepted=accepted)


def hires_ready(
    session: FusionSession, generation_id: int, index: int, image_b64: str, width: int, height: int
) -> FusionSession:
    if not _is_current(session, generation_id, GenerationKind.HIRES):
        return session
    return _touch(
        session,
        state=UIState.DONE,
        pending=None,
        hires_b64=image_b64,
        hires_index=index,
        hires_width=width,
        hires_height=height,
    )


def fail(session: FusionSession, generation_id: int, message: str) -> FusionSession:
    if generation_id != session.generation_id:
        return session
    return _touch(session, state=UIState.ERROR, pending=None, error=message)


def clear(session: FusionSession) -> FusionSession:
    """
    Reset to an empty session with the same id.

    In-flight requests are not aborted; bumping generation_id makes their
    results stale.
    """
    return FusionSession(
        session_id=session.session_id,
        palette_id=session.palette_id,
        generation_id=session.generation_id + 1,
        updated_at=time.time(),
    )


def select_palette(session: FusionSession, palette_id: str) -> FusionSession:
    if palette_id not in PALETTES:
        raise InvalidStateError(f"Unknown palette: {palette_id}")
    return _touch(session, palette_id=palette_id)


class SessionStore:
    """In-memory session storage keyed by session id, with idle expiry."""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self._sessions: Dict[str, FusionSession] = {}

    def create(self) -> FusionSession:
        self.purge_expired()
        session = new_session()
        self._sessions[session.session_id] = session
        logger.info(f"[Session] Created {session.session_id}")
        return session

    def get(self, session_id: str) -> Optional[FusionSession]:
        session = self._sessions.get(session_id)
        if session is not None and self._expired(session):
            del self._sessions[session_id]
            return None
        return session

    def update(self, session: FusionSession) -> FusionSession:
        self._sessions[session.session_id] = session
        return session

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        expired = [sid for sid, session in self._sessions.items() if self._expired(session)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"[Session] Purged {len(expired)} expired sessions")
        return len(expired)

    def _expired(self, session: FusionSession) -> bool:
        return self.ttl_seconds > 0 and time.time() - session.updated_at > self.ttl_seconds

    def __len__(self) -> int:
        return len(self._sessions)


# Global store instance
session_store = SessionStore()
