"""
State machine for the avatar session lifecycle.

IDLE → PREPARING (start: handshake running)
PREPARING → MEDIA_CONNECTING (handshake ok: side channel + room connecting)
MEDIA_CONNECTING → ACTIVE (room connected, microphone on, opening turn shown)
PREPARING/MEDIA_CONNECTING/ACTIVE → TEARING_DOWN (stop, error, remote disconnect)
TEARING_DOWN → IDLE (clean stop) or FAILED (error)
FAILED → PREPARING (retry) or TEARING_DOWN (stop after failure)
"""

from typing import Callable, Dict, Optional, Set
from models import SessionPhase
from utils import SessionLogger


class SessionStateMachine:
    """
    Tracks and validates controller phase transitions.

    Invalid transitions are logged and refused rather than raised, so a
    late notification can never push the session into an impossible phase.
    """

    VALID_TRANSITIONS: Dict[SessionPhase, Set[SessionPhase]] = {
        SessionPhase.IDLE: {SessionPhase.PREPARING},
        SessionPhase.PREPARING: {
            SessionPhase.MEDIA_CONNECTING,
            SessionPhase.TEARING_DOWN,
        },
        SessionPhase.MEDIA_CONNECTING: {
            SessionPhase.ACTIVE,
            SessionPhase.TEARING_DOWN,
        },
        SessionPhase.ACTIVE: {SessionPhase.TEARING_DOWN},
        SessionPhase.TEARING_DOWN: {SessionPhase.IDLE, SessionPhase.FAILED},
        SessionPhase.FAILED: {SessionPhase.PREPARING, SessionPhase.TEARING_DOWN},
    }

    def __init__(self, session_key: str, logger: Optional[SessionLogger] = None):
        self.session_key = session_key
        self.logger = logger or SessionLogger(session_key)
        self._phase = SessionPhase.IDLE
        self._failure_reason: Optional[str] = None

        self._on_state_change: Optional[Callable[[SessionPhase, SessionPhase], None]] = None

    @property
    def phase(self) -> SessionPhase:
        """Get current phase."""
        return self._phase

    @property
    def failure_reason(self) -> Optional[str]:
        return self._failure_reason

    @property
    def is_busy(self) -> bool:
        """A session is being set up, running or torn down."""
        return self._phase in (
            SessionPhase.PREPARING,
            SessionPhase.MEDIA_CONNECTING,
            SessionPhase.ACTIVE,
            SessionPhase.TEARING_DOWN,
        )

    @property
    def can_start(self) -> bool:
        return self._phase in (SessionPhase.IDLE, SessionPhase.FAILED)

    @property
    def is_active(self) -> bool:
        return self._phase == SessionPhase.ACTIVE

    def set_on_state_change(self, callback: Callable[[SessionPhase, SessionPhase], None]):
        """Set callback for phase changes."""
        self._on_state_change = callback

    def can_transition(self, new_phase: SessionPhase) -> bool:
        return new_phase in self.VALID_TRANSITIONS[self._phase]

    def begin_start(self) -> bool:
        """Enter PREPARING if a new attempt is allowed."""
        if not self.can_start:
            self.logger.warning(f"Start ignored: session is {self._phase.value}")
            return False
        self._failure_reason = None
        return self.transition_to(SessionPhase.PREPARING)

    def begin_teardown(self) -> bool:
        return self.transition_to(SessionPhase.TEARING_DOWN)

    def finish_teardown(self, failure_reason: Optional[str] = None) -> bool:
        """Leave TEARING_DOWN for IDLE, or FAILED when a reason is given."""
        if failure_reason:
            self._failure_reason = failure_reason
            return self.transition_to(SessionPhase.FAILED)
        return self.transition_to(SessionPhase.IDLE)

    def transition_to(self, new_phase: SessionPhase) -> bool:
        """Move to a new phase. Returns False (and logs) if not allowed."""
        if new_phase == self._phase:
            return True

        if not self.can_transition(new_phase):
            self.logger.warning(
                f"Invalid transition refused: {self._phase.value} → {new_phase.value}"
            )
            return False

        old_phase = self._phase
        self._phase = new_phase

        self.logger.debug(f"Phase transition: {old_phase.value} → {new_phase.value}")

        if self._on_state_change:
            self._on_state_change(old_phase, new_phase)
        return True
