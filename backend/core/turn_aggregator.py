"""
Folds decoded talking/turn events into transcript turns.

One turn accumulator is open at a time. Text fragments are appended in
arrival order and the turn is sealed only by an explicit End event, so a
slow response is never truncated.
"""

import itertools
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict

from models import (
    Speaker,
    TranscriptTurn,
    StreamingEvent,
    AvatarStartTalking,
    AvatarStopTalking,
    AvatarTalkingMessage,
    AvatarTalkingEnd,
    UserStartTalking,
    UserStopTalking,
    UserTalkingMessage,
    UserTalkingEnd,
)


class NoEffect(BaseModel):
    model_config = ConfigDict(frozen=True)


class TurnSealed(BaseModel):
    model_config = ConfigDict(frozen=True)
    turn: TranscriptTurn


class TalkingSetChanged(BaseModel):
    model_config = ConfigDict(frozen=True)
    is_avatar_talking: bool


class UserSpeakingChanged(BaseModel):
    """Liveness signal for the speaking indicator; never a transcript change."""
    model_config = ConfigDict(frozen=True)
    is_user_talking: bool


TurnEffect = Union[NoEffect, TurnSealed, TalkingSetChanged, UserSpeakingChanged]

NO_EFFECT = NoEffect()


class TurnAccumulator:
    """Text of the turn currently being streamed."""

    def __init__(self, turn_id: str, speaker: Speaker):
        self.turn_id = turn_id
        self.speaker = speaker
        self._fragments: List[str] = []

    def append(self, text: str):
        self._fragments.append(text)

    @property
    def text(self) -> str:
        return "".join(self._fragments)


class TurnAggregator:
    """
    Turn segmentation state for one session.

    The active talking set keeps avatar start events in arrival order. A
    stop removes the entries of its own task id and nothing else.
    """

    def __init__(self, id_prefix: str = "turn"):
        self._id_prefix = id_prefix
        self._ids = itertools.count(1)
        self._active_tasks: List[str] = []
        self._open: Optional[TurnAccumulator] = None

    @property
    def is_avatar_talking(self) -> bool:
        return bool(self._active_tasks)

    @property
    def active_task_ids(self) -> List[str]:
        return list(self._active_tasks)

    @property
    def open_turn(self) -> Optional[TurnAccumulator]:
        return self._open

    def next_turn_id(self) -> str:
        """Mint a fresh turn id (also used for turns authored outside the protocol)."""
        return f"{self._id_prefix}-{next(self._ids)}"

    def apply(self, event: StreamingEvent) -> TurnEffect:
        """Fold one event and report what changed."""
        if isinstance(event, AvatarStartTalking):
            self._active_tasks.append(event.task_id)
            return TalkingSetChanged(is_avatar_talking=self.is_avatar_talking)

        if isinstance(event, AvatarStopTalking):
            # Late or duplicate stops are expected under jitter
            self._active_tasks = [t for t in self._active_tasks if t != event.task_id]
            return TalkingSetChanged(is_avatar_talking=self.is_avatar_talking)

        if isinstance(event, AvatarTalkingMessage):
            self._append(Speaker.AVATAR, event.text)
            return NO_EFFECT

        if isinstance(event, UserTalkingMessage):
            self._append(Speaker.USER, event.text)
            return NO_EFFECT

        if isinstance(event, AvatarTalkingEnd):
            return self._seal(Speaker.AVATAR)

        if isinstance(event, UserTalkingEnd):
            return self._seal(Speaker.USER)

        if isinstance(event, UserStartTalking):
            return UserSpeakingChanged(is_user_talking=True)

        if isinstance(event, UserStopTalking):
            return UserSpeakingChanged(is_user_talking=False)

        raise TypeError(f"Unhandled event variant: {type(event).__name__}")

    def flush(self) -> Optional[TranscriptTurn]:
        """Force-seal the open turn on teardown. Returns None if nothing was said."""
        if self._open is None:
            return None
        accumulator, self._open = self._open, None
        if not accumulator.text:
            return None
        return TranscriptTurn(id=accumulator.turn_id, speaker=accumulator.speaker, text=accumulator.text)

    def reset(self):
        """Drop all in-flight state. Turn ids keep counting."""
        self._active_tasks.clear()
        self._open = None

    def _append(self, speaker: Speaker, text: str):
        if self._open is None:
            self._open = TurnAccumulator(self.next_turn_id(), speaker)
        self._open.append(text)

    def _seal(self, speaker: Speaker) -> TurnEffect:
        if self._open is None:
            return NO_EFFECT
        accumulator, self._open = self._open, None
        return TurnSealed(
            turn=TranscriptTurn(id=accumulator.turn_id, speaker=speaker, text=accumulator.text)
        )
