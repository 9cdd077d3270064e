"""
Talking/turn event protocol carried by the room data channel or the
streaming.chat side channel.

Every wire message is a JSON object whose ``type`` field selects one of the
eight variants below. Instances are immutable.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class BaseStreamingEvent(BaseModel):
    """Base structure for all inbound talking/turn events."""
    model_config = ConfigDict(frozen=True)


class AvatarStartTalking(BaseStreamingEvent):
    """Avatar began speaking the utterance of a task."""
    type: Literal["avatar_start_talking"] = "avatar_start_talking"
    task_id: str


class AvatarStopTalking(BaseStreamingEvent):
    """Avatar finished speaking the utterance of a task."""
    type: Literal["avatar_stop_talking"] = "avatar_stop_talking"
    task_id: str


class AvatarTalkingMessage(BaseStreamingEvent):
    """Streamed fragment of the avatar's transcript."""
    type: Literal["avatar_talking_message"] = "avatar_talking_message"
    text: str = Field(alias="message")


class AvatarTalkingEnd(BaseStreamingEvent):
    """End of the avatar's current turn."""
    type: Literal["avatar_end_message"] = "avatar_end_message"


class UserStartTalking(BaseStreamingEvent):
    """Voice activity started on the user's microphone."""
    type: Literal["user_start"] = "user_start"


class UserStopTalking(BaseStreamingEvent):
    """Voice activity stopped on the user's microphone."""
    type: Literal["user_stop"] = "user_stop"


class UserTalkingMessage(BaseStreamingEvent):
    """Streamed fragment of the user's speech-to-text transcript."""
    type: Literal["user_talking_message"] = "user_talking_message"
    text: str = Field(alias="message")


class UserTalkingEnd(BaseStreamingEvent):
    """End of the user's current turn."""
    type: Literal["user_end_message"] = "user_end_message"


StreamingEvent = Annotated[
    Union[
        AvatarStartTalking,
        AvatarStopTalking,
        AvatarTalkingMessage,
        AvatarTalkingEnd,
        UserStartTalking,
        UserStopTalking,
        UserTalkingMessage,
        UserTalkingEnd,
    ],
    Field(discriminator="type"),
]
