"""
Decoder for the talking/turn event protocol.

Pure and stateless: one wire message in, one typed event out, or a
ProtocolDecodeError describing why the message was rejected.
"""

import json
from typing import Union

from pydantic import TypeAdapter, ValidationError

from models import StreamingEvent, StreamingEventType
from errors import InvalidPayload, MissingField, UnknownVariant

_event_adapter: TypeAdapter = TypeAdapter(StreamingEvent)
_KNOWN_TYPES = frozenset(t.value for t in StreamingEventType)


def decode(payload: Union[bytes, bytearray, str]) -> StreamingEvent:
    """
    Decode one raw message into a StreamingEvent.

    Raises:
        InvalidPayload: payload is not a JSON object
        MissingField: ``type`` or a field required by the variant is absent
        UnknownVariant: ``type`` names no known event
    """
    try:
        data = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError, RecursionError) as e:
        raise InvalidPayload(f"Not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise InvalidPayload(f"Expected a JSON object, got {type(data).__name__}")

    event_type = data.get("type")
    if not isinstance(event_type, str):
        raise MissingField("type")

    if event_type not in _KNOWN_TYPES:
        raise UnknownVariant(event_type)

    try:
        return _event_adapter.validate_python(data)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"][1:]) or "type"
        # Wrong-typed fields (e.g. a numeric task_id) count as missing
        raise MissingField(field, event_type) from e
