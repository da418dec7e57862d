"""
Wire protocol for the bridge.

Frames on the persistent channel are flat JSON objects with a `type`
field naming the event, the remaining fields being its payload:

    client -> server   {"type": "message", "text": ...}
                       {"type": "history", "limit": 50}
                       {"type": "typing"}
    server -> client   {"type": "message", "id", "text", "isBot"|"from", "time"}
                       {"type": "history", "messages": [...]}
                       {"type": "typing", "isTyping": bool}
                       {"type": "listening", "isListening": bool}
                       {"type": "state", "state": "speaking"|...}
                       {"type": "hello", ...}
"""

import json
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ServerMessage(_Payload):
    """A chat message as sent by the bridge."""
    id: Optional[Union[int, str]] = None
    text: str
    is_bot: Optional[bool] = Field(default=None, alias="isBot")
    sender: Optional[str] = Field(default=None, alias="from")
    time: Optional[str] = None
    client_id: Optional[str] = Field(default=None, alias="clientId")

    @property
    def from_bot(self) -> bool:
        if self.is_bot is not None:
            return self.is_bot
        return self.sender == "bot"


class HistoryPayload(_Payload):
    messages: list[ServerMessage] = Field(default_factory=list)


class TypingPayload(_Payload):
    # Omitted means "on"
    is_typing: Optional[bool] = Field(default=None, alias="isTyping")


class ListeningPayload(_Payload):
    is_listening: Optional[bool] = Field(default=None, alias="isListening")


class StatePayload(_Payload):
    state: str = ""


class TokenResponse(_Payload):
    """Successful auth endpoint response."""
    access_token: str = Field(alias="accessToken", min_length=1)
    expires_in: float = Field(alias="expiresIn", ge=0)


class TokenErrorResponse(_Payload):
    """Non-2xx auth endpoint response."""
    message: str


def encode_frame(event: str, payload: Optional[dict] = None) -> str:
    """Serialize an outgoing event."""
    frame = {"type": event}
    frame.update(payload or {})
    return json.dumps(frame)


def decode_frame(raw: Union[str, bytes]) -> tuple[str, dict[str, Any]]:
    """
    Parse an incoming frame.

    Returns:
        (event type, payload without the type field)

    Raises:
        ValueError: If the frame is not a JSON object with a string type
    """
    data = json.loads(raw)
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ValueError("frame is not an object with a 'type' field")
    event = data.pop("type")
    return event, data
