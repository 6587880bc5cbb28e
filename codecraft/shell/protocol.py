"""Socket message contract for shell command sessions."""

from __future__ import annotations

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from codecraft.errors import ProtocolError

SCAFFOLD_COMPLETE_NOTE = "Project created successfully! You can now start editing the files."


class CommandMessage(BaseModel):
    """Run a shell command, optionally in a workspace-relative directory."""

    type: Literal["command"]
    command: str = Field(min_length=1)
    cwd: Optional[str] = None

    @field_validator("command")
    @classmethod
    def _reject_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be blank")
        return value


class StopMessage(BaseModel):
    """Terminate every process owned by the session."""

    type: Literal["stop"]


InboundMessage = Annotated[Union[CommandMessage, StopMessage], Field(discriminator="type")]
_INBOUND_ADAPTER: TypeAdapter = TypeAdapter(InboundMessage)


class OutboundMessage(BaseModel):
    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)


class OutputMessage(OutboundMessage):
    type: Literal["output"] = "output"
    content: str
    command: str


class ErrorMessage(OutboundMessage):
    type: Literal["error"] = "error"
    content: str
    command: Optional[str] = None


class CloseMessage(OutboundMessage):
    type: Literal["close"] = "close"
    code: Optional[int]
    command: str


class CommandCompleteMessage(OutboundMessage):
    type: Literal["commandComplete"] = "commandComplete"
    command: str
    code: Optional[int]
    message: str = SCAFFOLD_COMPLETE_NOTE


def _describe_validation_error(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = str(error.get("msg", "invalid value"))
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "invalid message"


def parse_inbound(raw: str | bytes) -> CommandMessage | StopMessage:
    """Decode one text frame into a validated inbound message."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Invalid JSON message: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    if "type" not in data:
        raise ProtocolError("Message is missing 'type'")
    try:
        return _INBOUND_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid message: {_describe_validation_error(exc)}") from exc


def matches_scaffold_trigger(command: str, triggers: tuple[str, ...] | list[str]) -> bool:
    return any(trigger and trigger in command for trigger in triggers)
