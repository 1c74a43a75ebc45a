"""
UI message models for Sequencer.

Inbound messages arrive from the plugin UI as tagged JSON objects and are
validated here with pydantic before dispatch. Field names follow the UI's
camelCase convention.

Invariants:
    - Every inbound message has a "type" tag matching exactly one model
    - Unknown tags and malformed payloads fail validation before dispatch
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..engine.increment import full_value, next_full_value
from ..engine.types import Sequence, SequenceMode, SequenceType
from ..errors import ValidationError


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SelectSequence(_Message):
    """Select a different sequence."""

    type: Literal["select-sequence"]
    id: str


class CreateSequence(_Message):
    """Create a new sequence."""

    type: Literal["create-sequence"]
    name: str
    value: str = Field(..., description="First value to issue")
    prefix: str = ""
    sequence_type: SequenceType = Field(SequenceType.NUMBER, alias="sequenceType")
    mode: SequenceMode = SequenceMode.COMPLIANCE


class UpdateSequence(_Message):
    """Rename a sequence or change its prefix."""

    type: Literal["update-sequence"]
    id: str
    name: str | None = None
    prefix: str | None = None


class DeleteSequence(_Message):
    """Delete a sequence."""

    type: Literal["delete-sequence"]
    id: str


class LinkAndStamp(_Message):
    """Link the selected layer to a sequence and stamp it."""

    type: Literal["link-and-stamp"]
    sequence_id: str = Field(..., alias="sequenceId")


class Stamp(_Message):
    """Stamp the selected layer (defaults to its linked sequence)."""

    type: Literal["stamp"]
    sequence_id: str | None = Field(None, alias="sequenceId")


class Unlink(_Message):
    """Remove the selected layer's link."""

    type: Literal["unlink"]


class Relink(_Message):
    """Point the selected layer's link at another sequence."""

    type: Literal["relink"]
    sequence_id: str = Field(..., alias="sequenceId")


class Reset(_Message):
    """Set a sequence's next value."""

    type: Literal["reset"]
    sequence_id: str = Field(..., alias="sequenceId")
    value: str


class BatchUpdate(_Message):
    """Rewrite every layer showing the current value with the next one."""

    type: Literal["update"]
    sequence_id: str = Field(..., alias="sequenceId")


class Close(_Message):
    """Close the plugin."""

    type: Literal["close"]


InboundMessage = Annotated[
    Union[
        SelectSequence,
        CreateSequence,
        UpdateSequence,
        DeleteSequence,
        LinkAndStamp,
        Stamp,
        Unlink,
        Relink,
        Reset,
        BatchUpdate,
        Close,
    ],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_message(data: Any) -> InboundMessage:
    """Validate a raw inbound message.

    Raises:
        ValidationError: If the message is not a known, well-formed message
    """
    try:
        return _inbound_adapter.validate_python(data)
    except PydanticValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        msg_type = data.get("type") if isinstance(data, dict) else None
        raise ValidationError(f"Invalid message: {errors}", field_name="type", value=msg_type) from e


def sequence_payload(sequence: Sequence | None) -> dict[str, Any] | None:
    """Sequence as sent to the UI, with formatted previews."""
    if sequence is None:
        return None
    payload = sequence.to_dict()
    payload["fullValue"] = full_value(sequence)
    payload["nextFullValue"] = next_full_value(sequence)
    return payload
