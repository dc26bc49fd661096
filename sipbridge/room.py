"""Room connection settings, participant details and call audio counters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .participant import ATTR_SIP_PREFIX

ATTR_SIP_CALL_ID = ATTR_SIP_PREFIX + "callID"
ATTR_SIP_TRUNK_ID = ATTR_SIP_PREFIX + "trunkID"
ATTR_SIP_DISPATCH_RULE_ID = ATTR_SIP_PREFIX + "ruleID"
ATTR_SIP_TRUNK_NUMBER = ATTR_SIP_PREFIX + "trunkPhoneNumber"
ATTR_SIP_PHONE_NUMBER = ATTR_SIP_PREFIX + "phoneNumber"

# Attributes that are signed into a locally built access token.
TOKEN_ATTRIBUTES = (
    ATTR_SIP_CALL_ID,
    ATTR_SIP_TRUNK_ID,
    ATTR_SIP_DISPATCH_RULE_ID,
    ATTR_SIP_TRUNK_NUMBER,
    ATTR_SIP_PHONE_NUMBER,
)


@dataclass
class RoomStats:
    """Counters of audio flowing between a call and its room."""

    input_packets: int = 0
    input_bytes: int = 0
    mixer_frames: int = 0
    mixer_samples: int = 0
    mixer: dict[str, int] = field(default_factory=dict)
    output_frames: int = 0
    output_samples: int = 0


@dataclass
class ParticipantInfo:
    """The room participant a call is represented by."""

    id: str = ""
    room_name: str = ""
    identity: str = ""
    name: str = ""


@dataclass
class ParticipantConfig:
    """How the call's participant is to appear in the room."""

    identity: str = ""
    name: str = ""
    metadata: str = ""
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class RoomConfig:
    """Where a call joins and with which credentials."""

    ws_url: str = ""
    token: str = ""
    room_name: str = ""
    participant: ParticipantConfig = field(default_factory=ParticipantConfig)
    room_preset: str = ""
    room_config: Any = None
    jitter_buf: bool = False


def token_attributes(attributes: Mapping[str, str] | None) -> dict[str, str]:
    """Return the subset of participant attributes that go into an access token."""
    attributes = attributes or {}
    return {key: attributes[key] for key in TOKEN_ATTRIBUTES if key in attributes}