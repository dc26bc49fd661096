"""Call status values and participant attribute names."""

from __future__ import annotations

from datetime import timedelta
from enum import IntEnum

MAX_CALL_DURATION = timedelta(hours=24)
DEFAULT_RINGING_TIMEOUT = timedelta(minutes=3)

ATTR_SIP_PREFIX = "sip."
ATTR_SIP_HEADER_PREFIX = "sip.h."
ATTR_SIP_CALL_ID_FULL = ATTR_SIP_PREFIX + "callIDFull"
ATTR_SIP_CALL_TAG = ATTR_SIP_PREFIX + "callTag"

HEADER_TO_LOG = {
    "X-Twilio-AccountSid": "twilioAccSID",
    "X-Twilio-CallSid": "twilioCallSID",
    "X-call_leg_id": "telnyxCallLegID",
    "X-call_session_id": "telnyxCallSessionID",
}

HEADER_TO_ATTR = {
    "X-Twilio-AccountSid": ATTR_SIP_PREFIX + "twilio.accountSid",
    "X-Twilio-CallSid": ATTR_SIP_PREFIX + "twilio.callSid",
    "X-call_leg_id": ATTR_SIP_PREFIX + "telnyx.callLegID",
    "X-call_session_id": ATTR_SIP_PREFIX + "telnyx.callSessionID",
    "X-Lk-Test-Id": "lktest.id",
}

_STATUS_BUSY_HERE = 486
_STATUS_NOT_ACCEPTABLE_HERE = 488


class DisconnectReason(IntEnum):
    """Why a participant left a room."""

    UNKNOWN_REASON = 0
    CLIENT_INITIATED = 1
    DUPLICATE_IDENTITY = 2
    SERVER_SHUTDOWN = 3
    PARTICIPANT_REMOVED = 4
    ROOM_DELETED = 5
    STATE_MISMATCH = 6
    JOIN_FAILURE = 7
    MIGRATION = 8
    SIGNAL_CLOSE = 9
    ROOM_CLOSED = 10
    USER_UNAVAILABLE = 11
    USER_REJECTED = 12
    SIP_TRUNK_FAILURE = 13


class CallStatus(IntEnum):
    """Lifecycle state of a SIP call."""

    DROPPED = 0
    FLOOD = 1
    DIALING = 2
    RINGING = 3
    AUTOMATION = 4
    ACTIVE = 5
    HANGUP = 6
    UNAVAILABLE = 7
    REJECTED = 8
    MEDIA_FAILED = 9

    def attribute(self) -> str:
        """Return the participant attribute value, or "" if there is none."""
        return _ATTRIBUTES.get(self, "")

    def disconnect_reason(self) -> DisconnectReason:
        return _DISCONNECT_REASONS.get(self, DisconnectReason.UNKNOWN_REASON)

    def sip_status(self) -> tuple[int, str]:
        """Return the SIP status code and reason used to reject a call."""
        if self is CallStatus.MEDIA_FAILED:
            return _STATUS_NOT_ACCEPTABLE_HERE, "MediaFailed"
        return _STATUS_BUSY_HERE, "Rejected"


_ATTRIBUTES = {
    CallStatus.DIALING: "dialing",
    CallStatus.RINGING: "ringing",
    CallStatus.AUTOMATION: "automation",
    CallStatus.ACTIVE: "active",
    CallStatus.HANGUP: "hangup",
}

_DISCONNECT_REASONS = {
    CallStatus.HANGUP: DisconnectReason.CLIENT_INITIATED,
    CallStatus.UNAVAILABLE: DisconnectReason.USER_UNAVAILABLE,
    CallStatus.REJECTED: DisconnectReason.USER_REJECTED,
}