"""Service configuration, dispatch types and call bookkeeping of the SIP bridge."""

from __future__ import annotations

import ipaddress
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from enum import IntEnum
from typing import Any, Callable, Mapping, TypeVar

from .protocol import ErrorCode, RPCError
from .types import IPAddress, SIPHeaderOptions, SIPMediaEncryption

V = TypeVar("V")

log = logging.getLogger(__name__)

USER_AGENT = "LiveKit"
DIGEST_LIMIT = 500

HOSTNAME_PLACEHOLDER = "${IP}"
_INVALID_HOSTNAME_CHARS = "$%{}[]:/| "

MIN_RINGING_INTERVAL = timedelta(seconds=1)
MAX_RINGING_INTERVAL = timedelta(seconds=60)
DEFAULT_TRANSFER_TIMEOUT = timedelta(seconds=80)


@dataclass
class ServiceConfig:
    """Addresses the service announces for signaling and media."""

    signaling_ip: IPAddress | None = None
    signaling_ip_local: IPAddress | None = None
    media_ip: IPAddress | None = None


@dataclass
class ActiveCalls:
    """Counts of active calls with a few sample call IDs."""

    inbound: int = 0
    outbound: int = 0
    sample_ids: list[str] = field(default_factory=list)

    def total(self) -> int:
        return self.outbound + self.inbound


def sample_map(
    limit: int, mapping: Mapping[Any, V], sample: Callable[[V], str]
) -> tuple[list[str], int]:
    """Sample up to ``limit`` values of a mapping; return the samples and the mapping size.

    Empty samples are skipped but still count towards the limit.
    """
    out: list[str] = []
    for value in mapping.values():
        text = sample(value)
        if text:
            out.append(text)
        limit -= 1
        if limit <= 0:
            break
    return out, len(mapping)


def expand_hostname(hostname: str, signaling_ip: IPAddress | str) -> str:
    """Replace the ``${IP}`` placeholder with a DNS-safe form of the signaling IP."""
    if HOSTNAME_PLACEHOLDER not in hostname:
        return hostname
    ip_text = str(ipaddress.ip_address(str(signaling_ip)))
    safe = (
        ip_text.replace(".", "-")
        .replace("[", "")
        .replace("]", "")
        .replace(":", "-")
    )
    return hostname.replace(HOSTNAME_PLACEHOLDER, safe)


def validate_hostname(hostname: str) -> str:
    """Return the hostname, or raise ValueError if it holds forbidden characters."""
    if any(c in _INVALID_HOSTNAME_CHARS for c in hostname):
        raise ValueError(f"invalid hostname: {hostname!r}")
    return hostname


def normalize_ringing_interval(interval: timedelta) -> timedelta:
    """Return the interval if it lies within 1..60 seconds, else one second."""
    if interval < MIN_RINGING_INTERVAL or interval > MAX_RINGING_INTERVAL:
        return MIN_RINGING_INTERVAL
    return interval


class AuthResult(IntEnum):
    NOT_FOUND = 0
    DROP = 1
    PASSWORD = 2
    ACCEPT = 3


@dataclass
class AuthInfo:
    """Outcome of looking up credentials for an inbound call."""

    result: AuthResult = AuthResult.NOT_FOUND
    project_id: str = ""
    trunk_id: str = ""
    username: str = ""
    password: str = ""


class DispatchResult(IntEnum):
    ACCEPT = 0
    REQUEST_PIN = 1
    NO_RULE_REJECT = 2
    NO_RULE_DROP = 3


@dataclass
class CallInfo:
    """What is known about an inbound call when dispatching it."""

    trunk_id: str = ""
    call: Any = None
    pin: str = ""
    no_pin: bool = False


@dataclass
class CallDispatch:
    """Where and how an inbound call is to be connected."""

    result: DispatchResult = DispatchResult.ACCEPT
    room: Any = None
    project_id: str = ""
    trunk_id: str = ""
    dispatch_rule_id: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    headers_to_attributes: dict[str, str] = field(default_factory=dict)
    include_headers: SIPHeaderOptions = SIPHeaderOptions.NO_HEADERS
    attributes_to_headers: dict[str, str] = field(default_factory=dict)
    enabled_features: list[Any] = field(default_factory=list)
    ringing_timeout: timedelta = timedelta(0)
    max_call_duration: timedelta = timedelta(0)
    media_encryption: SIPMediaEncryption = SIPMediaEncryption.DISABLE


class Handler(ABC):
    """Callbacks the SIP service uses to authorize, dispatch and report calls."""

    @abstractmethod
    def get_auth_credentials(self, call: Any) -> AuthInfo: ...

    @abstractmethod
    def dispatch_call(self, info: CallInfo) -> CallDispatch: ...

    @abstractmethod
    def get_media_processor(self, features: list[Any]) -> Any: ...

    @abstractmethod
    def register_transfer_sip_participant_topic(self, sip_call_id: str) -> None: ...

    @abstractmethod
    def deregister_transfer_sip_participant_topic(self, sip_call_id: str) -> None: ...

    @abstractmethod
    def register_hold_sip_participant_topic(self, sip_call_id: str) -> None: ...

    @abstractmethod
    def deregister_hold_sip_participant_topic(self, sip_call_id: str) -> None: ...

    @abstractmethod
    def register_unhold_sip_participant_topic(self, sip_call_id: str) -> None: ...

    @abstractmethod
    def deregister_unhold_sip_participant_topic(self, sip_call_id: str) -> None: ...

    @abstractmethod
    def on_call_end(self, call_info: Any, reason: str) -> None: ...


class _PendingTransfer:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.error: BaseException | None = None


def _as_timedelta(value: timedelta | float | None) -> timedelta:
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


class TransferRegistry:
    """Runs call transfers, merging repeated requests for the same transfer."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: dict[tuple[str, str], _PendingTransfer] = {}

    def transfer(
        self,
        sip_call_id: str,
        transfer_to: str,
        timeout: timedelta | float | None,
        process: Callable[[timedelta], None],
    ) -> None:
        """Transfer a call, waiting for the outcome.

        ``process`` is called with the time it may take. A request for a transfer
        already in progress waits for that one instead of starting another.
        Raises what ``process`` raised, or RPCError(CANCELED) if waiting times out.
        """
        limit = _as_timedelta(timeout)
        if limit <= timedelta(0):
            limit = DEFAULT_TRANSFER_TIMEOUT
        log.info("transferring SIP call callID=%s transferTo=%s", sip_call_id, transfer_to)
        key = (sip_call_id, transfer_to)
        with self._lock:
            pending = self._pending.get(key)
            if pending is None:
                pending = _PendingTransfer()
                self._pending[key] = pending
                threading.Thread(
                    target=self._run, args=(key, pending, process, limit), daemon=True
                ).start()
            else:
                log.debug(
                    "repeated request for call transfer callID=%s transferTo=%s",
                    sip_call_id,
                    transfer_to,
                )
        if not pending.done.wait(limit.total_seconds()):
            raise RPCError(ErrorCode.CANCELED, "call transfer timed out")
        if pending.error is not None:
            raise pending.error

    def _run(
        self,
        key: tuple[str, str],
        pending: _PendingTransfer,
        process: Callable[[timedelta], None],
        limit: timedelta,
    ) -> None:
        try:
            process(limit)
        except BaseException as exc:  # handed over to the waiting callers
            pending.error = exc
        finally:
            pending.done.set()
            with self._lock:
                if self._pending.get(key) is pending:
                    del self._pending[key]