"""Transports, URIs, tags and header/attribute mapping for SIP calls."""

from __future__ import annotations

import ipaddress
import random
import re
from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Iterable, Mapping, Protocol, TypeVar

from .message import Header, Request, Response, Uri, parse_address_params
from .participant import (
    ATTR_SIP_CALL_ID_FULL,
    ATTR_SIP_CALL_TAG,
    ATTR_SIP_HEADER_PREFIX,
    HEADER_TO_ATTR,
)

T = TypeVar("T")

_DEFAULT_PORT = 5060
_DEFAULT_TLS_PORT = 5061
_PORT_RE = re.compile(r"[+-]?[0-9]+")

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class Transport(str, Enum):
    UDP = "udp"
    TCP = "tcp"
    TLS = "tls"


class SIPTransport(IntEnum):
    AUTO = 0
    UDP = 1
    TCP = 2
    TLS = 3


class SIPHeaderOptions(IntEnum):
    NO_HEADERS = 0
    X_HEADERS = 1
    ALL_HEADERS = 2


class SIPMediaEncryption(IntEnum):
    DISABLE = 0
    ALLOW = 1
    REQUIRE = 2


class Encryption(Enum):
    NONE = "none"
    ALLOW = "allow"
    REQUIRE = "require"


@dataclass
class SIPUri:
    """A SIP address as reported to the room service."""

    user: str = ""
    host: str = ""
    ip: str = ""
    port: int = 0
    transport: SIPTransport = SIPTransport.AUTO


_TO_SIP_TRANSPORT = {
    Transport.UDP: SIPTransport.UDP,
    Transport.TCP: SIPTransport.TCP,
    Transport.TLS: SIPTransport.TLS,
}
_FROM_SIP_TRANSPORT = {v: k for k, v in _TO_SIP_TRANSPORT.items()}


def transport_from(t: SIPTransport) -> Transport | None:
    """Map a service transport to a SIP transport, or None for auto."""
    return _FROM_SIP_TRANSPORT.get(t)


def sip_transport_from(t: Transport | str | None) -> SIPTransport:
    try:
        return _TO_SIP_TRANSPORT[Transport(t)]
    except ValueError:
        return SIPTransport.AUTO


def _split_host_port(hostport: str) -> tuple[str, str]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0 or hostport[end + 1:end + 2] != ":":
            raise ValueError(f"invalid host:port {hostport!r}")
        return hostport[1:end], hostport[end + 2:]
    host, sep, port = hostport.rpartition(":")
    if not sep or any(c in host for c in ":[]") or "]" in port:
        raise ValueError(f"invalid host:port {hostport!r}")
    return host, port


@dataclass(frozen=True)
class URI:
    """A SIP destination: user, hostname, resolved address and transport."""

    user: str = ""
    host: str = ""
    ip: IPAddress | None = None
    port: int = 0
    transport: Transport | None = None

    def normalize(self) -> URI:
        """Move a port embedded in the host name into the port field."""
        try:
            host, port = _split_host_port(self.host)
        except ValueError:
            return self
        if not _PORT_RE.fullmatch(port):
            return self
        return replace(self, host=host, port=int(port) & 0xFFFF)

    def get_host(self) -> str:
        if self.host:
            return self.host
        return str(self.ip) if self.ip is not None else ""

    def get_port(self) -> int:
        if self.port:
            return self.port
        return _DEFAULT_TLS_PORT if self.transport is Transport.TLS else _DEFAULT_PORT

    def get_port_or_none(self) -> int:
        """Return the port, or 0 when it is the default SIP port."""
        port = self.get_port()
        return 0 if port == _DEFAULT_PORT else port

    def get_host_port(self) -> str:
        return f"{self.get_host()}:{self.get_port()}"

    def get_dest(self) -> str:
        host = str(self.ip) if self.ip is not None else self.host
        return f"{host}:{self.get_port()}"

    def get_uri(self) -> Uri:
        uri = Uri(user=self.user, host=self.get_host(), port=self.port)
        if self.transport is not None:
            uri.uri_params["transport"] = self.transport.value
        return uri

    def get_contact_uri(self) -> Uri:
        """Like get_uri, but UDP and TCP use the IP rather than a hostname."""
        uri = self.get_uri()
        if self.transport in (Transport.UDP, Transport.TCP) and self.ip is not None:
            uri.host = str(self.ip)
        return uri

    def to_sip_uri(self) -> SIPUri:
        return SIPUri(
            user=self.user,
            host=self.get_host(),
            ip=str(self.ip) if self.ip is not None else "",
            port=self.get_port(),
            transport=sip_transport_from(self.transport),
        )


def create_uri_from_user_and_address(user: str, address: str, transport: Transport | None) -> URI:
    return URI(user=user, host=address, transport=transport).normalize()


class Headers(list):
    """A list of headers with case-insensitive lookup."""

    def get_header(self, name: str) -> Header | None:
        wanted = name.lower()
        return next((h for h in self if h is not None and h.name.lower() == wanted), None)


def _tag_of(header: Header | None, what: str, kind: str) -> str:
    if header is None:
        raise ValueError(f"no {what} on {kind}")
    params = parse_address_params(header.value)
    if "tag" not in params:
        raise ValueError(f"no tag in {what} on {kind}")
    return params["tag"]


def get_from_tag(request: Request) -> str:
    """Return the tag of the From header of a request."""
    return _tag_of(request.get_header("From"), "From", "Request")


def get_to_tag(response: Response) -> str:
    """Return the tag of the To header of a response."""
    return _tag_of(response.get_header("To"), "To", "Response")


class _Signaling(Protocol):
    def remote_headers(self) -> Iterable[Header]: ...

    def tag(self) -> str: ...

    def call_id(self) -> str: ...


def headers_to_attrs(
    attrs: dict[str, str] | None,
    hdr_to_attr: Mapping[str, str] | None,
    opts: SIPHeaderOptions,
    signaling: _Signaling | None,
    headers: Iterable[Header] | None,
) -> dict[str, str]:
    """Copy SIP headers into participant attributes."""
    if attrs is None:
        attrs = {}
    if signaling is not None:
        headers = signaling.remote_headers()
    found = Headers(headers or [])
    if opts != SIPHeaderOptions.NO_HEADERS:
        for header in found:
            if header is None:
                continue
            name = header.name.lower()
            if not name:
                continue
            if opts == SIPHeaderOptions.X_HEADERS and not name.startswith("x-"):
                continue
            attrs[ATTR_SIP_HEADER_PREFIX + name] = header.value
    for mapping in (HEADER_TO_ATTR, hdr_to_attr or {}):
        for hdr, name in mapping.items():
            header = found.get_header(hdr)
            if header is not None:
                attrs[name] = header.value
    if signaling is not None:
        if tag := signaling.tag():
            attrs[ATTR_SIP_CALL_TAG] = tag
        if call_id := signaling.call_id():
            attrs[ATTR_SIP_CALL_ID_FULL] = call_id
    return attrs


def attrs_to_headers(
    attrs: Mapping[str, str],
    attr_to_hdr: Mapping[str, str] | None,
    headers: dict[str, str] | None,
) -> dict[str, str] | None:
    """Copy participant attributes into SIP headers."""
    if not attr_to_hdr:
        return headers
    if headers is None:
        headers = {}
    for attr, hdr in attr_to_hdr.items():
        if attr in attrs:
            headers[hdr] = attrs[attr]
    return headers


_ENCRYPTIONS = {
    SIPMediaEncryption.DISABLE: Encryption.NONE,
    SIPMediaEncryption.ALLOW: Encryption.ALLOW,
    SIPMediaEncryption.REQUIRE: Encryption.REQUIRE,
}


def sdp_encryption(e: SIPMediaEncryption | int) -> Encryption:
    try:
        return _ENCRYPTIONS[SIPMediaEncryption(e)]
    except ValueError:
        raise ValueError("invalid SIP media encryption type") from None


def select_value(then: T, els: T, prob_else: float) -> T:
    """Pick between two values at random, used to inject faults in tests."""
    if prob_else <= 0:
        return then
    if random.random() < prob_else:
        return then
    return els


def select_value_bool(then: bool, prob_else: float) -> bool:
    return select_value(then, not then, prob_else)