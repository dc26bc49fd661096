"""A small model of SIP requests, responses, URIs and headers."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field

_BRANCH_MAGIC = "z9hG4bK"


@dataclass
class Uri:
    """A SIP URI such as ``sip:user@host:port;transport=udp``."""

    user: str = ""
    host: str = ""
    port: int = 0
    uri_params: dict[str, str] = field(default_factory=dict)
    scheme: str = "sip"

    def __str__(self) -> str:
        text = f"{self.scheme}:"
        if self.user:
            text += f"{self.user}@"
        text += self.host
        if self.port:
            text += f":{self.port}"
        for key, value in self.uri_params.items():
            text += f";{key}={value}" if value else f";{key}"
        return text


@dataclass
class Header:
    """A single header line."""

    name: str
    value: str


@dataclass
class CSeq:
    """The value of a CSeq header."""

    seq_no: int
    method: str

    def __str__(self) -> str:
        return f"{self.seq_no} {self.method}"


@dataclass
class Message:
    """Headers and body shared by requests and responses."""

    headers: list[Header] = field(default_factory=list)
    body: bytes = b""

    def get_header(self, name: str) -> Header | None:
        """Return the first header with the given name, ignoring case."""
        return next(iter(self.get_headers(name)), None)

    def get_headers(self, name: str) -> list[Header]:
        """Return all headers with the given name, ignoring case, in order."""
        wanted = name.lower()
        return [h for h in self.headers if h.name.lower() == wanted]

    def append_header(self, header: Header) -> None:
        self.headers.append(header)

    def remove_header(self, name: str) -> None:
        """Remove every header with the given name."""
        wanted = name.lower()
        self.headers = [h for h in self.headers if h.name.lower() != wanted]

    def cseq(self) -> CSeq | None:
        """Parse the CSeq header, or return None when there is none."""
        header = self.get_header("CSeq")
        if header is None:
            return None
        parts = header.value.split()
        if len(parts) != 2 or not parts[0].isdigit():
            raise ValueError(f"malformed CSeq header: {header.value!r}")
        return CSeq(seq_no=int(parts[0]), method=parts[1])


@dataclass
class Request(Message):
    """A SIP request."""

    method: str = ""
    recipient: Uri = field(default_factory=Uri)
    sip_version: str = "SIP/2.0"
    transport: str = ""
    source: str = ""
    destination: str = ""

    def via_transport(self) -> str | None:
        """Return the lower-cased transport of the top Via header."""
        via = self.get_header("Via")
        if via is None:
            return None
        sent_protocol = via.value.strip().split(None, 1)[0] if via.value.strip() else ""
        parts = sent_protocol.split("/")
        if len(parts) < 3:
            return ""
        return parts[2].lower()


@dataclass
class Response(Message):
    """A SIP response."""

    status_code: int = 200
    reason: str = ""


def parse_address_params(value: str) -> dict[str, str]:
    """Return the header parameters that follow a name-addr or addr-spec."""
    end = value.rfind(">")
    rest = value[end + 1:] if end >= 0 else value.partition(";")[2]
    if end >= 0:
        rest = rest.lstrip().removeprefix(";")
    params: dict[str, str] = {}
    for item in rest.split(";"):
        item = item.strip()
        if not item:
            continue
        key, _, val = item.partition("=")
        params[key.strip()] = val.strip().strip('"')
    return params


def generate_branch() -> str:
    """Return a fresh Via branch value carrying the RFC 3261 magic cookie."""
    return f"{_BRANCH_MAGIC}.{secrets.token_hex(8)}"