"""SIP protocol helpers: status names, REFER/NOTIFY handling and error mapping."""

from __future__ import annotations

import ipaddress
import re
from datetime import timedelta
from enum import Enum
from typing import Mapping

from .message import CSeq, Header, Request, Response, Uri, generate_branch, parse_address_params
from .types import URI, IPAddress, SIPUri, Transport, sip_transport_from

NOTIFY_ACK_TIMEOUT = timedelta(seconds=5)
REFER_BYE_TIMEOUT = timedelta(seconds=1)

_REFER_EVENT_RE = re.compile(r"refer(;id=([0-9]+))?")
_INT_RE = re.compile(r"[+-]?[0-9]+")
_MAX_UINT32 = 0xFFFFFFFF

STATUS_OK = 200
STATUS_ACCEPTED = 202

ALLOW_METHODS = "INVITE, ACK, CANCEL, BYE, NOTIFY, REFER, MESSAGE, OPTIONS, INFO, SUBSCRIBE"

STATUS_NAMES: dict[int, str] = {
    100: "Trying",
    180: "Ringing",
    181: "CallIsForwarded",
    182: "Queued",
    183: "SessionInProgress",
    200: "OK",
    202: "Accepted",
    301: "MovedPermanently",
    302: "MovedTemporarily",
    305: "UseProxy",
    400: "BadRequest",
    401: "Unauthorized",
    402: "PaymentRequired",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    406: "NotAcceptable",
    407: "ProxyAuthRequired",
    408: "RequestTimeout",
    409: "Conflict",
    410: "Gone",
    413: "RequestEntityTooLarge",
    414: "RequestURITooLong",
    415: "UnsupportedMediaType",
    416: "RequestedRangeNotSatisfiable",
    420: "BadExtension",
    421: "ExtensionRequired",
    423: "IntervalToBrief",
    480: "TemporarilyUnavailable",
    481: "CallTransactionDoesNotExists",
    482: "LoopDetected",
    483: "TooManyHops",
    484: "AddressIncomplete",
    485: "Ambiguous",
    486: "BusyHere",
    487: "RequestTerminated",
    488: "NotAcceptableHere",
    500: "InternalServerError",
    501: "NotImplemented",
    502: "BadGateway",
    503: "ServiceUnavailable",
    504: "GatewayTimeout",
    505: "VersionNotSupported",
    513: "MessageTooLarge",
    600: "GlobalBusyEverywhere",
    603: "GlobalDecline",
    604: "GlobalDoesNotExistAnywhere",
    606: "GlobalNotAcceptable",
}


class ErrorCode(str, Enum):
    """Error categories of the RPC layer."""

    OK = "ok"
    CANCELED = "canceled"
    UNKNOWN = "unknown"
    INVALID_ARGUMENT = "invalid_argument"
    MALFORMED_REQUEST = "malformed_request"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    NOT_FOUND = "not_found"
    NOT_ACCEPTABLE = "not_acceptable"
    ALREADY_EXISTS = "already_exists"
    PERMISSION_DENIED = "permission_denied"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    FAILED_PRECONDITION = "failed_precondition"
    ABORTED = "aborted"
    OUT_OF_RANGE = "out_of_range"
    UNIMPLEMENTED = "unimplemented"
    INTERNAL = "internal"
    UNAVAILABLE = "unavailable"
    DATA_LOSS = "data_loss"
    UNAUTHENTICATED = "unauthenticated"
    MALFORMED_RESPONSE = "malformed_response"


class RPCError(Exception):
    """An error that carries an RPC error code."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message


class SIPStatusError(Exception):
    """A SIP transaction finished with an unexpected status code."""

    def __init__(self, code: int, response: Response | None = None) -> None:
        super().__init__(code)
        self.code = code
        self.response = response

    def __str__(self) -> str:
        return f"sip status: {self.code} ({sip_status(self.code)})"


def sip_status(code: int) -> str:
    """Return the name of a SIP status code, e.g. ``BusyHere``."""
    return STATUS_NAMES.get(code) or f"Status{code}"


def status_name(status: int) -> str:
    """Return a label such as ``486-BusyHere`` for a status code."""
    name = STATUS_NAMES.get(status)
    if name:
        return f"{status}-{name}"
    return f"status-{status}"


def _as_transport(value: str) -> Transport | str:
    try:
        return Transport(value)
    except ValueError:
        return value


def transport_from_request(request: Request) -> Transport | str | None:
    """Return the transport named by the To header, falling back to the Via header."""
    to = request.get_header("To")
    if to is not None:
        tr = parse_address_params(to.value).get("transport", "")
        if tr:
            return _as_transport(tr.lower())
    via = request.via_transport()
    if via is None:
        return None
    return _as_transport(via.lower())


def transport_port(sip_port: int, tls_port: int | None, transport: Transport | str | None) -> int:
    """Return the announced port for a transport."""
    if transport == Transport.TLS and tls_port is not None:
        return tls_port
    return sip_port


def get_contact_uri(
    sip_port: int,
    tls_port: int | None,
    hostname: str,
    ip: IPAddress | str,
    transport: Transport | None,
) -> URI:
    """Build the Contact URI; the hostname is used for TLS only, otherwise the IP."""
    if isinstance(ip, str):
        ip = ipaddress.ip_address(ip)
    host = hostname if transport == Transport.TLS else ""
    return URI(
        host=host,
        ip=ip,
        port=transport_port(sip_port, tls_port, transport),
        transport=transport,
    )


def _set_param(value: str, key: str, new: str) -> str:
    parts = value.split(";")
    head, params = parts[0], parts[1:]
    out = []
    replaced = False
    for param in params:
        name = param.partition("=")[0].strip()
        if name.lower() == key.lower():
            out.append(f"{key}={new}")
            replaced = True
        else:
            out.append(param)
    if not replaced:
        out.append(f"{key}={new}")
    return ";".join([head, *out])


def _copy_headers(name: str, src: Request | Response, dst: Request) -> None:
    for header in src.get_headers(name):
        dst.append_header(Header(header.name, header.value))


def new_refer_request(
    invite_request: Request,
    invite_response: Response,
    contact: Header,
    refer_to_url: str,
    headers: Mapping[str, str] | None,
) -> Request:
    """Build a REFER request within the dialog established by an INVITE."""
    recipient = Uri(
        user=invite_request.recipient.user,
        host=invite_request.recipient.host,
        port=invite_request.recipient.port,
        uri_params=dict(invite_request.recipient.uri_params),
        scheme=invite_request.recipient.scheme,
    )
    req = Request(method="REFER", recipient=recipient, sip_version=invite_request.sip_version)

    _copy_headers("Via", invite_request, req)
    via = req.get_header("Via")
    if via is not None:
        via.value = _set_param(via.value, "branch", generate_branch())

    if invite_request.get_headers("Route"):
        _copy_headers("Route", invite_request, req)
    else:
        for rr in reversed(invite_response.get_headers("Record-Route")):
            req.append_header(Header(rr.name, rr.value))

    req.append_header(Header("Max-Forwards", "70"))
    _copy_headers("From", invite_request, req)
    _copy_headers("To", invite_response, req)
    _copy_headers("Call-ID", invite_request, req)
    _copy_headers("CSeq", invite_request, req)
    req.append_header(contact)

    cseq_header = req.get_header("CSeq")
    if cseq_header is None:
        raise ValueError("no CSeq on INVITE request")
    cseq = req.cseq()
    assert cseq is not None
    cseq_header.value = str(CSeq(seq_no=cseq.seq_no + 1, method="REFER"))

    req.append_header(Header("Refer-To", refer_to_url))
    req.append_header(Header("Allow", ALLOW_METHODS))

    req.transport = invite_request.transport
    req.source = invite_request.source
    req.destination = invite_request.destination

    for key, value in (headers or {}).items():
        req.append_header(Header(key, value))

    req.body = b""
    return req


def check_refer_response(response: Response) -> Response:
    """Return a REFER response if it was accepted, otherwise raise SIPStatusError."""
    if response.status_code in (STATUS_OK, STATUS_ACCEPTED):
        return response
    raise SIPStatusError(response.status_code, response)


def parse_notify_body(body: str | bytes) -> int:
    """Return the status code carried by a ``message/sipfrag`` NOTIFY body."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    tokens = body.split(" ")
    if len(tokens) < 2:
        raise RPCError(ErrorCode.INVALID_ARGUMENT, "invalid notify body: not enough tokens")
    if tokens[0].upper() != "SIP/2.0":
        raise RPCError(ErrorCode.INVALID_ARGUMENT, "invalid notify body: wrong prefix or SIP version")
    if not _INT_RE.fullmatch(tokens[1]):
        raise RPCError(ErrorCode.INVALID_ARGUMENT, f"invalid status code: {tokens[1]!r}")
    return int(tokens[1])


def handle_notify(request: Request) -> tuple[str, int, int]:
    """Return the method, CSeq and status reported by a NOTIFY request."""
    event = request.get_header("Event") or request.get_header("o")
    if event is None:
        raise RPCError(ErrorCode.MALFORMED_REQUEST, "no event in NOTIFY request")
    match = _REFER_EVENT_RE.fullmatch(event.value.strip().lower())
    if match is None:
        raise RPCError(ErrorCode.UNIMPLEMENTED, "unknown event")
    cseq = min(int(match.group(2)), _MAX_UINT32) if match.group(2) else 0
    status = parse_notify_body(request.body)
    return "REFER", cseq, status


_ERROR_CODE_STATUS = {
    ErrorCode.OK: 200,
    ErrorCode.CANCELED: 408,
    ErrorCode.DEADLINE_EXCEEDED: 408,
    ErrorCode.UNKNOWN: 500,
    ErrorCode.MALFORMED_RESPONSE: 500,
    ErrorCode.INTERNAL: 500,
    ErrorCode.DATA_LOSS: 500,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.MALFORMED_REQUEST: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.NOT_ACCEPTABLE: 406,
    ErrorCode.ALREADY_EXISTS: 409,
    ErrorCode.ABORTED: 409,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.RESOURCE_EXHAUSTED: 480,
    ErrorCode.FAILED_PRECONDITION: 481,
    ErrorCode.OUT_OF_RANGE: 416,
    ErrorCode.UNIMPLEMENTED: 501,
    ErrorCode.UNAVAILABLE: 503,
    ErrorCode.UNAUTHENTICATED: 401,
}


def sip_status_for_error_code(code: ErrorCode) -> int:
    """Map an RPC error code to a SIP status code."""
    return _ERROR_CODE_STATUS.get(code, 500)


def _find_rpc_error(err: BaseException) -> RPCError | None:
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        if isinstance(current, RPCError):
            return current
        seen.add(id(current))
        current = current.__cause__
    return None


def sip_code_and_message_from_error(err: BaseException | None) -> tuple[int, str]:
    """Return the SIP status code and message describing an error, or success."""
    if err is None:
        return 200, "success"
    rpc_err = _find_rpc_error(err)
    code = sip_status_for_error_code(rpc_err.code) if rpc_err is not None else 500
    return code, str(err)


def set_cseq(request: Request, cseq: int) -> None:
    """Replace the CSeq header of a request, keeping its method."""
    request.remove_header("CSeq")
    request.append_header(Header("CSeq", str(CSeq(seq_no=cseq, method=request.method))))


def to_sip_uri(ip: str, uri: Uri) -> SIPUri:
    """Describe a SIP URI and the IP it was reached on."""
    return SIPUri(
        user=uri.user,
        host=uri.host,
        ip=ip,
        port=uri.port,
        transport=sip_transport_from(uri.uri_params.get("transport", "")),
    )