# sipbridge

Building blocks for a service that bridges SIP calls into media rooms:
a small SIP message model, URI and transport helpers, REFER/NOTIFY
handling, call status mapping, call metrics and service bookkeeping.

## Modules

- `sipbridge.message`: `Uri`, `Header`, `CSeq`, `Message`, `Request` and
  `Response` dataclasses, with case-insensitive header lookup
  (`get_header`, `get_headers`), `append_header`, `remove_header` and
  `cseq()`. Also `parse_address_params` (the parameters after a name-addr,
  such as `tag`) and `generate_branch` (a fresh `z9hG4bK` Via branch).
- `sipbridge.types`: `Transport` (`udp`, `tcp`, `tls`), `SIPTransport`,
  `SIPHeaderOptions`, `SIPMediaEncryption`, `Encryption` and `SIPUri`.
  The frozen `URI` dataclass has `normalize()` (moves a `host:port` port into
  the port field) and defaults the port to 5060, or 5061 for TLS.
  `get_from_tag` and `get_to_tag` raise `ValueError` when the header or its
  tag is missing. `headers_to_attrs` and `attrs_to_headers` map SIP headers
  to participant attributes and back. `sdp_encryption` raises `ValueError`
  for an unknown encryption value.
- `sipbridge.participant`: `CallStatus` with `attribute()`,
  `disconnect_reason()` and `sip_status()` (486 "Rejected", or 488
  "MediaFailed"), `DisconnectReason`, and the attribute name constants.
- `sipbridge.protocol`: SIP status names (`sip_status`, `status_name`),
  `transport_from_request`, `get_contact_uri`, `new_refer_request`,
  `check_refer_response` (raises `SIPStatusError` unless the status is 200 or
  202), `parse_notify_body` and `handle_notify` (raise `RPCError`), and
  mapping of `ErrorCode` values to SIP status codes
  (`sip_status_for_error_code`, `sip_code_and_message_from_error`).
- `sipbridge.monitor`: in-process `Counter`, `Gauge` and `Histogram`
  metrics with label sets; `Monitor` registers the call metrics on `start()`
  and reports `health()` from CPU idle time (via `psutil` by default, or a
  function you pass in); `CallMonitor` records per-call events, durations and
  SDP sizes.
- `sipbridge.service`: `ServiceConfig`, `ActiveCalls`, `sample_map`,
  `expand_hostname` (replaces `${IP}` with a DNS-safe form of the IP),
  `validate_hostname`, `normalize_ringing_interval`, the auth and dispatch
  types (`AuthResult`, `AuthInfo`, `DispatchResult`, `CallInfo`,
  `CallDispatch`), the abstract `Handler`, and `TransferRegistry`, which runs
  a transfer in a background thread and lets repeated requests for the same
  call and target wait on the one already running.
- `sipbridge.room`: `RoomStats`, `ParticipantInfo`, `ParticipantConfig`,
  `RoomConfig` and `token_attributes`.
- `sipbridge.version`: `version_string()`.

## Installation

```
pip install sipbridge
```

## Examples

Reading the status from a REFER NOTIFY:

```python
from sipbridge.message import Header, Request, Uri
from sipbridge.protocol import handle_notify

req = Request(method="NOTIFY", recipient=Uri(host="example.com"))
req.append_header(Header("Event", "refer;id=1234"))
req.body = b"SIP/2.0 200"

method, cseq, status = handle_notify(req)
# ("REFER", 1234, 200)
```

Working with URIs:

```python
from sipbridge.types import Transport, create_uri_from_user_and_address

uri = create_uri_from_user_and_address("alice", "sip.example.com:5080", Transport.TCP)
uri.get_host_port()   # "sip.example.com:5080"
```

Recording call metrics:

```python
from sipbridge.monitor import CallDir, Monitor

mon = Monitor(node_id="node-1", max_utilization=0.9)
mon.start()
call = mon.new_call(CallDir.INBOUND, "from.example.com", "to.example.com")
call.invite_req()
call.call_start()
call.call_end()

mon.metrics["livekit_sip_invite_requests"].value({"dir": "in"})   # 1.0
```

## What this package does not do

It does not open SIP listeners, send or receive SIP transactions, carry RTP
media, or connect calls to rooms. It has no command-line program. It provides
the message model, mapping rules, metrics and bookkeeping that such a service
is built from.

## Running the tests

```
pip install "sipbridge[test]"
pytest
```