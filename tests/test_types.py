import ipaddress
from unittest import mock

import pytest

from sipbridge.message import Header, Request, Response
from sipbridge.participant import (
    ATTR_SIP_CALL_ID_FULL,
    ATTR_SIP_CALL_TAG,
    ATTR_SIP_HEADER_PREFIX,
    HEADER_TO_ATTR,
)
from sipbridge.types import (
    URI,
    Encryption,
    Headers,
    SIPHeaderOptions,
    SIPMediaEncryption,
    SIPTransport,
    Transport,
    attrs_to_headers,
    create_uri_from_user_and_address,
    get_from_tag,
    get_to_tag,
    headers_to_attrs,
    sdp_encryption,
    select_value,
    select_value_bool,
    sip_transport_from,
    transport_from,
)


class FakeSignaling:
    def __init__(self, headers, tag="", call_id=""):
        self._headers = headers
        self._tag = tag
        self._call_id = call_id

    def remote_headers(self):
        return self._headers

    def tag(self):
        return self._tag

    def call_id(self):
        return self._call_id


def test_transport_round_trip():
    for t in Transport:
        assert transport_from(sip_transport_from(t)) is t
    assert transport_from(SIPTransport.AUTO) is None
    assert sip_transport_from(None) is SIPTransport.AUTO
    assert sip_transport_from("ws") is SIPTransport.AUTO


def test_normalize_splits_port():
    uri = create_uri_from_user_and_address("bob", "example.com:5080", Transport.UDP)
    assert uri.host == "example.com"
    assert uri.port == 5080
    assert uri.user == "bob"


def test_normalize_ipv6_and_no_port():
    uri = URI(host="[::1]:5070").normalize()
    assert (uri.host, uri.port) == ("::1", 5070)
    plain = URI(host="example.com")
    assert plain.normalize() == plain
    bad = URI(host="example.com:abc")
    assert bad.normalize() == bad


def test_default_ports():
    assert URI(host="example.com").get_port() == 5060
    assert URI(host="example.com", transport=Transport.TLS).get_port() == 5061
    assert URI(host="example.com").get_port_or_none() == 0
    assert URI(host="example.com", port=5080).get_port_or_none() == 5080


def test_host_port_and_dest():
    uri = URI(host="example.com", ip=ipaddress.ip_address("10.0.0.1"), port=5080)
    assert uri.get_host() == "example.com"
    assert uri.get_host_port() == "example.com:5080"
    assert uri.get_dest() == "10.0.0.1:5080"
    assert URI(ip=ipaddress.ip_address("10.0.0.1")).get_host() == "10.0.0.1"


def test_get_uri_and_contact_uri():
    ip = ipaddress.ip_address("10.0.0.1")
    tls = URI(user="bob", host="example.com", ip=ip, port=5061, transport=Transport.TLS)
    su = tls.get_uri()
    assert (su.user, su.host, su.port) == ("bob", "example.com", 5061)
    assert su.uri_params == {"transport": "tls"}
    assert tls.get_contact_uri().host == "example.com"
    udp = URI(user="bob", host="example.com", ip=ip, transport=Transport.UDP)
    assert udp.get_contact_uri().host == "10.0.0.1"
    assert udp.get_uri().port == 0


def test_to_sip_uri():
    uri = URI(user="bob", host="example.com", ip=ipaddress.ip_address("10.0.0.1"), transport=Transport.TCP)
    out = uri.to_sip_uri()
    assert out.user == "bob"
    assert out.host == "example.com"
    assert out.ip == "10.0.0.1"
    assert out.port == 5060
    assert out.transport is SIPTransport.TCP
    assert URI(host="example.com").to_sip_uri().ip == ""


def test_headers_get_header_ignores_case():
    hs = Headers([Header("X-Foo", "1"), Header("x-foo", "2")])
    assert hs.get_header("X-FOO").value == "1"
    assert hs.get_header("X-Bar") is None


def test_from_and_to_tags():
    req = Request(method="INVITE")
    req.append_header(Header("From", "<sip:alice@example.com>;tag=abc"))
    assert get_from_tag(req) == "abc"
    resp = Response()
    resp.append_header(Header("To", "<sip:bob@example.com>;tag=def"))
    assert get_to_tag(resp) == "def"


def test_tags_missing():
    with pytest.raises(ValueError, match="no From on Request"):
        get_from_tag(Request())
    req = Request()
    req.append_header(Header("From", "<sip:alice@example.com>"))
    with pytest.raises(ValueError, match="no tag in From on Request"):
        get_from_tag(req)
    with pytest.raises(ValueError, match="no To on Response"):
        get_to_tag(Response())


def test_headers_to_attrs_x_headers_with_signaling():
    headers = [Header("X-Custom", "v1"), Header("Via", "SIP/2.0/UDP x"), Header("X-Twilio-CallSid", "sid")]
    sig = FakeSignaling(headers, tag="tag1", call_id="call1")
    attrs = headers_to_attrs(None, {"X-Custom": "custom"}, SIPHeaderOptions.X_HEADERS, sig, None)
    assert attrs[ATTR_SIP_HEADER_PREFIX + "x-custom"] == "v1"
    assert ATTR_SIP_HEADER_PREFIX + "via" not in attrs
    assert attrs[HEADER_TO_ATTR["X-Twilio-CallSid"]] == "sid"
    assert attrs["custom"] == "v1"
    assert attrs[ATTR_SIP_CALL_TAG] == "tag1"
    assert attrs[ATTR_SIP_CALL_ID_FULL] == "call1"


def test_headers_to_attrs_all_and_none():
    headers = [Header("Via", "SIP/2.0/UDP x"), Header("X-Lk-Test-Id", "t1")]
    all_attrs = headers_to_attrs({}, None, SIPHeaderOptions.ALL_HEADERS, None, headers)
    assert all_attrs[ATTR_SIP_HEADER_PREFIX + "via"] == "SIP/2.0/UDP x"
    none_attrs = headers_to_attrs({"keep": "1"}, None, SIPHeaderOptions.NO_HEADERS, None, headers)
    assert none_attrs == {"keep": "1", HEADER_TO_ATTR["X-Lk-Test-Id"]: "t1"}


def test_attrs_to_headers():
    existing = {"A": "1"}
    assert attrs_to_headers({"x": "y"}, {}, existing) is existing
    assert attrs_to_headers({"x": "y"}, None, None) is None
    out = attrs_to_headers({"x": "y"}, {"x": "X-Header", "missing": "X-Other"}, None)
    assert out == {"X-Header": "y"}


def test_sdp_encryption():
    assert sdp_encryption(SIPMediaEncryption.DISABLE) is Encryption.NONE
    assert sdp_encryption(SIPMediaEncryption.ALLOW) is Encryption.ALLOW
    assert sdp_encryption(SIPMediaEncryption.REQUIRE) is Encryption.REQUIRE
    with pytest.raises(ValueError, match="invalid SIP media encryption type"):
        sdp_encryption(42)


def test_select_value():
    assert select_value("a", "b", 0) == "a"
    assert select_value("a", "b", 1.0) == "a"
    with mock.patch("random.random", return_value=0.9):
        assert select_value("a", "b", 0.5) == "b"
        assert select_value_bool(True, 0.5) is False
    with mock.patch("random.random", return_value=0.1):
        assert select_value_bool(True, 0.5) is True