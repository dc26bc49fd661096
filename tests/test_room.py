import pytest

from sipbridge.room import (
    ATTR_SIP_CALL_ID,
    ATTR_SIP_DISPATCH_RULE_ID,
    ATTR_SIP_PHONE_NUMBER,
    ATTR_SIP_TRUNK_ID,
    ATTR_SIP_TRUNK_NUMBER,
    TOKEN_ATTRIBUTES,
    ParticipantConfig,
    ParticipantInfo,
    RoomConfig,
    RoomStats,
    token_attributes,
)


def test_token_attributes_keeps_only_token_keys():
    attrs = {
        ATTR_SIP_CALL_ID: "call-a",
        ATTR_SIP_TRUNK_ID: "trunk-a",
        "custom.key": "other",
        "sip.h.x-foo": "bar",
    }
    result = token_attributes(attrs)
    assert result == {ATTR_SIP_CALL_ID: "call-a", ATTR_SIP_TRUNK_ID: "trunk-a"}


def test_token_attributes_all_keys():
    attrs = {key: f"v-{key}" for key in TOKEN_ATTRIBUTES}
    attrs["extra"] = "x"
    result = token_attributes(attrs)
    assert set(result) == set(TOKEN_ATTRIBUTES)
    assert all(result[k] == attrs[k] for k in TOKEN_ATTRIBUTES)


@pytest.mark.parametrize("attrs", [None, {}, {"unrelated": "1"}])
def test_token_attributes_empty(attrs):
    assert token_attributes(attrs) == {}


def test_token_attributes_returns_new_dict():
    attrs = {ATTR_SIP_PHONE_NUMBER: "caller"}
    result = token_attributes(attrs)
    result[ATTR_SIP_PHONE_NUMBER] = "changed"
    assert attrs[ATTR_SIP_PHONE_NUMBER] == "caller"


def test_token_attribute_names_use_sip_prefix():
    for key in (ATTR_SIP_CALL_ID, ATTR_SIP_TRUNK_ID, ATTR_SIP_DISPATCH_RULE_ID,
                ATTR_SIP_TRUNK_NUMBER, ATTR_SIP_PHONE_NUMBER):
        assert key.startswith("sip.")
    assert len(set(TOKEN_ATTRIBUTES)) == 5


def test_room_stats_defaults_are_zero_and_independent():
    first = RoomStats()
    second = RoomStats()
    assert first.input_packets == 0 and first.output_samples == 0
    first.mixer["frames"] = 3
    first.input_bytes += 10
    assert second.mixer == {}
    assert second.input_bytes == 0


def test_participant_config_attributes_independent():
    first = ParticipantConfig(identity="alice")
    second = ParticipantConfig()
    first.attributes["k"] = "v"
    assert second.attributes == {}
    assert first.identity == "alice"


def test_room_config_holds_participant():
    part = ParticipantConfig(identity="bob", name="Bob", attributes={ATTR_SIP_CALL_ID: "c1"})
    conf = RoomConfig(room_name="room", token="token", participant=part)
    assert conf.participant.identity == "bob"
    assert token_attributes(conf.participant.attributes) == {ATTR_SIP_CALL_ID: "c1"}
    assert conf.ws_url == ""
    assert conf.jitter_buf is False


def test_participant_info_equality():
    assert ParticipantInfo(id="p", room_name="r") == ParticipantInfo(id="p", room_name="r")
    assert ParticipantInfo().identity == ""