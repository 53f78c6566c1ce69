"""
Tests for the upstream frame codec
"""

import base64
import gzip
import json

import pytest

from api.base import FrameDecodeError
from api.codec import (
    FrameCodec,
    decode_payload,
    handshake_frame,
    ping_frame,
    split_records,
    subscribe_frame,
)
from tests.helpers import RS, compress_payload, invocation, ping


def test_outbound_frames_are_compact_and_terminated():
    assert handshake_frame() == '{"protocol":"json","version":1}' + RS
    assert subscribe_frame("radhika") == (
        '{"arguments":["radhika"],"invocationId":"0","target":"client","type":1}' + RS
    )
    assert ping_frame() == '{"type":6}' + RS


def test_split_records_drops_empty_records():
    assert split_records('{"a":1}' + RS + '{"b":2}' + RS + RS) == ['{"a":1}', '{"b":2}']
    assert split_records("") == []
    assert split_records(b'{"type":6}' + RS.encode()) == ['{"type":6}']


def test_keepalive_produces_nothing():
    codec = FrameCodec()
    assert codec.decode(ping()) == []
    assert codec.stats["keepalives"] == 1
    assert codec.stats["decoded"] == 0


def test_one_result_per_data_record_in_order():
    codec = FrameCodec()
    message = ping() + invocation("workerPublish", {"gold": 1}) + ping() + invocation("contactDetails", {"phone": "x"})

    frames = codec.decode(message)

    assert [(f.topic, f.payload) for f in frames] == [
        ("workerPublish", {"gold": 1}),
        ("contactDetails", {"phone": "x"}),
    ]
    assert codec.stats["records"] == 4
    assert codec.stats["keepalives"] == 2


@pytest.mark.parametrize("bad_argument", [
    "!!!not-base64!!!",
    base64.b64encode(b"not gzip at all").decode(),
    base64.b64encode(gzip.compress(b"{not json")).decode(),
    base64.b64encode(gzip.compress(b"{\"a\": 1}")[:-6]).decode(),
    base64.b64encode(gzip.compress(b"{\"BTC\": NaN}")).decode(),
    base64.b64encode(gzip.compress(b"{\"BTC\": Infinity}")).decode(),
    base64.b64encode(gzip.compress(b"[-Infinity]")).decode(),
])
def test_bad_payload_does_not_affect_siblings(bad_argument):
    codec = FrameCodec()
    bad = json.dumps({"type": 1, "target": "workerPublishCoin", "arguments": [bad_argument]}) + RS
    message = invocation("workerPublish", {"a": 1}) + bad + invocation("workerPublishCoin", {"BTC": 50000})

    frames = codec.decode(message)

    assert [f.topic for f in frames] == ["workerPublish", "workerPublishCoin"]
    assert frames[1].payload == {"BTC": 50000}
    assert codec.stats["payload_errors"] == 1


def test_bad_envelope_does_not_affect_siblings():
    codec = FrameCodec()
    message = "{broken" + RS + "[1, 2]" + RS + invocation("workerPublishCoin", {"BTC": 1})

    frames = codec.decode(message)

    assert len(frames) == 1
    assert codec.stats["envelope_errors"] == 2


def test_records_without_arguments_or_other_types_are_ignored():
    codec = FrameCodec()
    message = (
        json.dumps({"type": 1, "target": "workerPublish", "arguments": []}) + RS
        + json.dumps({"type": 1, "target": "workerPublish"}) + RS
        + json.dumps({"type": 3, "invocationId": "0"}) + RS
        + json.dumps({"type": 7}) + RS
    )

    assert codec.decode(message) == []
    assert codec.stats["ignored"] == 4
    assert codec.stats["envelope_errors"] == 0
    assert codec.stats["payload_errors"] == 0


def test_decode_payload_raises_with_topic():
    assert decode_payload(compress_payload([1, 2, 3])) == [1, 2, 3]

    with pytest.raises(FrameDecodeError) as excinfo:
        decode_payload(42, topic="workerPublish")
    assert excinfo.value.stage == "payload"
    assert excinfo.value.topic == "workerPublish"


def test_get_stats_returns_copy():
    codec = FrameCodec()
    stats = codec.get_stats()
    stats["messages"] = 99
    assert codec.get_stats()["messages"] == 0


def test_boolean_type_is_not_an_invocation():
    codec = FrameCodec()
    message = (
        json.dumps({"type": True, "target": "workerPublishCoin", "arguments": [compress_payload({"BTC": 1})]}) + RS
        + json.dumps({"type": False}) + RS
        + invocation("workerPublishCoin", {"BTC": 2})
    )

    frames = codec.decode(message)

    assert [f.payload for f in frames] == [{"BTC": 2}]
    assert codec.stats["ignored"] == 2
    assert codec.stats["keepalives"] == 0


def test_non_standard_constants_are_rejected():
    with pytest.raises(FrameDecodeError) as excinfo:
        decode_payload(compress_payload_text('{"BTC": NaN}'), topic="workerPublishCoin")
    assert excinfo.value.stage == "payload"

    codec = FrameCodec()
    assert codec.decode('{"type": NaN}' + RS) == []
    assert codec.stats["envelope_errors"] == 1


def compress_payload_text(text):
    return base64.b64encode(gzip.compress(text.encode("utf-8"))).decode("ascii")
