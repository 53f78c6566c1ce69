"""
SignalR JSON-protocol frame codec.

Upstream messages carry one or more JSON records, each terminated by the
ASCII record separator (0x1E). Invocation records (type 1) carry a
base64-encoded, gzip-compressed JSON payload in arguments[0]; ping records
(type 6) are keep-alives.

Decoding is isolated per record: a malformed record is logged and counted,
and never stops its siblings from being decoded.
"""

import base64
import binascii
import gzip
import json
import logging
import zlib
from typing import Any, Dict, List, NamedTuple, Union

from .base import FrameDecodeError


logger = logging.getLogger(__name__)

RECORD_SEPARATOR = "\x1e"

MESSAGE_TYPE_INVOCATION = 1
MESSAGE_TYPE_PING = 6


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def parse_json(text: str) -> Any:
    """Strict json.loads: NaN, Infinity and -Infinity are rejected."""
    return json.loads(text, parse_constant=_reject_constant)


class DecodedFrame(NamedTuple):
    """One decoded data record."""
    topic: str
    payload: Any


def encode_frame(record: Dict[str, Any]) -> str:
    """Serialize a record compactly and append the record separator."""
    return json.dumps(record, separators=(",", ":")) + RECORD_SEPARATOR


def handshake_frame() -> str:
    return encode_frame({"protocol": "json", "version": 1})


def subscribe_frame(channel: str) -> str:
    return encode_frame({
        "arguments": [channel],
        "invocationId": "0",
        "target": "client",
        "type": MESSAGE_TYPE_INVOCATION,
    })


def ping_frame() -> str:
    return encode_frame({"type": MESSAGE_TYPE_PING})


def split_records(message: Union[str, bytes]) -> List[str]:
    """Split a raw upstream message into its non-empty records."""
    if isinstance(message, (bytes, bytearray)):
        message = message.decode("utf-8", errors="replace")
    return [record for record in message.split(RECORD_SEPARATOR) if record]


def decode_payload(encoded: Any, topic: str = None) -> Any:
    """
    Decode a base64 + gzip + JSON payload.

    Args:
        encoded: arguments[0] of an invocation record
        topic: Topic name, used for error reporting only

    Returns:
        The parsed JSON value

    Raises:
        FrameDecodeError: If any of the three stages fails
    """
    if not isinstance(encoded, str):
        raise FrameDecodeError("payload", f"payload is {type(encoded).__name__}, expected str", topic)

    try:
        compressed = base64.b64decode(encoded)
        text = gzip.decompress(compressed).decode("utf-8")
        return parse_json(text)
    except (binascii.Error, OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as e:
        raise FrameDecodeError("payload", f"{type(e).__name__}: {e}", topic) from e


class FrameCodec:
    """
    Decodes raw upstream messages into (topic, payload) pairs.

    Keeps running counters of what it has seen so decode failures are
    observable without affecting the decode path.
    """

    def __init__(self):
        self.stats: Dict[str, int] = {
            "messages": 0,
            "records": 0,
            "keepalives": 0,
            "decoded": 0,
            "ignored": 0,
            "envelope_errors": 0,
            "payload_errors": 0,
        }

    def decode(self, message: Union[str, bytes]) -> List[DecodedFrame]:
        """
        Decode every record in a raw upstream message.

        Args:
            message: Raw text (or bytes) received on the upstream connection

        Returns:
            One DecodedFrame per well-formed data record, in record order
        """
        self.stats["messages"] += 1
        frames = []

        for record in split_records(message):
            self.stats["records"] += 1
            try:
                frame = self._decode_record(record)
            except FrameDecodeError as e:
                if e.stage == "envelope":
                    self.stats["envelope_errors"] += 1
                    logger.warning(f"Error parsing frame from source: {e}")
                else:
                    self.stats["payload_errors"] += 1
                    logger.debug(f"Error processing {e.topic}: {e}")
                continue

            if frame is not None:
                self.stats["decoded"] += 1
                frames.append(frame)

        return frames

    def _decode_record(self, record: str):
        try:
            envelope = parse_json(record)
        except ValueError as e:
            raise FrameDecodeError("envelope", f"invalid JSON: {e}") from e

        if not isinstance(envelope, dict):
            raise FrameDecodeError("envelope", f"record is {type(envelope).__name__}, expected object")

        message_type = envelope.get("type")
        if isinstance(message_type, bool):
            message_type = None

        if message_type == MESSAGE_TYPE_PING:
            self.stats["keepalives"] += 1
            return None

        if message_type != MESSAGE_TYPE_INVOCATION:
            self.stats["ignored"] += 1
            logger.debug(f"Ignoring record of type {message_type!r}")
            return None

        target = envelope.get("target")
        arguments = envelope.get("arguments")
        if not isinstance(target, str) or not isinstance(arguments, list) or not arguments:
            self.stats["ignored"] += 1
            return None

        return DecodedFrame(target, decode_payload(arguments[0], target))

    def get_stats(self) -> Dict[str, int]:
        return dict(self.stats)
