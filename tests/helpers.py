"""Shared builders for relay tests."""

import base64
import gzip
import json

RS = "\x1e"


def compress_payload(data) -> str:
    """base64(gzip(json)) as the upstream encodes arguments[0]."""
    return base64.b64encode(gzip.compress(json.dumps(data).encode("utf-8"))).decode("ascii")


def invocation(target: str, data) -> str:
    return json.dumps({"type": 1, "target": target, "arguments": [compress_payload(data)]}) + RS


def ping() -> str:
    return json.dumps({"type": 6}) + RS
