"""
Heartbeat codec.

A heartbeat is a small JSON document announcing a node to the cluster:

    {"id": "<identity token>", "secret": "<cluster secret>", "http_port": 8080}

``http_port`` is optional on decode. Payloads are bounded so a heartbeat
always fits a single discovery datagram.
"""

import json
import uuid
from dataclasses import dataclass
from typing import Optional

MAX_HEARTBEAT_SIZE = 256


class HeartbeatDecodeError(ValueError):
    """Raised when a datagram is not a valid heartbeat"""


@dataclass(frozen=True)
class NodeIdentity:
    """Identity of this process; fixed for the process lifetime"""
    id: str
    secret: str
    http_port: Optional[int] = None

    @classmethod
    def generate(cls, secret: str, http_port: Optional[int] = None) -> "NodeIdentity":
        return cls(id=str(uuid.uuid4()), secret=secret, http_port=http_port)


@dataclass(frozen=True)
class Heartbeat:
    id: str
    secret: str
    http_port: Optional[int] = None


def encode(identity: NodeIdentity) -> bytes:
    """Serialize the identity as a heartbeat payload."""
    message = {"id": identity.id, "secret": identity.secret}
    if identity.http_port is not None:
        message["http_port"] = identity.http_port
    data = json.dumps(message, separators=(",", ":")).encode("utf-8")
    if len(data) > MAX_HEARTBEAT_SIZE:
        raise ValueError(f"Heartbeat payload is {len(data)} bytes, limit is {MAX_HEARTBEAT_SIZE}")
    return data


def decode(data: bytes) -> Heartbeat:
    """Parse a heartbeat payload, raising HeartbeatDecodeError on any malformed input."""
    if len(data) > MAX_HEARTBEAT_SIZE:
        raise HeartbeatDecodeError(f"payload too large ({len(data)} bytes)")
    try:
        message = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise HeartbeatDecodeError(f"not a JSON document: {e}") from e

    if not isinstance(message, dict):
        raise HeartbeatDecodeError("heartbeat must be a JSON object")

    node_id = message.get("id")
    secret = message.get("secret")
    if not isinstance(node_id, str) or not node_id:
        raise HeartbeatDecodeError("missing or invalid 'id'")
    if not isinstance(secret, str):
        raise HeartbeatDecodeError("missing or invalid 'secret'")

    http_port = message.get("http_port")
    if http_port is not None:
        # bool is an int subclass
        if isinstance(http_port, bool) or not isinstance(http_port, int) or not 0 < http_port < 65536:
            raise HeartbeatDecodeError(f"invalid 'http_port': {http_port!r}")

    return Heartbeat(id=node_id, secret=secret, http_port=http_port)
