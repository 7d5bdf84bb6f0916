"""TXT record payload carried by multicast DNS service announcements."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable

from svcregistry import consul_encoding
from svcregistry.model import Endpoint

# services are announced under .volts rather than .local
MDNS_DOMAIN = "volts"

TXT_LIMIT = 255


@dataclass
class MdnsTxt:
    """Service details published in a node's TXT record."""

    service: str = ""
    version: str = ""
    endpoints: list[Endpoint] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


def _to_dict(txt: MdnsTxt) -> dict[str, Any]:
    return {
        "Service": txt.service,
        "Version": txt.version,
        "Endpoints": [e.to_dict() for e in txt.endpoints],
        "Metadata": dict(txt.metadata),
    }


def _from_dict(data: dict[str, Any]) -> MdnsTxt:
    endpoints = data.get("Endpoints") or []
    metadata = data.get("Metadata") or {}
    if not isinstance(endpoints, list) or not isinstance(metadata, dict):
        raise ValueError("malformed TXT record")
    return MdnsTxt(
        service=data.get("Service") or "",
        version=data.get("Version") or "",
        endpoints=[Endpoint.from_dict(e) for e in endpoints if isinstance(e, dict)],
        metadata={str(k): str(v) for k, v in metadata.items()},
    )


def encode(txt: MdnsTxt) -> list[str]:
    """Encode a TXT payload into strings of at most 255 characters each."""
    payload = json.dumps(_to_dict(txt), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    encoded = consul_encoding.encode(payload)
    return [encoded[i : i + TXT_LIMIT] for i in range(0, len(encoded), TXT_LIMIT)] or [""]


def decode(record: Iterable[str]) -> MdnsTxt:
    """Reassemble and decode a TXT payload; raise ValueError if malformed."""
    raw = consul_encoding.decode("".join(record))
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as err:
        raise ValueError(f"invalid TXT record JSON: {err}") from err
    if not isinstance(data, dict):
        raise ValueError("TXT record JSON is not an object")
    return _from_dict(data)