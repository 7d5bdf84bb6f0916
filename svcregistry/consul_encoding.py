"""Encoding of service details into compact tags.

Endpoints, metadata and versions are stored as tags of the form
``<kind>-<hex of zlib(json)>``. The older plain form ``<kind>=<json>``
is still understood when decoding.
"""

from __future__ import annotations

import binascii
import json
import struct
import zlib
from typing import Any, Iterable, Optional

from svcregistry.model import Endpoint

_ZLIB_HEADER = b"\x78\x9c"
_SYNC_MARKER = b"\x00\x00\xff\xff"


def _marshal(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _inflates_to(candidate: bytes, data: bytes) -> bool:
    inflater = zlib.decompressobj(-zlib.MAX_WBITS)
    try:
        out = inflater.decompress(candidate)
    except zlib.error:
        return False
    return inflater.eof and not inflater.unused_data and out == data


def _deflate(data: bytes) -> bytes:
    """Raw deflate ending with an empty final stored block.

    The data goes into non-final blocks, then the stream is closed by an
    empty stored block marked final, so equal input always gives equal
    tags across implementations that close streams this way.
    """
    compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -zlib.MAX_WBITS)
    raw = compressor.compress(data) + compressor.flush(zlib.Z_SYNC_FLUSH)
    if raw.endswith(_SYNC_MARKER):
        body_len = len(raw) - len(_SYNC_MARKER)
        # the closing block's final bit lies in the last one or two bytes before the marker
        for index in range(max(body_len - 2, 0), body_len):
            for bit in range(8):
                mask = 1 << bit
                if raw[index] & mask:
                    continue
                candidate = bytearray(raw)
                candidate[index] |= mask
                if _inflates_to(bytes(candidate), data):
                    return bytes(candidate)
    fallback = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -zlib.MAX_WBITS)
    return fallback.compress(data) + fallback.flush()


def encode(buf: bytes) -> str:
    """Compress bytes with zlib and return them as lower-case hex."""
    stream = _ZLIB_HEADER + _deflate(buf) + struct.pack(">I", zlib.adler32(buf) & 0xFFFFFFFF)
    return stream.hex()


def decode(d: str) -> bytes:
    """Reverse :func:`encode`; raise ValueError on malformed input."""
    try:
        compressed = binascii.unhexlify(d)
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"invalid hex data: {err}") from err
    try:
        return zlib.decompress(compressed)
    except zlib.error as err:
        raise ValueError(f"invalid zlib data: {err}") from err


def _tag_payload(tag: str) -> Optional[bytes]:
    """Return the JSON bytes a tag carries, or None if it cannot be read."""
    marker = tag[1]
    if marker == "=":
        return tag[2:].encode("utf-8")
    if marker == "-":
        try:
            return decode(tag[2:])
        except ValueError:
            return None
    return None


def _load_json(payload: Optional[bytes]) -> Any:
    if payload is None:
        return None
    try:
        return json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        return None


def encode_endpoints(endpoints: Iterable[Endpoint]) -> list[str]:
    """Encode each endpoint into one ``e-`` tag."""
    return ["e-" + encode(_marshal(e.to_dict())) for e in endpoints]


def decode_endpoints(tags: Iterable[str]) -> list[Endpoint]:
    """Decode endpoint tags, using only the first tag format found."""
    endpoints: list[Endpoint] = []
    version: Optional[str] = None
    for tag in tags:
        if len(tag) < 2 or tag[0] != "e":
            continue
        if version is not None and tag[1] != version:
            continue
        data = _load_json(_tag_payload(tag))
        if isinstance(data, dict):
            endpoints.append(Endpoint.from_dict(data))
        version = tag[1]
    return endpoints


def encode_metadata(md: dict[str, str]) -> list[str]:
    """Encode each metadata pair into its own ``t-`` tag."""
    return ["t-" + encode(_marshal({k: v})) for k, v in md.items()]


def decode_metadata(tags: Iterable[str]) -> dict[str, str]:
    """Decode metadata tags, using only the first tag format found."""
    md: dict[str, str] = {}
    version: Optional[str] = None
    for tag in tags:
        if len(tag) < 2 or tag[0] != "t":
            continue
        if version is not None and tag[1] != version:
            continue
        data = _load_json(_tag_payload(tag))
        if isinstance(data, dict) and all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            md.update(data)
        version = tag[1]
    return md


def encode_version(v: str) -> list[str]:
    """Encode a version string into a single ``v-`` tag."""
    return ["v-" + encode(v.encode("utf-8"))]


def decode_version(tags: Iterable[str]) -> Optional[str]:
    """Return the version held in the tags, or None if there is none.

    A version tag whose content cannot be decoded gives an empty string.
    """
    for tag in tags:
        if len(tag) < 2 or tag[0] != "v":
            continue
        if tag[1] == "=":
            return tag[2:]
        if tag[1] == "-":
            try:
                return decode(tag[2:]).decode("utf-8", errors="replace")
            except ValueError:
                return ""
    return None