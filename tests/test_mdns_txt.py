import hashlib

import pytest

from svcregistry.mdns_txt import MdnsTxt, decode, encode
from svcregistry.model import Endpoint, Value


def _sample() -> MdnsTxt:
    return MdnsTxt(
        version="1.0.0",
        metadata={"foo": "bar"},
        endpoints=[
            Endpoint(
                name="endpoint1",
                request=Value(name="request", type="request"),
                response=Value(name="response", type="response"),
                metadata={"foo1": "bar1"},
            )
        ],
    )


def test_encoding_round_trip():
    txt = _sample()
    encoded = encode(txt)
    assert all(len(part) <= 255 for part in encoded)

    decoded = decode(encoded)
    assert decoded.version == txt.version
    assert len(decoded.endpoints) == len(txt.endpoints)
    for k, v in txt.metadata.items():
        assert decoded.metadata[k] == v


def test_full_payload_round_trip():
    txt = MdnsTxt(service="test1", version="1.0.1", metadata={"foo": "bar"})
    assert decode(encode(txt)) == txt


def test_long_payload_is_split():
    metadata = {f"key{i}": hashlib.sha256(str(i).encode()).hexdigest() for i in range(20)}
    txt = MdnsTxt(service="big", version="2.0.0", metadata=metadata)
    encoded = encode(txt)
    assert len(encoded) > 1
    assert all(len(part) == 255 for part in encoded[:-1])
    assert 0 < len(encoded[-1]) <= 255
    assert decode(encoded).metadata == metadata


def test_decode_rejects_garbage():
    with pytest.raises(ValueError):
        decode(["nothex"])


def test_short_payload_is_single_record():
    txt = MdnsTxt(service="s", version="1")
    encoded = encode(txt)
    assert len(encoded) == 1
    assert decode(encoded).service == "s"