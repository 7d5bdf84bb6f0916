import json

import pytest

from svcregistry.consul_encoding import (
    decode,
    decode_endpoints,
    decode_metadata,
    decode_version,
    encode,
    encode_endpoints,
    encode_metadata,
    encode_version,
)
from svcregistry.model import Endpoint, Value


def _endpoint(n: int) -> Endpoint:
    return Endpoint(
        name=f"endpoint{n}",
        request=Value(name="request", type="request"),
        response=Value(name="response", type="response"),
        metadata={f"foo{n}": f"bar{n}"},
    )


ENDPOINTS = [_endpoint(1), _endpoint(2), _endpoint(3)]


@pytest.mark.parametrize("ep", ENDPOINTS, ids=lambda e: e.name)
def test_encode_endpoints_gives_one_tag_that_decodes(ep):
    tags = encode_endpoints([ep])
    assert len(tags) == 1
    assert tags[0].startswith("e-")

    decoded = decode_endpoints(tags)
    assert len(decoded) == 1
    assert decoded[0].name == ep.name
    for k, v in ep.metadata.items():
        assert decoded[0].metadata[k] == v


@pytest.mark.parametrize("ep", ENDPOINTS, ids=lambda e: e.name)
def test_decode_hex_endpoint_tag(ep):
    tag = "e-" + encode(json.dumps(ep.to_dict()).encode())
    decoded = decode_endpoints([tag])
    assert len(decoded) == 1
    assert decoded[0].name == ep.name
    assert decoded[0].request == Value(name="request", type="request")
    for k, v in ep.metadata.items():
        assert decoded[0].metadata[k] == v


def test_decode_plain_endpoint_tag():
    tag = "e=" + json.dumps(ENDPOINTS[0].to_dict())
    decoded = decode_endpoints([tag])
    assert [e.name for e in decoded] == ["endpoint1"]


def test_decode_endpoints_keeps_first_format_only():
    hex_tag = encode_endpoints([ENDPOINTS[0]])[0]
    plain_tag = "e=" + json.dumps(ENDPOINTS[1].to_dict())
    decoded = decode_endpoints([hex_tag, plain_tag])
    assert [e.name for e in decoded] == ["endpoint1"]


def test_decode_endpoints_ignores_other_tags():
    tags = encode_version("1.0.0") + encode_metadata({"a": "b"}) + encode_endpoints(ENDPOINTS)
    assert [e.name for e in decode_endpoints(tags)] == ["endpoint1", "endpoint2", "endpoint3"]


@pytest.mark.parametrize(
    "decoded, encoded",
    [
        ("1.0.0", "v-789c32d433d03300040000ffff02ce00ee"),
        ("latest", "v-789cca492c492d2e01040000ffff08cc028e"),
    ],
)
def test_encoding_version(decoded, encoded):
    tags = encode_version(decoded)
    assert tags[0] == encoded
    assert decode_version(tags) == decoded
    assert decode_version([encoded]) == decoded


def test_decode_plain_version():
    assert decode_version(["v=2.1.0"]) == "2.1.0"


def test_decode_version_missing():
    assert decode_version(["t-00", "e=abc", "v"]) is None


def test_decode_version_bad_hex_gives_empty():
    assert decode_version(["v-zz"]) == ""


def test_metadata_round_trip():
    md = {"foo": "bar", "region": "eu", "empty": ""}
    tags = encode_metadata(md)
    assert len(tags) == 3
    assert all(t.startswith("t-") for t in tags)
    assert decode_metadata(tags) == md


def test_decode_metadata_plain_and_first_format_only():
    plain = 't={"a":"1"}'
    hexed = encode_metadata({"b": "2"})[0]
    assert decode_metadata([plain, hexed]) == {"a": "1"}
    assert decode_metadata([hexed, plain]) == {"b": "2"}


@pytest.mark.parametrize("data", [b"", b"x", b"hello world" * 50, bytes(range(256))])
def test_encode_decode_round_trip(data):
    assert decode(encode(data)) == data


def test_decode_rejects_bad_hex():
    with pytest.raises(ValueError):
        decode("not hex")


def test_decode_rejects_bad_zlib():
    with pytest.raises(ValueError):
        decode("deadbeef")