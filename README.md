# svcregistry

A service registry for microservices. Services announce themselves with one or
more nodes. Clients look them up by name, list them, or watch for changes.

Backends:

- `svcregistry.consul.ConsulRegistry` registers and resolves services through a
  Consul agent's HTTP API.
- `svcregistry.base.NopRegistry` accepts every call and knows no services. It is
  the default.

## Install

```
pip install svcregistry
```

The package needs only the standard library. To run the test suite:

```
pip install "svcregistry[test]"
pytest
```

## Models

`svcregistry.model` defines the following:

- `Service`, `Node`, `Endpoint` and `Value`. Each has `to_dict()` and
  `from_dict()` for JSON.
- `copy_service()` and `copy_services()`, which return deep copies.
- `Result` and `Event`, which describe changes a watcher reports, and
  `EventType` (`create`, `delete`, `update`).
- The abstract `Watcher`, with `next()` and `stop()`. A watcher is also a
  context manager that stops itself on exit.
- The errors `NotFoundError` and `WatcherStoppedError`.

`Service.equal(other)` compares node ids. It only compares services that have
the same number of nodes. When the node counts differ, it returns `True`.

## Configuration

`svcregistry.config.Config` holds the shared settings. Durations are in seconds.
You adjust a config with these option functions:

- `addrs(*addresses)`
- `timeout(t)`
- `secure(b)`
- `tls_config(ctx)`, which takes an `ssl.SSLContext`
- `register_ttl(t)`
- `with_name(name)`
- `with_config_prefix_name(prefix)`
- `debug()`

`new_config(*options)` starts from a 0.1 second timeout and applies the options.
Watchers take `watch_service(name)`, which limits the watch to one service.

## Consul

```python
from svcregistry.config import addrs, register_ttl
from svcregistry.consul import ConsulRegistry
from svcregistry.model import Node, Service

reg = ConsulRegistry(addrs("127.0.0.1"))  # a missing port defaults to 8500
svc = Service(
    name="greeter",
    version="1.0.0",
    nodes=[Node(id="greeter-1", address="10.0.0.1:9000")],
)
reg.register(svc, register_ttl(30.0))

for found in reg.get_service("greeter"):
    print(found.version, [n.address for n in found.nodes])

with reg.watcher() as watcher:
    result = watcher.next()   # blocks until a change arrives
    print(result.action, result.service.name)

reg.deregister(svc)
```

Here is how the registry behaves:

- `register` and `deregister` raise `ValueError` for a service without nodes.
  Failed requests raise `svcregistry.consul_client.ConsulError`.
- `get_service` drops nodes that have a critical health check.
- Node metadata, endpoints and the version are stored as Consul tags.
- The watcher polls the catalog and each service about once a second. It
  reports `create`, `update` and `delete` results.

The Consul backend has its own options in `svcregistry.consul`:

- `connect()`
- `consul_config(mapping)`, which takes keyword arguments for
  `ConsulClient`
- `allow_stale(v)`
- `query_options(q)`
- `tcp_check(t)`

`svcregistry.consul_client.ConsulClient` is the small HTTP client the registry
uses. You can also use it on its own.

## Tag and TXT encodings

`svcregistry.consul_encoding` encodes data as tags of the form
`<kind>-<hex of zlib(json)>`. It has:

- `encode_version` / `decode_version`
- `encode_metadata` / `decode_metadata`
- `encode_endpoints` / `decode_endpoints`

The older plain form `<kind>=<json>` is still accepted when decoding.

`svcregistry.mdns_txt` turns an `MdnsTxt` payload into compressed hex strings
of at most 255 characters each, and back again.

## Looking up a registry by name

```python
import svcregistry.consul  # makes "consul" available
from svcregistry.base import default_registry, use

reg = use("consul")
```

`use` reuses a registry that was already created for the same name and
address. It returns a `NopRegistry` for a name that has not been registered
with `svcregistry.base.register`. `default_registry()` returns the
process-wide default, which starts as a `NopRegistry`.

## What this package does not do

- There is no in-process registry. Services live only in a Consul agent.
- There is no caching layer in front of a registry.
- There is no multicast DNS registry. `svcregistry.mdns_txt` only encodes and
  decodes the TXT payload; nothing announces or discovers services on the
  network.
- There is no command-line tool.