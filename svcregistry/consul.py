"""Service registry backed by a Consul agent."""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import threading
import time
from typing import Any, Mapping, Optional

from svcregistry.base import Registry, register as register_registry
from svcregistry.config import (
    Config,
    Option,
    WatchOption,
    new_config,
    timeout,
    with_name,
)
from svcregistry.consul_client import ConsulClient, ConsulError, QueryOptions
from svcregistry.consul_encoding import (
    decode_endpoints,
    decode_metadata,
    decode_version,
    encode_endpoints,
    encode_metadata,
    encode_version,
)
from svcregistry.consul_watcher import ConsulWatcher
from svcregistry.model import Node, Service

log = logging.getLogger("Registry")

DEFAULT_ADDRESS = "127.0.0.1:8500"
DEFAULT_PORT = "8500"

_CONNECT_KEY = "consul_connect"
_CONFIG_KEY = "consul_config"
_ALLOW_STALE_KEY = "consul_allow_stale"
_QUERY_OPTIONS_KEY = "consul_query_options"
_TCP_CHECK_KEY = "consul_tcp_check"

# consul will not deregister a critical service sooner than a minute
_MIN_DEREGISTER = 60.0
_SPLAY = 5.0


def connect() -> Option:
    """Register services as Consul Connect native services."""

    def apply(cfg: Config) -> None:
        cfg.context[_CONNECT_KEY] = True

    return apply


def consul_config(c: Mapping[str, Any]) -> Option:
    """Base client settings: a mapping of ConsulClient keyword arguments."""

    def apply(cfg: Config) -> None:
        cfg.context[_CONFIG_KEY] = dict(c)

    return apply


def allow_stale(v: bool) -> Option:
    """Let any Consul server, not only the leader, answer reads."""

    def apply(cfg: Config) -> None:
        cfg.context[_ALLOW_STALE_KEY] = v

    return apply


def query_options(q: Optional[QueryOptions]) -> Option:
    """Query options to send with every read."""

    def apply(cfg: Config) -> None:
        if q is None:
            return
        cfg.context[_QUERY_OPTIONS_KEY] = q

    return apply


def tcp_check(t: float) -> Option:
    """Have Consul check the service address over TCP every ``t`` seconds."""

    def apply(cfg: Config) -> None:
        if t <= 0:
            return
        cfg.context[_TCP_CHECK_KEY] = t

    return apply


def get_deregister_ttl(t: float) -> float:
    """Return the delay after which a critical service is deregistered."""
    if t < _MIN_DEREGISTER:
        return _MIN_DEREGISTER + _SPLAY
    return t + _SPLAY


def _fixed(value: int, unit: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{frac:0{digits}d}".rstrip("0")


def _format_duration(seconds: float) -> str:
    """Format seconds the way Consul writes durations, e.g. ``1m5s``."""
    ns = round(seconds * 1_000_000_000)
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return sign + _fixed(ns, 1_000) + "µs"
    if ns < 1_000_000_000:
        return sign + _fixed(ns, 1_000_000) + "ms"
    hours, rest = divmod(ns, 3600 * 1_000_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000_000)
    text = _fixed(rest, 1_000_000_000) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{text}"
    if minutes:
        return f"{sign}{minutes}m{text}"
    return sign + text


class _MissingPort(ValueError):
    pass


def _split_host_port(address: str) -> tuple[str, str]:
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {address!r}")
        host, rest = address[1:end], address[end + 1 :]
        if not rest:
            raise _MissingPort(f"missing port in address {address!r}")
        if not rest.startswith(":") or ":" in rest[1:]:
            raise ValueError(f"invalid address {address!r}")
        return host, rest[1:]
    colons = address.count(":")
    if colons == 0:
        raise _MissingPort(f"missing port in address {address!r}")
    if colons > 1:
        raise ValueError(f"too many colons in address {address!r}")
    host, port = address.split(":")
    return host, port


def _join_host_port(host: str, port: Any) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _hash_service(service: Service) -> int:
    payload = json.dumps(service.to_dict(), sort_keys=True).encode("utf-8")
    return int.from_bytes(hashlib.sha256(payload).digest()[:8], "big")


class ConsulRegistry(Registry):
    """Registry that stores services in a Consul agent."""

    def __init__(self, *options: Option) -> None:
        self.config = new_config(with_name("consul"), timeout(0.1), *options)
        self.address: list[str] = []
        self._connect = False
        self._query_options = QueryOptions(allow_stale=True)
        self._settings: dict[str, Any] = {}
        self._client: Optional[ConsulClient] = None
        self._lock = threading.Lock()
        self._register: dict[str, int] = {}
        self._last_checked: dict[str, float] = {}
        self._configure()

    def _configure(self) -> None:
        ctx = self.config.context
        settings: dict[str, Any] = {
            "address": DEFAULT_ADDRESS,
            "scheme": "http",
            "timeout": None,
            "verify": True,
        }
        base = ctx.get(_CONFIG_KEY)
        if isinstance(base, Mapping):
            settings.update(base)
        connect_flag = ctx.get(_CONNECT_KEY)
        if isinstance(connect_flag, bool):
            self._connect = connect_flag
        qo = ctx.get(_QUERY_OPTIONS_KEY)
        if isinstance(qo, QueryOptions):
            self._query_options = dataclasses.replace(qo)
        stale = ctx.get(_ALLOW_STALE_KEY)
        if isinstance(stale, bool):
            self._query_options.allow_stale = stale

        found: list[str] = []
        for address in self.config.addrs:
            try:
                host, port = _split_host_port(address)
            except _MissingPort:
                found.append(_join_host_port(address, DEFAULT_PORT))
            except ValueError:
                continue
            else:
                found.append(_join_host_port(host, port))

        if found:
            self.address = found
            settings["address"] = found[0]

        if self.config.secure or self.config.tls_config is not None:
            settings["scheme"] = "https"
            settings["verify"] = self.config.tls_config if self.config.tls_config is not None else False

        if self.config.timeout > 0:
            settings["timeout"] = self.config.timeout

        self._settings = settings
        self._client = None
        self.client()

    def init(self, *options: Option) -> None:
        self.config.init(*options)
        self._configure()

    def client(self) -> ConsulClient:
        """Return a client, preferring the first address whose agent answers."""
        if self._client is not None:
            return self._client
        for addr in self.address:
            self._settings["address"] = addr
            candidate = ConsulClient(**self._settings)
            try:
                candidate.agent_host()
            except ConsulError:
                continue
            self._client = candidate
            return candidate
        self._client = ConsulClient(**self._settings)
        return self._client

    def register(self, service: Service, *options: Option) -> None:
        if not service.nodes:
            raise ValueError("Require at least one node")

        opts = Config()
        for option in options:
            option(opts)

        reg_interval = 0.0
        reg_tcp_check = False
        interval = self.config.context.get(_TCP_CHECK_KEY)
        if isinstance(interval, (int, float)) and not isinstance(interval, bool):
            reg_tcp_check = True
            reg_interval = float(interval)

        h = _hash_service(service)
        node = service.nodes[0]

        with self._lock:
            known = self._register.get(service.name)
            last_checked = self._last_checked.get(service.name)

        if known is not None and known == h:
            if opts.ttl == 0:
                if last_checked is not None and time.monotonic() - last_checked <= get_deregister_ttl(reg_interval):
                    return
                try:
                    checks = self.client().health_checks(service.name, self._query_options)
                except ConsulError:
                    checks = []
                if any(c.get("ServiceID") == node.id for c in checks):
                    return
            else:
                try:
                    self.client().pass_ttl("service:" + node.id, "")
                    return
                except ConsulError:
                    pass

        tags = encode_metadata(node.metadata)
        tags += encode_endpoints(service.endpoints)
        tags += encode_version(service.version)

        check: Optional[dict[str, str]] = None
        if reg_tcp_check:
            check = {
                "TCP": node.address,
                "Interval": _format_duration(reg_interval),
                "DeregisterCriticalServiceAfter": _format_duration(get_deregister_ttl(reg_interval)),
            }
        elif opts.ttl > 0:
            check = {
                "TTL": _format_duration(opts.ttl),
                "DeregisterCriticalServiceAfter": _format_duration(get_deregister_ttl(opts.ttl)),
            }

        try:
            host, port_text = _split_host_port(node.address)
        except ValueError:
            host, port_text = "", ""
        if not host:
            host = node.address
        try:
            port = int(port_text)
        except ValueError:
            port = 0

        registration: dict[str, Any] = {
            "ID": node.id,
            "Name": service.name,
            "Tags": tags,
            "Port": port,
            "Address": host,
        }
        if check is not None:
            registration["Check"] = check
        if self._connect:
            registration["Connect"] = {"Native": True}

        self.client().service_register(registration)

        with self._lock:
            self._register[service.name] = h
            self._last_checked[service.name] = time.monotonic()

        if opts.ttl == 0:
            return

        self.config.local_services.append(service)
        self.client().pass_ttl("service:" + node.id, "")

    def deregister(self, service: Service, *options: Option) -> None:
        if not service.nodes:
            raise ValueError("Require at least one node")
        with self._lock:
            self._register.pop(service.name, None)
            self._last_checked.pop(service.name, None)
        self.client().service_deregister(service.nodes[0].id)

    def get_service(self, name: str) -> list[Service]:
        if self._connect:
            entries = self.client().health_connect(name, self._query_options)
        else:
            entries = self.client().health_service(name, self._query_options)

        service_map: dict[str, Service] = {}
        for entry in entries:
            svc_info = entry.get("Service") or {}
            node_info = entry.get("Node") or {}
            if svc_info.get("Service") != name:
                continue
            tags = svc_info.get("Tags") or []
            version = decode_version(tags) or ""
            address = svc_info.get("Address") or node_info.get("Address") or ""

            svc = service_map.get(version)
            if svc is None:
                svc = Service(
                    name=svc_info.get("Service") or "",
                    version=version,
                    endpoints=decode_endpoints(tags),
                )
                service_map[version] = svc

            if any(check.get("Status") == "critical" for check in entry.get("Checks") or []):
                continue

            svc.nodes.append(
                Node(
                    id=svc_info.get("ID") or "",
                    address=_join_host_port(address, svc_info.get("Port") or 0),
                    metadata=decode_metadata(tags),
                )
            )
        return list(service_map.values())

    def list_services(self) -> list[Service]:
        catalog = self.client().catalog_services(self._query_options)
        return [Service(name=name) for name in catalog]

    def watcher(self, *options: WatchOption) -> ConsulWatcher:
        return ConsulWatcher(self.client(), *options)

    def local_services(self) -> list[Service]:
        return self.config.local_services

    def __str__(self) -> str:
        return self.config.name


register_registry("consul", ConsulRegistry)