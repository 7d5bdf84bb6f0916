"""Watcher that follows service changes in Consul by polling."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Optional

from svcregistry.config import WatchConfig, WatchOption
from svcregistry.consul_client import QueryOptions
from svcregistry.consul_encoding import decode_endpoints, decode_metadata, decode_version
from svcregistry.model import Node, Result, Service, Watcher, WatcherStoppedError, copy_service

log = logging.getLogger("Registry")

POLL_INTERVAL = 1.0

_STOP = object()
_UNSET = object()


class _Plan:
    """Polls a source and calls a handler whenever the data changes."""

    def __init__(self, fetch: Callable[[], Any], handler: Callable[[int, Any], None], name: str) -> None:
        self._fetch = fetch
        self._handler = handler
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run(self) -> None:
        last: Any = _UNSET
        index = 0
        while not self._stop.is_set():
            try:
                data = self._fetch()
            except Exception as err:
                log.warning("consul watch: %s", err)
            else:
                if data != last:
                    index += 1
                    last = data
                    try:
                        self._handler(index, data)
                    except Exception:
                        log.exception("consul watch handler failed")
            self._stop.wait(POLL_INTERVAL)


class ConsulWatcher(Watcher):
    """Reports services appearing, changing and vanishing in Consul.

    With ``start`` false no polling happens; the handlers can then be
    fed directly.
    """

    def __init__(self, client: Any, *options: WatchOption, start: bool = True) -> None:
        wo = WatchConfig()
        for option in options:
            option(wo)
        self.client = client
        self.options = wo
        self.watchers: dict[str, _Plan] = {}
        self.services: dict[str, list[Service]] = {}
        self._start = start
        self._next: queue.Queue = queue.Queue()
        self._exit = threading.Event()
        self._lock = threading.RLock()
        self._plan = _Plan(
            lambda: client.catalog_services(QueryOptions()),
            self.handle,
            "consul-watch-services",
        )
        if start:
            self._plan.start()

    def _send(self, action: str, service: Service) -> None:
        self._next.put(Result(action=action, service=service))

    def service_handler(self, idx: int, data: Any) -> None:
        """Process the health entries of one service."""
        if not isinstance(data, list):
            return

        service_map: dict[str, Service] = {}
        service_name = ""

        for entry in data:
            svc_info = entry.get("Service") or {}
            node_info = entry.get("Node") or {}
            tags = svc_info.get("Tags") or []
            service_name = svc_info.get("Service") or ""
            version = decode_version(tags) or ""
            address = svc_info.get("Address") or node_info.get("Address") or ""

            svc = service_map.get(version)
            if svc is None:
                svc = Service(name=service_name, version=version, endpoints=decode_endpoints(tags))
                service_map[version] = svc

            if any(check.get("Status") == "critical" for check in entry.get("Checks") or []):
                continue

            svc.nodes.append(
                Node(
                    id=svc_info.get("ID") or "",
                    address=f"{address}:{svc_info.get('Port') or 0}",
                    metadata=decode_metadata(tags),
                )
            )

        with self._lock:
            known = dict(self.services)

        new_services: list[Service] = []
        for new_service in service_map.values():
            new_services.append(new_service)
            old_services = known.get(service_name)
            if old_services is None:
                self._send("create", new_service)
                continue

            action = "create"
            for old_service in old_services:
                if old_service.version != new_service.version:
                    continue
                action = "update"
                new_ids = {n.id for n in new_service.nodes}
                gone = [n for n in old_service.nodes if n.id not in new_ids]
                if gone:
                    deleted = copy_service(old_service)
                    deleted.nodes = gone
                    self._send("delete", deleted)
            self._send(action, new_service)

        for old in known.get(service_name, []):
            if old.version not in service_map:
                self._send("delete", old)

        with self._lock:
            self.services[service_name] = new_services

    def handle(self, idx: int, data: Any) -> None:
        """Process the catalog's list of service names."""
        if not isinstance(data, dict):
            return

        with self._lock:
            for name in data:
                if self.options.service and name != self.options.service:
                    continue
                if name in self.watchers:
                    continue
                plan = _Plan(
                    lambda n=name: self.client.health_service(n, QueryOptions()),
                    self.service_handler,
                    f"consul-watch-{name}",
                )
                if self._start:
                    plan.start()
                self.watchers[name] = plan
                self._send("create", Service(name=name))

            deleted: dict[str, list[Service]] = {}
            for name in list(self.services):
                if name not in data:
                    deleted[name] = self.services.pop(name)

            for name in list(self.watchers):
                if name in data:
                    continue
                self.watchers.pop(name).stop()
                for old_service in deleted.get(name, []):
                    self._send("delete", old_service)
                # an empty service tells listeners the whole service is gone
                self._send("delete", Service(name=name))

    def next(self) -> Result:
        if self._exit.is_set():
            raise WatcherStoppedError()
        item = self._next.get()
        if item is _STOP:
            self._next.put(_STOP)
            raise WatcherStoppedError()
        return item

    def stop(self) -> None:
        with self._lock:
            if self._exit.is_set():
                return
            self._exit.set()
            self._plan.stop()
            for plan in self.watchers.values():
                plan.stop()
        while True:
            try:
                self._next.get_nowait()
            except queue.Empty:
                break
        self._next.put(_STOP)