"""Registry interface, the no-op registry and the registry directory."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from svcregistry.config import Config, Option, WatchOption
from svcregistry.model import Service, Watcher


class Registry(ABC):
    """A service registry."""

    config: Config

    @abstractmethod
    def init(self, *options: Option) -> None:
        """Apply options to the registry."""

    @abstractmethod
    def register(self, service: Service, *options: Option) -> None:
        """Register a service."""

    @abstractmethod
    def deregister(self, service: Service, *options: Option) -> None:
        """Remove a service's nodes."""

    @abstractmethod
    def get_service(self, name: str) -> list[Service]:
        """Return every version of a service."""

    @abstractmethod
    def list_services(self) -> list[Service]:
        """Return all known services."""

    @abstractmethod
    def watcher(self, *options: WatchOption) -> Optional[Watcher]:
        """Return a watcher for registry changes."""

    @abstractmethod
    def local_services(self) -> list[Service]:
        """Return services registered through this registry."""

    def __str__(self) -> str:
        return self.config.name


class NopRegistry(Registry):
    """A registry that accepts everything and knows nothing."""

    def __init__(self) -> None:
        self.config = Config()

    def init(self, *options: Option) -> None:
        return None

    def register(self, service: Service, *options: Option) -> None:
        return None

    def deregister(self, service: Service, *options: Option) -> None:
        return None

    def get_service(self, name: str) -> list[Service]:
        return []

    def list_services(self) -> list[Service]:
        return []

    def watcher(self, *options: WatchOption) -> Optional[Watcher]:
        return None

    def local_services(self) -> list[Service]:
        return []

    def __str__(self) -> str:
        return ""


Creator = Callable[..., Registry]

_creators: dict[str, Creator] = {}
_hosts: dict[str, Registry] = {}
_hosts_lock = threading.Lock()
_default: Optional[Registry] = None


def register(name: str, creator: Creator) -> None:
    """Make a registry implementation available under a name."""
    _creators[name] = creator


def use(name: str, *options: Option) -> Registry:
    """Return a registry by name, reusing one already created for an address.

    Unknown names give a NopRegistry.
    """
    cfg = Config(name=name)
    cfg.init(*options)

    with _hosts_lock:
        for addr in cfg.addrs:
            if not addr:
                continue
            found = _hosts.get(f"{cfg.name}-{addr}")
            if found is not None:
                return found

    creator = _creators.get(name)
    if creator is None:
        return NopRegistry()

    reg = creator(*options)
    with _hosts_lock:
        for addr in reg.config.addrs:
            if addr:
                _hosts[f"{cfg.name}-{addr}"] = reg
    return reg


def default_registry(*new: Registry) -> Registry:
    """Return the default registry, replacing it when one is given."""
    global _default
    if new:
        _default = new[0]
    elif _default is None:
        _default = NopRegistry()
    return _default