"""Registry configuration and the options that adjust it."""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from svcregistry.model import Service

log = logging.getLogger("Registry")


@dataclass
class Config:
    """Settings shared by registry implementations.

    Durations are in seconds.
    """

    name: str = ""
    prefix_name: str = ""
    logger: logging.Logger = field(default=log, repr=False)
    context: dict[str, Any] = field(default_factory=dict)
    local_services: list[Service] = field(default_factory=list)
    addrs: list[str] = field(default_factory=list)
    tls_config: Optional[ssl.SSLContext] = None
    timeout: float = 0.0
    secure: bool = False
    ttl: float = 0.0
    debug: bool = False

    def init(self, *options: Optional[Option]) -> None:
        """Apply options in order, skipping None."""
        for option in options:
            if option is not None:
                option(self)

    def __str__(self) -> str:
        if self.prefix_name:
            return ".".join([self.prefix_name, "registry"])
        if self.name:
            return ".".join(["registry", self.name])
        return ""


@dataclass
class WatchConfig:
    """Settings for a watcher; an empty service means all services."""

    service: str = ""
    context: dict[str, Any] = field(default_factory=dict)


Option = Callable[[Config], None]
WatchOption = Callable[[WatchConfig], None]


def new_config(*options: Optional[Option]) -> Config:
    """Create a config with the default timeout and apply options."""
    cfg = Config(timeout=0.1)
    cfg.init(*options)
    return cfg


def debug() -> Option:
    def apply(cfg: Config) -> None:
        cfg.debug = True

    return apply


def addrs(*addresses: str) -> Option:
    """Set the registry addresses to use."""

    def apply(cfg: Config) -> None:
        cfg.addrs = list(addresses)

    return apply


def timeout(t: float) -> Option:
    def apply(cfg: Config) -> None:
        cfg.timeout = t

    return apply


def secure(b: bool) -> Option:
    """Use secure communication with the registry."""

    def apply(cfg: Config) -> None:
        cfg.secure = b

    return apply


def tls_config(t: Optional[ssl.SSLContext]) -> Option:
    def apply(cfg: Config) -> None:
        cfg.tls_config = t

    return apply


def register_ttl(t: float) -> Option:
    def apply(cfg: Config) -> None:
        cfg.ttl = t

    return apply


def with_name(name: str) -> Option:
    def apply(cfg: Config) -> None:
        cfg.name = name

    return apply


def with_config_prefix_name(prefix_name: str) -> Option:
    """Set the prefix under which the config lives in a config file."""

    def apply(cfg: Config) -> None:
        cfg.prefix_name = prefix_name

    return apply


def watch_service(name: str) -> WatchOption:
    """Restrict a watcher to a single service."""

    def apply(cfg: WatchConfig) -> None:
        cfg.service = name

    return apply