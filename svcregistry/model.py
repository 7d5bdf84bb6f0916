"""Service descriptions, watch results and the watcher interface."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Optional


class NotFoundError(LookupError):
    """Raised when a requested service is not known to a registry."""

    def __init__(self, message: str = "service not found") -> None:
        super().__init__(message)


class WatcherStoppedError(RuntimeError):
    """Raised by a watcher once it has been stopped."""

    def __init__(self, message: str = "watcher stopped") -> None:
        super().__init__(message)


def _str(data: dict, key: str) -> str:
    return data.get(key) or ""


def _str_map(data: dict, key: str) -> dict[str, str]:
    return dict(data.get(key) or {})


@dataclass
class Value:
    """A typed, possibly nested, request or response value."""

    name: str = ""
    type: str = ""
    values: list[Value] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "values": [v.to_dict() for v in self.values],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Value:
        return cls(
            name=_str(data, "name"),
            type=_str(data, "type"),
            values=[cls.from_dict(v) for v in data.get("values") or []],
        )


@dataclass
class Endpoint:
    """An RPC or HTTP endpoint exposed by a service."""

    name: str = ""
    host: list[str] = field(default_factory=list)
    method: list[str] = field(default_factory=list)
    path: str = ""
    description: str = ""
    stream: bool = False
    request: Optional[Value] = None
    response: Optional[Value] = None
    metadata: dict[str, str] = field(default_factory=dict)
    handler: str = ""
    body: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "host": list(self.host),
            "method": list(self.method),
            "path": self.path,
            "description": self.description,
            "stream": self.stream,
            "request": self.request.to_dict() if self.request else None,
            "response": self.response.to_dict() if self.response else None,
            "metadata": dict(self.metadata),
            "Handler": self.handler,
            "Body": self.body,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Endpoint:
        request = data.get("request")
        response = data.get("response")
        return cls(
            name=_str(data, "name"),
            host=list(data.get("host") or []),
            method=list(data.get("method") or []),
            path=_str(data, "path"),
            description=_str(data, "description"),
            stream=bool(data.get("stream", False)),
            request=Value.from_dict(request) if request is not None else None,
            response=Value.from_dict(response) if response is not None else None,
            metadata=_str_map(data, "metadata"),
            handler=_str(data, "Handler"),
            body=_str(data, "Body"),
        )


@dataclass
class Node:
    """One running instance of a service, reachable at an address."""

    id: str = ""
    address: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "address": self.address, "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        return cls(
            id=_str(data, "id"),
            address=_str(data, "address"),
            metadata=_str_map(data, "metadata"),
        )


@dataclass
class Service:
    """A named, versioned service with its endpoints and nodes."""

    name: str = ""
    version: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    endpoints: list[Endpoint] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "metadata": dict(self.metadata),
            "endpoints": [e.to_dict() for e in self.endpoints],
            "nodes": [n.to_dict() for n in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Service:
        return cls(
            name=_str(data, "name"),
            version=_str(data, "version"),
            metadata=_str_map(data, "metadata"),
            endpoints=[Endpoint.from_dict(e) for e in data.get("endpoints") or []],
            nodes=[Node.from_dict(n) for n in data.get("nodes") or []],
        )

    def equal(self, other: Service) -> bool:
        """Compare node ids with another service.

        Only services with the same number of nodes are compared; a
        difference in node count is not treated as a mismatch.
        """
        if len(self.nodes) != len(other.nodes):
            return True
        other_ids = {n.id for n in other.nodes}
        return all(n.id in other_ids for n in self.nodes)


class EventType(IntEnum):
    """Kind of change reported for a registered service."""

    CREATE = 0
    DELETE = 1
    UPDATE = 2

    def __str__(self) -> str:
        return self.name.lower()


@dataclass
class Event:
    """A registry event."""

    id: str = ""
    type: EventType = EventType.CREATE
    timestamp: datetime = field(default_factory=datetime.now)
    service: Optional[Service] = None


@dataclass
class Result:
    """What a watcher yields: an action and the service it applies to."""

    action: str = ""
    service: Optional[Service] = None


class Watcher(ABC):
    """Source of updates about the services in a registry."""

    @abstractmethod
    def next(self) -> Result:
        """Block until the next result is available and return it."""

    @abstractmethod
    def stop(self) -> None:
        """Stop watching; later calls to next raise WatcherStoppedError."""

    def __enter__(self) -> Watcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


def copy_service(service: Service) -> Service:
    """Return a deep copy of a service."""
    return copy.deepcopy(service)


def copy_services(services: list[Service]) -> list[Service]:
    """Return deep copies of a list of services."""
    return [copy_service(s) for s in services]