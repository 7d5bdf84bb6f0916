import pytest

from svcregistry import base
from svcregistry.base import NopRegistry, Registry, default_registry, register, use
from svcregistry.config import addrs, new_config, with_name
from svcregistry.model import Node, Service


class _DummyRegistry(Registry):
    def __init__(self, *options):
        self.config = new_config(*options)
        self.registered = []

    def init(self, *options):
        self.config.init(*options)

    def register(self, service, *options):
        self.registered.append(service)

    def deregister(self, service, *options):
        self.registered.remove(service)

    def get_service(self, name):
        return [s for s in self.registered if s.name == name]

    def list_services(self):
        return list(self.registered)

    def watcher(self, *options):
        return None

    def local_services(self):
        return list(self.registered)


def _counting_creator(calls):
    def create(*options):
        calls.append(options)
        return _DummyRegistry(*options)

    return create


def test_nop_registry_behaviour():
    reg = NopRegistry()
    service = Service(name="svc", nodes=[Node(id="n1")])
    assert reg.register(service) is None
    assert reg.deregister(service) is None
    assert reg.get_service("svc") == []
    assert reg.list_services() == []
    assert reg.local_services() == []
    assert reg.watcher() is None
    assert str(reg) == ""


def test_registry_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Registry()


def test_use_unknown_name_gives_nop():
    reg = use("no-such-registry-kind")
    assert isinstance(reg, NopRegistry)
    assert reg.get_service("anything") == []
    assert reg.list_services() == []
    assert str(reg) == ""


def test_use_creates_registered_kind():
    calls = []
    register("dummy-create", _counting_creator(calls))
    reg = use("dummy-create", with_name("dummy-create"))
    assert isinstance(reg, _DummyRegistry)
    assert str(reg) == "dummy-create"
    assert len(calls) == 1


def test_use_reuses_registry_for_same_address():
    calls = []
    register("dummy-reuse", _counting_creator(calls))
    first = use("dummy-reuse", addrs("h1:1"))
    second = use("dummy-reuse", addrs("h1:1"))
    third = use("dummy-reuse", addrs("h2:2"))
    assert first is second
    assert third is not first
    assert len(calls) == 2


def test_use_ignores_empty_addresses():
    calls = []
    register("dummy-empty", _counting_creator(calls))
    use("dummy-empty", addrs(""))
    use("dummy-empty", addrs(""))
    assert len(calls) == 2


def test_default_registry_is_nop_when_unset(monkeypatch):
    monkeypatch.setattr(base, "_default", None)
    first = default_registry()
    assert isinstance(first, NopRegistry)
    assert default_registry() is first


def test_default_registry_can_be_replaced(monkeypatch):
    monkeypatch.setattr(base, "_default", None)
    custom = _DummyRegistry()
    assert default_registry(custom) is custom
    assert default_registry() is custom


def test_dummy_round_trip_through_interface():
    reg = _DummyRegistry()
    service = Service(name="svc", version="1", nodes=[Node(id="a")])
    reg.register(service)
    assert reg.get_service("svc") == [service]
    reg.deregister(service)
    assert reg.list_services() == []