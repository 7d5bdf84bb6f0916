import ssl

from svcregistry.config import (
    Config,
    WatchConfig,
    addrs,
    debug,
    new_config,
    register_ttl,
    secure,
    timeout,
    tls_config,
    watch_service,
    with_config_prefix_name,
    with_name,
)


def test_new_config_defaults():
    cfg = new_config()
    assert cfg.timeout == 0.1
    assert cfg.addrs == []
    assert cfg.secure is False
    assert cfg.ttl == 0.0


def test_options_are_applied():
    ctx = ssl.create_default_context()
    cfg = new_config(
        addrs("a:1", "b:2"),
        timeout(3.0),
        secure(True),
        tls_config(ctx),
        register_ttl(60.0),
        with_name("etcd"),
        debug(),
    )
    assert cfg.addrs == ["a:1", "b:2"]
    assert cfg.timeout == 3.0
    assert cfg.secure is True
    assert cfg.tls_config is ctx
    assert cfg.ttl == 60.0
    assert cfg.name == "etcd"
    assert cfg.debug is True


def test_later_options_override_earlier():
    cfg = new_config(timeout(1.0), timeout(2.0))
    assert cfg.timeout == 2.0


def test_init_skips_none():
    cfg = Config()
    cfg.init(None, with_name("x"), None)
    assert cfg.name == "x"


def test_str_uses_name():
    assert str(Config(name="consul")) == "registry.consul"


def test_str_prefers_prefix_name():
    cfg = new_config(with_name("consul"), with_config_prefix_name("app"))
    assert str(cfg) == "app.registry"


def test_str_empty_without_names():
    assert str(Config()) == ""


def test_local_services_not_shared():
    a, b = Config(), Config()
    a.local_services.append("svc")
    assert b.local_services == []


def test_watch_service_option():
    wcfg = WatchConfig()
    watch_service("greeter")(wcfg)
    assert wcfg.service == "greeter"