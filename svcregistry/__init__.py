"""Service registry with a Consul backend, a no-op default registry and tag encodings."""

__version__ = "0.1.0"