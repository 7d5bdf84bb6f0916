"""A small client for the parts of the Consul HTTP API a registry needs."""

from __future__ import annotations

import json
import ssl
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Optional, Union


class ConsulError(RuntimeError):
    """Raised when a Consul request fails or the agent answers with an error."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass
class QueryOptions:
    """Options sent with read queries."""

    allow_stale: bool = False
    datacenter: str = ""
    wait_index: int = 0
    wait_time: float = 0.0

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.allow_stale:
            params["stale"] = ""
        if self.datacenter:
            params["dc"] = self.datacenter
        if self.wait_index:
            params["index"] = str(self.wait_index)
        if self.wait_time > 0:
            params["wait"] = f"{int(self.wait_time * 1000)}ms"
        return params


def _quote(segment: str) -> str:
    return urllib.parse.quote(segment, safe="")


class ConsulClient:
    """Talks to one Consul agent over HTTP(S).

    ``timeout`` is in seconds; None leaves the socket default in place.
    ``verify`` is either a flag for certificate checking or a ready
    SSL context to use for HTTPS.
    """

    def __init__(
        self,
        address: str = "127.0.0.1:8500",
        scheme: str = "http",
        timeout: Optional[float] = None,
        verify: Union[bool, ssl.SSLContext] = True,
    ) -> None:
        self.address = address
        self.scheme = scheme
        self.timeout = timeout
        if isinstance(verify, ssl.SSLContext):
            self._ssl_context: Optional[ssl.SSLContext] = verify
        elif verify:
            self._ssl_context = None
        else:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            self._ssl_context = context

    def _url(self, path: str, params: Optional[dict[str, str]]) -> str:
        url = f"{self.scheme}://{self.address}{path}"
        if params:
            url += "?" + urllib.parse.urlencode(params)
        return url

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
        body: Any = None,
    ) -> Any:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = urllib.request.Request(self._url(path, params), data=data, method=method)
        if data is not None:
            request.add_header("Content-Type", "application/json")
        kwargs: dict[str, Any] = {}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        if self.scheme == "https" and self._ssl_context is not None:
            kwargs["context"] = self._ssl_context
        try:
            with urllib.request.urlopen(request, **kwargs) as response:
                raw = response.read()
        except urllib.error.HTTPError as err:
            detail = err.read().decode("utf-8", errors="replace").strip()
            raise ConsulError(f"Unexpected response code: {err.code} ({detail})", status=err.code) from err
        except (urllib.error.URLError, OSError) as err:
            raise ConsulError(f"request to {self.address} failed: {err}") from err
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except ValueError as err:
            raise ConsulError(f"invalid response from {self.address}: {err}") from err

    def agent_host(self) -> dict[str, Any]:
        """Return host information about the agent."""
        return self._request("GET", "/v1/agent/host") or {}

    def health_service(self, name: str, query_options: Optional[QueryOptions] = None) -> list[dict[str, Any]]:
        """Return the health entries of every instance of a service."""
        params = (query_options or QueryOptions()).to_params()
        return self._request("GET", f"/v1/health/service/{_quote(name)}", params) or []

    def health_connect(self, name: str, query_options: Optional[QueryOptions] = None) -> list[dict[str, Any]]:
        """Return the health entries of Connect-capable instances of a service."""
        params = (query_options or QueryOptions()).to_params()
        return self._request("GET", f"/v1/health/connect/{_quote(name)}", params) or []

    def health_checks(self, name: str, query_options: Optional[QueryOptions] = None) -> list[dict[str, Any]]:
        """Return the health checks attached to a service."""
        params = (query_options or QueryOptions()).to_params()
        return self._request("GET", f"/v1/health/checks/{_quote(name)}", params) or []

    def catalog_services(self, query_options: Optional[QueryOptions] = None) -> dict[str, list[str]]:
        """Return every service name in the catalog with its tags."""
        params = (query_options or QueryOptions()).to_params()
        return self._request("GET", "/v1/catalog/services", params) or {}

    def service_register(self, registration: dict[str, Any]) -> None:
        """Register a service with the local agent."""
        self._request("PUT", "/v1/agent/service/register", body=registration)

    def service_deregister(self, service_id: str) -> None:
        """Remove a service from the local agent."""
        self._request("PUT", f"/v1/agent/service/deregister/{_quote(service_id)}")

    def pass_ttl(self, check_id: str, note: str = "") -> None:
        """Mark a TTL check as passing."""
        params = {"note": note} if note else None
        self._request("PUT", f"/v1/agent/check/pass/{_quote(check_id)}", params)