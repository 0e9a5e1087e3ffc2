"""Remote artifact store — the interface the core needs and its HTTP implementation.

``RemoteArtifactStore`` is the seam: the session, resolver and retention
propagator only talk to this Protocol.  ``HttpArtifactStore`` implements it
against an Artifactory-style REST API with httpx:

- ``PUT  {base}/{path};key=value``           upload with matrix properties
- ``HEAD {base}/{path}``                     existence
- ``GET  {base}/api/storage/{path}?properties=key``            read property
- ``PUT  {base}/api/storage/{path}?properties=key=value&recursive=0|1``

Any non-2xx response raises ``TransportError``.  There is no retry here;
re-running the publish is the recovery path.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx

from artipub.core.errors import ConfigError, TransportError
from artipub.core.hasher import md5_hex

logger = logging.getLogger(__name__)


@runtime_checkable
class RemoteArtifactStore(Protocol):
    """Operations the publisher performs against the artifact repository.

    ``path`` arguments are relative to the store root; absolute URLs under
    the store's base URL are accepted as well.
    """

    def put(self, path: str, data: bytes, properties: dict[str, str] | None = None) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...

    def get_property(self, path: str, key: str) -> str | None:
        ...

    def set_property(self, path: str, key: str, value: str, *, recursive: bool = False) -> None:
        ...

    def get_json(self, path: str) -> bytes:
        ...


def _quote_property(value: str) -> str:
    return quote(value, safe="")


class HttpArtifactStore:
    """httpx-backed ``RemoteArtifactStore``.

    Parameters
    ----------
    base_url:
        Root URL of the artifact repository, e.g. ``https://artifacts.example.com/artifactory``.
    user, token:
        Basic auth when both are set, bearer token when only ``token`` is.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        user: str | None = None,
        token: str | None = None,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        auth: Any = None
        headers: dict[str, str] = {}
        if user and token:
            auth = httpx.BasicAuth(user, token)
        elif token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=self.base_url + "/",
            auth=auth,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpArtifactStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def relative_path(self, path: str) -> str:
        """Reduce an absolute URL under ``base_url`` to a store-relative path.

        Absolute URLs anywhere else raise ``ConfigError``.
        """
        if path == self.base_url or path.startswith(self.base_url + "/"):
            path = path[len(self.base_url):]
        elif "://" in path:
            raise ConfigError(f"{path} is not under the artifact store URL {self.base_url}")
        return path.strip("/")

    def _url(self, path: str) -> str:
        return quote(self.relative_path(path), safe="/")

    def _request(self, method: str, url: str, *, ok_404: bool = False, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(
                f"Request to artifact store failed: {exc}",
                method=method,
                url=f"{self.base_url}/{url}",
            ) from exc
        if ok_404 and response.status_code == 404:
            return response
        if not response.is_success:
            raise TransportError(
                "Artifact store returned an error",
                method=method,
                url=str(response.request.url),
                status_code=response.status_code,
                body=response.text,
            )
        logger.debug("%s %s -> %d", method, response.request.url, response.status_code)
        return response

    # ------------------------------------------------------------------
    # RemoteArtifactStore
    # ------------------------------------------------------------------

    def put(self, path: str, data: bytes, properties: dict[str, str] | None = None) -> None:
        """Upload ``data``; ``properties`` are attached as matrix parameters."""
        url = self._url(path)
        if properties:
            url += "".join(
                f";{_quote_property(k)}={_quote_property(v)}" for k, v in properties.items()
            )
        self._request("PUT", url, content=data, headers={"X-Checksum-Md5": md5_hex(data)})

    def exists(self, path: str) -> bool:
        response = self._request("HEAD", self._url(path), ok_404=True)
        return response.status_code != 404

    def get_property(self, path: str, key: str) -> str | None:
        """Return the first value of property ``key``, or ``None`` when absent."""
        url = f"api/storage/{self._url(path)}?properties={_quote_property(key)}"
        response = self._request("GET", url, ok_404=True)
        if response.status_code == 404:
            return None
        try:
            values = response.json().get("properties", {}).get(key)
        except ValueError as exc:
            raise TransportError(
                "Malformed property response",
                method="GET",
                url=str(response.request.url),
                status_code=response.status_code,
                body=response.text,
            ) from exc
        if not values:
            return None
        return values[0] if isinstance(values, list) else str(values)

    def set_property(self, path: str, key: str, value: str, *, recursive: bool = False) -> None:
        url = (
            f"api/storage/{self._url(path)}"
            f"?properties={_quote_property(key)}={_quote_property(value)}"
            f"&recursive={1 if recursive else 0}"
        )
        self._request("PUT", url)

    def get_json(self, path: str) -> bytes:
        return self._request("GET", self._url(path)).content
