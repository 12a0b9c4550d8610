"""Microsoft Graph API client authenticated with caller-supplied bearer tokens."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from http.client import HTTPResponse
from typing import TYPE_CHECKING, Any
from urllib import request as urllib_request
from urllib.error import HTTPError
from urllib.parse import urlencode, urlparse

if TYPE_CHECKING:
    from onedrive_connector.config import AppConfig

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_TIMEOUT = 30.0
DEFAULT_CHUNK_SIZE = 65536


class AuthStrippingRedirectHandler(urllib_request.HTTPRedirectHandler):
    """Follows redirects but never forwards the bearer token to another host.

    Graph answers content requests with a 302 to a pre-authenticated download
    URL on a different host; that host must not see the caller's token.
    """

    def redirect_request(self, req, fp, code, msg, headers, newurl):  # type: ignore[no-untyped-def]
        new_req = super().redirect_request(req, fp, code, msg, headers, newurl)
        if new_req is not None and _origin(req.full_url) != _origin(new_req.full_url):
            new_req.remove_header("Authorization")
            logger.debug("[redirect_request] dropped authorization on cross-host redirect")
        return new_req


def _origin(url: str) -> tuple[str | None, int | None]:
    parsed = urlparse(url)
    return (parsed.hostname, parsed.port)


@dataclass
class GraphResponse:
    """Status code and parsed JSON body of a completed Graph request."""

    status_code: int
    body: Any = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class GraphStream:
    """An open streaming response.

    For error statuses ``body`` holds the parsed error payload and
    ``iter_chunks()`` yields nothing.
    """

    status_code: int
    body: Any = None
    _response: HTTPResponse | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield raw byte chunks until the server closes the stream."""
        if self._response is None:
            return
        try:
            while True:
                chunk = self._response.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self._response.close()

    def close(self) -> None:
        if self._response is not None:
            self._response.close()


def _parse_json(raw: bytes) -> Any:
    """Parse a JSON body, tolerating empty or non-JSON payloads."""
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return {}


class GraphClient:
    """Thin request primitive for the Microsoft Graph API.

    Non-2xx responses are returned rather than raised so the caller can
    classify them. Connection failures (``URLError``, timeouts) propagate.
    """

    def __init__(
        self,
        base_url: str = GRAPH_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialise the client.

        Args:
            base_url: Graph API root, without a trailing slash.
            timeout: Socket timeout in seconds for every request.
            chunk_size: Bytes read per chunk when streaming content.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._opener = urllib_request.build_opener(AuthStrippingRedirectHandler())

    def build_url(self, path: str, query: dict[str, str] | None = None) -> str:
        """Join ``path`` onto the base URL and append the encoded query.

        OData parameter names keep their literal ``$`` prefix.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        if query:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{urlencode(query, safe='$')}"
        return url

    def _build_request(
        self, method: str, path: str, token: str, query: dict[str, str] | None
    ) -> urllib_request.Request:
        return urllib_request.Request(
            self.build_url(path, query),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            method=method,
        )

    def request(
        self,
        method: str,
        path: str,
        token: str,
        query: dict[str, str] | None = None,
    ) -> GraphResponse:
        """Perform an authenticated request and parse the JSON response.

        Args:
            method: HTTP method.
            path: URL path relative to the base URL.
            token: OAuth bearer token.
            query: Query parameters to append.

        Returns:
            GraphResponse with the status code and parsed body.
        """
        req = self._build_request(method, path, token, query)
        try:
            with self._opener.open(req, timeout=self._timeout) as resp:
                return GraphResponse(status_code=resp.status, body=_parse_json(resp.read()))
        except HTTPError as exc:
            body = _parse_json(exc.read())
            logger.debug("[request] graph returned error status; path:%s;status:%d", path, exc.code)
            return GraphResponse(status_code=exc.code, body=body)

    def get(
        self, path: str, token: str, query: dict[str, str] | None = None
    ) -> GraphResponse:
        """Shorthand for ``request("GET", ...)``."""
        return self.request("GET", path, token, query)

    def stream(
        self, path: str, token: str, query: dict[str, str] | None = None
    ) -> GraphStream:
        """Open a streaming GET request.

        Args:
            path: URL path relative to the base URL.
            token: OAuth bearer token.
            query: Query parameters to append.

        Returns:
            GraphStream positioned at the start of the response body.
        """
        req = self._build_request("GET", path, token, query)
        try:
            resp = self._opener.open(req, timeout=self._timeout)
        except HTTPError as exc:
            body = _parse_json(exc.read())
            return GraphStream(status_code=exc.code, body=body)
        return GraphStream(status_code=resp.status, _response=resp, chunk_size=self._chunk_size)


def graph_client_from_config(config: AppConfig) -> GraphClient:
    """Construct a GraphClient from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured GraphClient instance.
    """
    return GraphClient(
        base_url=config.graph_base_url,
        timeout=config.request_timeout,
        chunk_size=config.download_chunk_size,
    )
