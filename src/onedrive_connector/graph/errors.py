"""Error taxonomy for Graph requests and the single classifier that produces it."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from onedrive_connector.graph.client import GraphResponse

DEFAULT_PROVIDER = "microsoft"


class ProviderError(Exception):
    """Base class for errors reported by the storage provider."""


class ProviderAuthError(ProviderError):
    """Raised when the provider rejects the bearer token (HTTP 401).

    The caller must send the user through authentication again; nothing in
    this package retries.
    """

    def __init__(self) -> None:
        super().__init__("invalid access token detected by Provider")
        self.is_auth_error = True


class ProviderApiError(ProviderError):
    """Raised when the provider returns any other non-2xx response."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(f"Provider API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def _error_message(body: object) -> str | None:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return None


def classify_error(
    transport_error: BaseException | None,
    response: GraphResponse | None,
    provider: str = DEFAULT_PROVIDER,
) -> BaseException:
    """Map a failed request onto the error taxonomy.

    Args:
        transport_error: Connection-level failure, if the request never got a response.
        response: The response received, if any.
        provider: Provider name used in the fallback message.

    Returns:
        ProviderAuthError for a 401, ProviderApiError for any other status,
        or the transport error unchanged when no response exists.

    Raises:
        ValueError: If called with neither a response nor a transport error.
    """
    if response is not None:
        if response.status_code == 401:
            return ProviderAuthError()
        fallback = f"request to {provider} returned {response.status_code}"
        message = _error_message(response.body) or fallback
        return ProviderApiError(message, response.status_code)

    if transport_error is None:
        raise ValueError("classify_error needs a response or a transport error")
    return transport_error
