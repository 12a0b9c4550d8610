"""HTTP trigger blueprint: list, size, download and logout endpoints."""

import json
import logging

import azure.functions as func

from onedrive_connector import __version__
from onedrive_connector.config import load_config
from onedrive_connector.graph.errors import ProviderApiError, ProviderAuthError
from onedrive_connector.graph.models import NavigationContext
from onedrive_connector.orchestration.provider import provider_from_config

logger = logging.getLogger(__name__)

bp = func.Blueprint()

BEARER_PREFIX = "bearer "


def _json_response(payload: dict, status_code: int = 200) -> func.HttpResponse:  # type: ignore[type-arg]
    return func.HttpResponse(json.dumps(payload), status_code=status_code, mimetype="application/json")


def _bearer_token(req: func.HttpRequest) -> str | None:
    header = req.headers.get("Authorization") or ""
    if header.lower().startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX) :].strip() or None
    return None


def _context(req: func.HttpRequest, token: str) -> NavigationContext:
    return NavigationContext(
        token=token,
        drive_id=req.params.get("driveId") or None,
        directory_id=req.route_params.get("directory") or None,
        cursor=req.params.get("cursor") or None,
    )


def error_response(err: Exception) -> func.HttpResponse:
    """Translate a provider error into the response the upload client expects.

    Upstream 5xx becomes 502, 429 is passed through, and any other 4xx
    becomes 424 so clients can tell provider failures from their own.
    """
    if isinstance(err, ProviderAuthError):
        return _json_response({"message": str(err), "isAuthError": True}, 401)
    if isinstance(err, ProviderApiError):
        if err.status_code >= 500:
            return _json_response({"message": err.message}, 502)
        if err.status_code == 429:
            return _json_response({"message": err.message}, 429)
        if err.status_code >= 400:
            return _json_response({"message": err.message}, 424)
    return _json_response({"status": "error", "message": "Internal server error"}, 500)


def _unauthorized() -> func.HttpResponse:
    return _json_response({"message": "missing bearer token", "isAuthError": True}, 401)


@bp.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint. Returns service status and version."""
    logger.info("[health_check] health check requested")
    return _json_response({"status": "ok", "version": __version__})


@bp.route(route="list/{directory?}", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def list_directory(req: func.HttpRequest) -> func.HttpResponse:
    """List drives, sites or a folder, depending on ``driveId`` and the route."""
    token = _bearer_token(req)
    if token is None:
        return _unauthorized()

    try:
        provider = provider_from_config(load_config())
        listing = provider.listing(_context(req, token))
        logger.info("[list_directory] listing complete; item_count:%d", len(listing.items))
        return _json_response(listing.to_dict())

    except Exception as err:
        logger.error("[list_directory] listing failed", exc_info=True)
        return error_response(err)


@bp.route(route="size/{item_id}", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def item_size(req: func.HttpRequest) -> func.HttpResponse:
    """Return the byte size of one item."""
    token = _bearer_token(req)
    if token is None:
        return _unauthorized()

    try:
        provider = provider_from_config(load_config())
        size = provider.size(req.route_params["item_id"], _context(req, token))
        return _json_response({"size": size})

    except Exception as err:
        logger.error("[item_size] size lookup failed", exc_info=True)
        return error_response(err)


@bp.route(route="get/{item_id}", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def download_item(req: func.HttpRequest) -> func.HttpResponse:
    """Download one item's content.

    The Functions HTTP binding needs the whole body up front, so the chunks
    are collected before responding.
    """
    token = _bearer_token(req)
    if token is None:
        return _unauthorized()

    item_id = req.route_params["item_id"]
    try:
        provider = provider_from_config(load_config())
        content = b"".join(provider.download(item_id, _context(req, token)))
        logger.info("[download_item] download complete; item_id:%s;bytes:%d", item_id, len(content))
        return func.HttpResponse(content, status_code=200, mimetype="application/octet-stream")

    except Exception as err:
        logger.error("[download_item] download failed; item_id:%s", item_id, exc_info=True)
        return error_response(err)


@bp.route(route="thumbnail/{item_id}", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def item_thumbnail(req: func.HttpRequest) -> func.HttpResponse:
    """Thumbnails are served from the URLs embedded in listings."""
    try:
        provider_from_config(load_config()).thumbnail(req.route_params.get("item_id"))
    except NotImplementedError as err:
        return _json_response({"message": str(err)}, 501)


@bp.route(route="logout", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def logout(req: func.HttpRequest) -> func.HttpResponse:
    """Report that access must be revoked manually."""
    result = provider_from_config(load_config()).logout()
    return _json_response({"ok": True, **result.to_dict()})
