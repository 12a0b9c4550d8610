"""Normalizes Graph drive and site responses into canonical listings.

Each projection below is total: it accepts any item dict the Graph API
returns (drive items, drives, shared ``remoteItem`` entries) and never raises
on missing fields.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs, parse_qsl, urlparse

from onedrive_connector.graph.models import (
    FIELD_DISPLAY_NAME,
    FIELD_DRIVE_ID,
    FIELD_DRIVE_TYPE,
    FIELD_FILE,
    FIELD_FOLDER,
    FIELD_ID,
    FIELD_LAST_MODIFIED,
    FIELD_MIME_TYPE,
    FIELD_NAME,
    FIELD_PARENT_REFERENCE,
    FIELD_REMOTE_ITEM,
    FIELD_SIZE,
    FIELD_THUMBNAILS,
    FIELD_URL,
    ICON_FILE,
    ICON_FOLDER,
    ODATA_NEXT_LINK,
    ODATA_SKIP_TOKEN,
    ODATA_VALUE,
    ROOT_DIRECTORY,
    Listing,
    ListingItem,
    remote_folder_item,
)

# Preferred thumbnail size first.
THUMBNAIL_SIZES = ("medium", "small", "large")


def get_item_sub_list(body: Any) -> list[dict[str, Any]]:
    """Return the item list of a drive-children, drives or sites response."""
    if not isinstance(body, dict):
        return []
    items = body.get(ODATA_VALUE) or []
    return [item for item in items if isinstance(item, dict)]


def _remote(item: dict[str, Any]) -> dict[str, Any]:
    remote = item.get(FIELD_REMOTE_ITEM)
    return remote if isinstance(remote, dict) else {}


def is_drive(item: dict[str, Any]) -> bool:
    return FIELD_DRIVE_TYPE in item


def is_folder(item: dict[str, Any]) -> bool:
    return FIELD_FOLDER in item or is_drive(item) or FIELD_FOLDER in _remote(item)


def get_item_name(item: dict[str, Any]) -> str:
    return str(item.get(FIELD_NAME) or item.get(FIELD_DISPLAY_NAME) or "")


def get_mime_type(item: dict[str, Any]) -> str | None:
    file_facet = item.get(FIELD_FILE) or _remote(item).get(FIELD_FILE)
    if isinstance(file_facet, dict):
        return file_facet.get(FIELD_MIME_TYPE)
    return None


def get_item_id(item: dict[str, Any]) -> str:
    return str(_remote(item).get(FIELD_ID) or item.get(FIELD_ID, ""))


def get_item_thumbnail_url(item: dict[str, Any]) -> str | None:
    """Return the first thumbnail set's URL, or None if Graph sent none."""
    thumbnails = item.get(FIELD_THUMBNAILS)
    if not isinstance(thumbnails, list) or not thumbnails:
        return None
    if not isinstance(thumbnails[0], dict):
        return None
    for size in THUMBNAIL_SIZES:
        variant = thumbnails[0].get(size)
        if isinstance(variant, dict) and variant.get(FIELD_URL):
            return str(variant[FIELD_URL])
    return None


def get_item_icon(item: dict[str, Any]) -> str:
    if is_folder(item):
        return ICON_FOLDER
    return get_item_thumbnail_url(item) or ICON_FILE


def get_item_request_path(item: dict[str, Any]) -> str:
    """Build the path a later list call must echo back to open this item.

    Drives are entered at their root; everything else is addressed by id
    inside the drive that owns it.
    """
    if is_drive(item):
        return f"{ROOT_DIRECTORY}?{FIELD_DRIVE_ID}={item.get(FIELD_ID, '')}"
    owner = _remote(item) or item
    parent_ref = owner.get(FIELD_PARENT_REFERENCE) or {}
    drive_id = parent_ref.get(FIELD_DRIVE_ID, "")
    return f"{get_item_id(item)}?{FIELD_DRIVE_ID}={drive_id}"


def get_item_modified_date(item: dict[str, Any]) -> str | None:
    return item.get(FIELD_LAST_MODIFIED)


def get_item_size(item: dict[str, Any]) -> int | None:
    size = item.get(FIELD_SIZE)
    return size if isinstance(size, int) else None


def get_next_page_cursor(body: Any) -> str | None:
    """Extract the ``$skiptoken`` value from ``@odata.nextLink``.

    Returns None when the response has no next link. If the link carries no
    skip token, the full link is returned so the page is never silently lost;
    ``cursor_query`` turns either form back into request parameters.
    """
    if not isinstance(body, dict) or not body.get(ODATA_NEXT_LINK):
        return None
    next_link = str(body[ODATA_NEXT_LINK])
    params = parse_qs(urlparse(next_link).query)
    for key, values in params.items():
        if key.lower() == ODATA_SKIP_TOKEN and values:
            return values[0]
    return next_link


def cursor_query(cursor: str) -> dict[str, str]:
    """Turn a page cursor back into the query parameters of the next request.

    A bare cursor is a skip token. A full next link, returned when Graph paged
    without one, contributes its own query parameters instead.
    """
    parsed = urlparse(cursor)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return dict(parse_qsl(parsed.query, keep_blank_values=True))
    return {ODATA_SKIP_TOKEN: cursor}


def adapt_item(item: dict[str, Any]) -> ListingItem:
    """Map one raw Graph item onto a ListingItem."""
    return ListingItem(
        id=get_item_id(item),
        name=get_item_name(item),
        is_folder=is_folder(item),
        icon=get_item_icon(item),
        mime_type=get_mime_type(item),
        thumbnail_url=get_item_thumbnail_url(item),
        request_path=get_item_request_path(item),
        modified_date=get_item_modified_date(item),
        size=get_item_size(item),
    )


def normalize(body: Any, username: str | None, include_remote_folder: bool = False) -> Listing:
    """Convert one Graph response body into a Listing.

    Args:
        body: Parsed JSON body of a drives, drive-children or site-drives response.
        username: Account identity to attach to the listing.
        include_remote_folder: Append the "Other Remote Drives" entry after
            the real items.

    Returns:
        Listing carrying the items and the continuation cursor, if any.
    """
    items = [adapt_item(item) for item in get_item_sub_list(body)]
    if include_remote_folder:
        items.append(remote_folder_item())
    return Listing(username=username, items=items, next_page_cursor=get_next_page_cursor(body))
