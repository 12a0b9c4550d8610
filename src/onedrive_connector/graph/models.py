"""Data models for Microsoft Graph drive items and canonical listings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_DISPLAY_NAME = "displayName"
FIELD_FOLDER = "folder"
FIELD_FILE = "file"
FIELD_MIME_TYPE = "mimeType"
FIELD_SIZE = "size"
FIELD_THUMBNAILS = "thumbnails"
FIELD_LAST_MODIFIED = "lastModifiedDateTime"
FIELD_PARENT_REFERENCE = "parentReference"
FIELD_DRIVE_ID = "driveId"
FIELD_DRIVE_TYPE = "driveType"
FIELD_REMOTE_ITEM = "remoteItem"
FIELD_URL = "url"
FIELD_MAIL = "mail"
FIELD_USER_PRINCIPAL_NAME = "userPrincipalName"

# OData response keys and query parameters
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"
ODATA_EXPAND = "$expand"
ODATA_SKIP_TOKEN = "$skiptoken"

# driveId value that selects the SharePoint site enumeration.
SITES_SENTINEL = "_listsites_"
ROOT_DIRECTORY = "root"

REMOTE_FOLDER_NAME = "Other Remote Drives"
ICON_FOLDER = "folder"
ICON_FILE = "file"


@dataclass(frozen=True)
class NavigationContext:
    """Where the caller is navigating to, plus the bearer token to use.

    Attributes:
        token: Opaque OAuth bearer token for the Graph API.
        drive_id: Drive to browse. None means the account root (list of drives);
            SITES_SENTINEL means the list of SharePoint sites.
        directory_id: Folder inside the drive. None or "root" means the drive root.
        cursor: Continuation token echoed back from a previous Listing.
    """

    token: str
    drive_id: str | None = None
    directory_id: str | None = None
    cursor: str | None = None


@dataclass(frozen=True)
class ListingItem:
    """One entry of a canonical directory listing."""

    id: str
    name: str
    is_folder: bool
    icon: str
    mime_type: str | None
    thumbnail_url: str | None
    request_path: str
    modified_date: str | None = None
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape consumed by upload clients."""
        return {
            "isFolder": self.is_folder,
            "icon": self.icon,
            "name": self.name,
            "mimeType": self.mime_type,
            "id": self.id,
            "thumbnail": self.thumbnail_url,
            "requestPath": self.request_path,
            "modifiedDate": self.modified_date,
            "size": self.size,
        }


@dataclass
class Listing:
    """A page of directory entries plus the account identity it belongs to."""

    username: str | None
    items: list[ListingItem] = field(default_factory=list)
    next_page_cursor: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "items": [item.to_dict() for item in self.items],
            "nextPageCursor": self.next_page_cursor,
        }


@dataclass(frozen=True)
class LogoutResult:
    """Outcome of a logout request."""

    revoked: bool
    manual_revoke_url: str

    def to_dict(self) -> dict[str, Any]:
        return {"revoked": self.revoked, "manual_revoke_url": self.manual_revoke_url}


def remote_folder_item() -> ListingItem:
    """Build the synthetic folder that leads into the SharePoint site list."""
    return ListingItem(
        id=ROOT_DIRECTORY,
        name=REMOTE_FOLDER_NAME,
        is_folder=True,
        icon=ICON_FOLDER,
        mime_type=None,
        thumbnail_url=None,
        request_path=f"{ROOT_DIRECTORY}?{FIELD_DRIVE_ID}={SITES_SENTINEL}",
    )
