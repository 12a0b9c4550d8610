"""OneDrive provider: listing orchestration, site fan-out and file access."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import TYPE_CHECKING, Any, NoReturn

from onedrive_connector.config import DEFAULT_MANUAL_REVOKE_URL
from onedrive_connector.graph.client import GraphClient, GraphResponse, graph_client_from_config
from onedrive_connector.graph.errors import DEFAULT_PROVIDER, ProviderApiError, classify_error
from onedrive_connector.graph.models import (
    FIELD_DISPLAY_NAME,
    FIELD_ID,
    FIELD_MAIL,
    FIELD_NAME,
    FIELD_SIZE,
    FIELD_USER_PRINCIPAL_NAME,
    ODATA_EXPAND,
    ROOT_DIRECTORY,
    SITES_SENTINEL,
    Listing,
    ListingItem,
    LogoutResult,
    NavigationContext,
)
from onedrive_connector.graph.normalizer import (
    cursor_query,
    get_item_sub_list,
    get_next_page_cursor,
    normalize,
)

if TYPE_CHECKING:
    from onedrive_connector.config import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_SITE_WORKERS = 8


class OneDriveProvider:
    """Browses, sizes and downloads files from OneDrive and SharePoint drives."""

    auth_provider = DEFAULT_PROVIDER

    def __init__(
        self,
        graph_client: GraphClient,
        max_site_workers: int = DEFAULT_MAX_SITE_WORKERS,
        manual_revoke_url: str = DEFAULT_MANUAL_REVOKE_URL,
    ) -> None:
        """Initialise the provider.

        Args:
            graph_client: Request primitive for the Graph API.
            max_site_workers: Upper bound on concurrent per-site drive lookups.
            manual_revoke_url: Page where users revoke the app's access by hand.
        """
        self._graph = graph_client
        self._max_site_workers = max(1, max_site_workers)
        self._manual_revoke_url = manual_revoke_url

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _get(
        self,
        path: str,
        token: str,
        query: dict[str, str] | None,
        error_tag: str,
    ) -> Any:
        """GET ``path`` and return the parsed body, raising the classified error on failure."""
        try:
            response = self._graph.get(path, token, query)
        except OSError as exc:
            logger.error("[%s] transport failure; path:%s", error_tag, path, exc_info=True)
            raise classify_error(exc, None, self.auth_provider)
        if response.status_code != 200:
            raise self._classified(response, error_tag, path)
        return response.body

    def _classified(self, response: GraphResponse, error_tag: str, path: str) -> BaseException:
        err = classify_error(None, response, self.auth_provider)
        logger.error("[%s] %s; path:%s;status:%d", error_tag, err, path, response.status_code)
        return err

    def _user_info(self, token: str) -> str | None:
        """Resolve the display identity of the token's account."""
        body = self._get("/me", token, None, "provider.onedrive.user.error")
        return body.get(FIELD_MAIL) or body.get(FIELD_USER_PRINCIPAL_NAME)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    @staticmethod
    def list_request(context: NavigationContext) -> tuple[str, dict[str, str]]:
        """Choose the Graph path and query for a navigation context.

        Returns:
            Tuple of (path, query).
        """
        query: dict[str, str] = {}
        if not context.drive_id:
            path = "/me/drives"
        elif context.drive_id == SITES_SENTINEL:
            path = "/sites"
            query["search"] = ""
        else:
            path = f"/drives/{context.drive_id}/"
            if context.directory_id and context.directory_id != ROOT_DIRECTORY:
                path += f"items/{context.directory_id}"
            else:
                path += ROOT_DIRECTORY
            path += "/children"
            query[ODATA_EXPAND] = "thumbnails"

        if context.cursor:
            query.update(cursor_query(context.cursor))
        return path, query

    def listing(self, context: NavigationContext) -> Listing:
        """List the folder, drives or sites addressed by ``context``.

        Args:
            context: Navigation state and bearer token.

        Returns:
            The merged Listing, including the account username.

        Raises:
            ProviderAuthError: If any request returns 401.
            ProviderApiError: If any request returns another non-200 status.
            OSError: On connection-level failures.
        """
        path, query = self.list_request(context)
        logger.info("[listing] listing requested; path:%s;paged:%s", path, bool(context.cursor))

        body = self._get(path, context.token, query, "provider.onedrive.list.error")
        username = self._user_info(context.token)

        if context.drive_id == SITES_SENTINEL:
            return self.aggregate_sites(body, username, context.token)
        return normalize(body, username, include_remote_folder=not context.drive_id)

    def _site_drives(self, site: dict[str, Any], token: str) -> list[ListingItem]:
        """Fetch one site's drives and prefix their names with the site name."""
        site_name = site.get(FIELD_DISPLAY_NAME) or site.get(FIELD_NAME) or ""
        body = self._get(
            f"/sites/{site.get(FIELD_ID, '')}/drives", token, None, "provider.onedrive.list.error"
        )
        drives = normalize(body, None).items
        return [replace(drive, name=f"{site_name} {drive.name}") for drive in drives]

    def aggregate_sites(self, sites_body: Any, username: str | None, token: str) -> Listing:
        """Merge the drives of every site in a sites response into one Listing.

        Sub-requests run concurrently. Items are laid out in site order
        regardless of which request finishes first. The first failure aborts
        the whole aggregate; requests still in flight are abandoned.

        Args:
            sites_body: Parsed body of the ``/sites?search=`` response.
            username: Account identity to attach to the listing.
            token: OAuth bearer token.

        Returns:
            Flat Listing of all site drives, paged by the sites response cursor.
        """
        sites = get_item_sub_list(sites_body)
        next_page_cursor = get_next_page_cursor(sites_body)
        if not sites:
            return Listing(username=username, items=[], next_page_cursor=next_page_cursor)

        slots: list[list[ListingItem]] = [[] for _ in sites]
        executor = ThreadPoolExecutor(max_workers=min(self._max_site_workers, len(sites)))
        try:
            futures = {
                executor.submit(self._site_drives, site, token): index
                for index, site in enumerate(sites)
            }
            for future in as_completed(futures):
                slots[futures[future]] = future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        items = [item for slot in slots for item in slot]
        logger.info(
            "[aggregate_sites] merged site drives; site_count:%d;drive_count:%d",
            len(sites),
            len(items),
        )
        return Listing(username=username, items=items, next_page_cursor=next_page_cursor)

    # ------------------------------------------------------------------
    # Single-item operations
    # ------------------------------------------------------------------

    @staticmethod
    def _root_path(context: NavigationContext) -> str:
        return f"/drives/{context.drive_id}" if context.drive_id else "/me/drive"

    def size(self, item_id: str, context: NavigationContext) -> int:
        """Return the byte size Graph reports for an item."""
        body = self._get(
            f"{self._root_path(context)}/items/{item_id}",
            context.token,
            None,
            "provider.onedrive.size.error",
        )
        size = body.get(FIELD_SIZE) if isinstance(body, dict) else None
        if not isinstance(size, int):
            logger.error("[size] item metadata has no size; item_id:%s", item_id)
            raise ProviderApiError(f"item {item_id} metadata has no {FIELD_SIZE} field", 502)
        return size

    def download(self, item_id: str, context: NavigationContext) -> Iterator[bytes]:
        """Open an item's content and return an iterator over its bytes.

        The request is issued immediately so that a failing status surfaces
        before any data is consumed. The returned iterator can be consumed once.

        Raises:
            ProviderAuthError: If Graph returns 401.
            ProviderApiError: If Graph returns any other non-200 status.
            OSError: If the connection cannot be opened.
        """
        path = f"{self._root_path(context)}/items/{item_id}/content"
        try:
            stream = self._graph.stream(path, context.token)
        except OSError as exc:
            logger.error("[provider.onedrive.download.error] transport failure; path:%s", path)
            raise classify_error(exc, None, self.auth_provider)
        if stream.status_code != 200:
            stream.close()
            response = GraphResponse(status_code=stream.status_code, body=stream.body)
            raise self._classified(response, "provider.onedrive.download.error", path)
        return self._forward_chunks(stream.iter_chunks(), path)

    @staticmethod
    def _forward_chunks(chunks: Iterator[bytes], path: str) -> Iterator[bytes]:
        try:
            yield from chunks
        except OSError:
            logger.error(
                "[provider.onedrive.download.error] stream interrupted; path:%s",
                path,
                exc_info=True,
            )
            raise

    def thumbnail(self, *args: Any, **kwargs: Any) -> NoReturn:
        """Not supported; listings carry a Graph-hosted thumbnail URL instead."""
        err = NotImplementedError("call to thumbnail is not implemented")
        logger.error("[provider.onedrive.thumbnail.error] %s", err)
        raise err

    def logout(self) -> LogoutResult:
        """Report that tokens cannot be revoked through the Graph API."""
        return LogoutResult(revoked=False, manual_revoke_url=self._manual_revoke_url)


def provider_from_config(config: AppConfig) -> OneDriveProvider:
    """Construct a OneDriveProvider from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured OneDriveProvider instance.
    """
    return OneDriveProvider(
        graph_client=graph_client_from_config(config),
        max_site_workers=config.max_site_workers,
        manual_revoke_url=config.manual_revoke_url,
    )
