"""Unit tests for orchestration/provider.py: OneDriveProvider behaviour."""

import threading
from unittest.mock import MagicMock
from urllib.error import URLError

import pytest

from onedrive_connector.config import AppConfig
from onedrive_connector.graph.client import GraphResponse, GraphStream
from onedrive_connector.graph.errors import ProviderApiError, ProviderAuthError
from onedrive_connector.graph.models import SITES_SENTINEL, NavigationContext
from onedrive_connector.orchestration.provider import OneDriveProvider, provider_from_config

ME = GraphResponse(200, {"mail": "a@b.com", "userPrincipalName": "upn@b.com"})

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_provider(responses: dict) -> tuple[OneDriveProvider, MagicMock]:  # type: ignore[type-arg]
    """Return (provider, mock_graph_client) answering GETs from ``responses`` by path.

    A response value may be a GraphResponse or an exception to raise.
    """
    mock_graph = MagicMock()

    def fake_get(path, token, query=None):  # type: ignore[no-untyped-def]
        result = responses[path]
        if isinstance(result, BaseException):
            raise result
        return result

    mock_graph.get.side_effect = fake_get
    return OneDriveProvider(graph_client=mock_graph, max_site_workers=4), mock_graph


def _drive(id: str, name: str) -> dict:  # type: ignore[type-arg]
    return {"id": id, "name": name, "driveType": "documentLibrary"}


def _site(id: str, name: str) -> dict:  # type: ignore[type-arg]
    return {"id": id, "displayName": name, "name": name.lower()}


# ---------------------------------------------------------------------------
# list_request tests
# ---------------------------------------------------------------------------


class TestListRequest:
    def test_account_root_lists_drives(self) -> None:
        path, query = OneDriveProvider.list_request(NavigationContext(token="t"))
        assert path == "/me/drives"
        assert query == {}

    def test_sentinel_lists_sites(self) -> None:
        context = NavigationContext(token="t", drive_id=SITES_SENTINEL)
        path, query = OneDriveProvider.list_request(context)
        assert path == "/sites"
        assert query == {"search": ""}

    def test_drive_root_children_with_cursor(self) -> None:
        context = NavigationContext(token="t", drive_id="d1", directory_id="root", cursor="tok123")
        path, query = OneDriveProvider.list_request(context)
        assert path == "/drives/d1/root/children"
        assert query == {"$expand": "thumbnails", "$skiptoken": "tok123"}

    def test_missing_directory_means_drive_root(self) -> None:
        path, _ = OneDriveProvider.list_request(NavigationContext(token="t", drive_id="d1"))
        assert path == "/drives/d1/root/children"

    def test_folder_children(self) -> None:
        context = NavigationContext(token="t", drive_id="d1", directory_id="folder-7")
        path, query = OneDriveProvider.list_request(context)
        assert path == "/drives/d1/items/folder-7/children"
        assert query == {"$expand": "thumbnails"}

    def test_cursor_forwarded_for_site_listing(self) -> None:
        context = NavigationContext(token="t", drive_id=SITES_SENTINEL, cursor="opaque==")
        _, query = OneDriveProvider.list_request(context)
        assert query["$skiptoken"] == "opaque=="

    def test_full_link_cursor_reissues_link_parameters(self) -> None:
        cursor = "https://graph.microsoft.com/v1.0/sites?search=&$skip=200"
        context = NavigationContext(token="t", drive_id=SITES_SENTINEL, cursor=cursor)
        path, query = OneDriveProvider.list_request(context)
        assert path == "/sites"
        assert query == {"search": "", "$skip": "200"}


# ---------------------------------------------------------------------------
# listing() tests
# ---------------------------------------------------------------------------


class TestListing:
    def test_account_root_appends_remote_folder(self) -> None:
        provider, _ = _make_provider(
            {
                "/me/drives": GraphResponse(
                    200, {"value": [_drive("d1", "Personal"), _drive("d2", "Shared")]}
                ),
                "/me": ME,
            }
        )

        listing = provider.listing(NavigationContext(token="t"))

        assert listing.username == "a@b.com"
        assert [i.name for i in listing.items] == ["Personal", "Shared", "Other Remote Drives"]
        assert listing.items[-1].request_path == "root?driveId=_listsites_"
        assert listing.next_page_cursor is None

    def test_folder_listing_has_no_remote_folder(self) -> None:
        provider, mock_graph = _make_provider(
            {
                "/drives/d1/root/children": GraphResponse(
                    200,
                    {
                        "value": [{"id": "f1", "name": "a.txt", "size": 3, "file": {}}],
                        "@odata.nextLink": "https://graph/drives/d1/root/children?$skiptoken=p2",
                    },
                ),
                "/me": ME,
            }
        )
        context = NavigationContext(token="t", drive_id="d1", directory_id="root", cursor="tok123")

        listing = provider.listing(context)

        assert [i.id for i in listing.items] == ["f1"]
        assert listing.next_page_cursor == "p2"
        mock_graph.get.assert_any_call(
            "/drives/d1/root/children", "t", {"$expand": "thumbnails", "$skiptoken": "tok123"}
        )

    def test_username_falls_back_to_user_principal_name(self) -> None:
        provider, _ = _make_provider(
            {
                "/me/drives": GraphResponse(200, {"value": []}),
                "/me": GraphResponse(200, {"mail": None, "userPrincipalName": "upn@b.com"}),
            }
        )
        assert provider.listing(NavigationContext(token="t")).username == "upn@b.com"

    def test_primary_failure_skips_identity_lookup(self) -> None:
        provider, mock_graph = _make_provider(
            {"/me/drives": GraphResponse(500, {"error": {"message": "boom"}}), "/me": ME}
        )

        with pytest.raises(ProviderApiError) as exc_info:
            provider.listing(NavigationContext(token="t"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "boom"
        assert mock_graph.get.call_count == 1

    def test_identity_failure_fails_listing(self) -> None:
        provider, _ = _make_provider(
            {"/me/drives": GraphResponse(200, {"value": []}), "/me": GraphResponse(401, {})}
        )
        with pytest.raises(ProviderAuthError):
            provider.listing(NavigationContext(token="t"))

    def test_401_with_error_body_is_auth_error(self) -> None:
        provider, _ = _make_provider(
            {"/me/drives": GraphResponse(401, {"error": {"message": "expired"}})}
        )
        with pytest.raises(ProviderAuthError):
            provider.listing(NavigationContext(token="t"))

    def test_transport_failure_passes_through(self) -> None:
        original = URLError("connection refused")
        provider, _ = _make_provider({"/me/drives": original})

        with pytest.raises(URLError) as exc_info:
            provider.listing(NavigationContext(token="t"))

        assert exc_info.value is original


# ---------------------------------------------------------------------------
# Site fan-out tests
# ---------------------------------------------------------------------------


class TestAggregateSites:
    def test_merges_site_drives_in_site_order(self) -> None:
        provider, _ = _make_provider(
            {
                "/sites": GraphResponse(
                    200,
                    {
                        "value": [_site("s1", "Marketing"), _site("s2", "Finance")],
                        "@odata.nextLink": "https://graph/sites?search=&$skiptoken=sites-p2",
                    },
                ),
                "/me": ME,
                "/sites/s1/drives": GraphResponse(
                    200, {"value": [_drive("m1", "Documents"), _drive("m2", "Assets")]}
                ),
                "/sites/s2/drives": GraphResponse(
                    200,
                    {
                        "value": [_drive("f1", "Documents")],
                        "@odata.nextLink": "https://graph/sites/s2/drives?$skiptoken=ignored",
                    },
                ),
            }
        )

        listing = provider.listing(NavigationContext(token="t", drive_id=SITES_SENTINEL))

        assert listing.username == "a@b.com"
        assert [i.name for i in listing.items] == [
            "Marketing Documents",
            "Marketing Assets",
            "Finance Documents",
        ]
        assert [i.request_path for i in listing.items] == [
            "root?driveId=m1",
            "root?driveId=m2",
            "root?driveId=f1",
        ]
        assert listing.next_page_cursor == "sites-p2"

    def test_order_follows_sites_not_completion(self) -> None:
        first_may_finish = threading.Event()
        mock_graph = MagicMock()

        def fake_get(path, token, query=None):  # type: ignore[no-untyped-def]
            if path == "/sites/slow/drives":
                first_may_finish.wait(timeout=5)
                return GraphResponse(200, {"value": [_drive("a", "A")]})
            first_may_finish.set()
            return GraphResponse(200, {"value": [_drive("b", "B")]})

        mock_graph.get.side_effect = fake_get
        provider = OneDriveProvider(graph_client=mock_graph, max_site_workers=2)
        body = {"value": [_site("slow", "One"), _site("fast", "Two")]}

        listing = provider.aggregate_sites(body, "a@b.com", "t")

        assert [i.name for i in listing.items] == ["One A", "Two B"]

    def test_one_failing_site_fails_whole_aggregate(self) -> None:
        provider, _ = _make_provider(
            {
                "/sites/s1/drives": GraphResponse(403, {"error": {"message": "Access denied"}}),
                "/sites/s2/drives": GraphResponse(200, {"value": [_drive("f1", "Documents")]}),
            }
        )
        body = {"value": [_site("s1", "Marketing"), _site("s2", "Finance")]}

        with pytest.raises(ProviderApiError) as exc_info:
            provider.aggregate_sites(body, "a@b.com", "t")

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Access denied"

    def test_site_auth_failure_is_auth_error(self) -> None:
        provider, _ = _make_provider({"/sites/s1/drives": GraphResponse(401, {})})
        with pytest.raises(ProviderAuthError):
            provider.aggregate_sites({"value": [_site("s1", "Marketing")]}, None, "t")

    def test_no_sites_returns_empty_listing(self) -> None:
        provider, mock_graph = _make_provider({})
        listing = provider.aggregate_sites({"value": []}, "a@b.com", "t")

        assert listing.items == []
        assert listing.next_page_cursor is None
        mock_graph.get.assert_not_called()


# ---------------------------------------------------------------------------
# size / download / logout / thumbnail tests
# ---------------------------------------------------------------------------


class TestSize:
    def test_drive_relative_lookup(self) -> None:
        provider, _ = _make_provider({"/drives/d1/items/f1": GraphResponse(200, {"size": 2048})})
        assert provider.size("f1", NavigationContext(token="t", drive_id="d1")) == 2048

    def test_default_drive_lookup(self) -> None:
        provider, _ = _make_provider({"/me/drive/items/f1": GraphResponse(200, {"size": 7})})
        assert provider.size("f1", NavigationContext(token="t")) == 7

    def test_error_is_classified(self) -> None:
        provider, _ = _make_provider({"/me/drive/items/f1": GraphResponse(404, {})})
        with pytest.raises(ProviderApiError, match="request to microsoft returned 404"):
            provider.size("f1", NavigationContext(token="t"))

    def test_missing_size_field_is_api_error(self) -> None:
        provider, _ = _make_provider({"/me/drive/items/f1": GraphResponse(200, {"id": "f1"})})
        with pytest.raises(ProviderApiError, match="no size field") as exc_info:
            provider.size("f1", NavigationContext(token="t"))
        assert exc_info.value.status_code == 502


class TestDownload:
    def test_yields_chunks_in_order(self) -> None:
        mock_graph = MagicMock()
        stream = MagicMock(spec=GraphStream)
        stream.status_code = 200
        stream.iter_chunks.return_value = iter([b"abc", b"def"])
        mock_graph.stream.return_value = stream
        provider = OneDriveProvider(graph_client=mock_graph)

        chunks = provider.download("f1", NavigationContext(token="t", drive_id="d1"))

        assert list(chunks) == [b"abc", b"def"]
        mock_graph.stream.assert_called_once_with("/drives/d1/items/f1/content", "t")

    def test_error_status_raises_before_any_data(self) -> None:
        mock_graph = MagicMock()
        mock_graph.stream.return_value = GraphStream(
            status_code=404, body={"error": {"message": "Item not found"}}
        )
        provider = OneDriveProvider(graph_client=mock_graph)

        with pytest.raises(ProviderApiError, match="Item not found"):
            provider.download("f1", NavigationContext(token="t"))

        mock_graph.stream.assert_called_once_with("/me/drive/items/f1/content", "t")

    def test_auth_error_on_401(self) -> None:
        mock_graph = MagicMock()
        mock_graph.stream.return_value = GraphStream(status_code=401, body={})
        provider = OneDriveProvider(graph_client=mock_graph)

        with pytest.raises(ProviderAuthError):
            provider.download("f1", NavigationContext(token="t"))

    def test_mid_stream_failure_propagates(self) -> None:
        def broken_chunks():  # type: ignore[no-untyped-def]
            yield b"abc"
            raise ConnectionResetError("peer reset")

        mock_graph = MagicMock()
        stream = MagicMock(spec=GraphStream)
        stream.status_code = 200
        stream.iter_chunks.return_value = broken_chunks()
        mock_graph.stream.return_value = stream
        provider = OneDriveProvider(graph_client=mock_graph)

        chunks = provider.download("f1", NavigationContext(token="t"))

        assert next(chunks) == b"abc"
        with pytest.raises(ConnectionResetError):
            next(chunks)


class TestLogoutAndThumbnail:
    def test_logout_reports_manual_revocation(self) -> None:
        provider = OneDriveProvider(graph_client=MagicMock())
        result = provider.logout()
        assert result.revoked is False
        assert result.manual_revoke_url == "https://account.live.com/consent/Manage"

    def test_thumbnail_not_implemented(self) -> None:
        provider = OneDriveProvider(graph_client=MagicMock())
        with pytest.raises(NotImplementedError, match="not implemented"):
            provider.thumbnail("f1", NavigationContext(token="t"))


# ---------------------------------------------------------------------------
# provider_from_config tests
# ---------------------------------------------------------------------------


class TestProviderFromConfig:
    def test_wires_config_values(self) -> None:
        config = AppConfig(manual_revoke_url="https://revoke.example.test")
        provider = provider_from_config(config)
        assert isinstance(provider, OneDriveProvider)
        assert provider.logout().manual_revoke_url == "https://revoke.example.test"
