"""Tests for link parsing and title enrichment (requests is mocked)."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from data_models import ItemKind
from queue_controller import InvalidReferenceError
from utils import (
    UnavailableVideoError,
    build_queue_item,
    enrich_video_title,
    extract_video_id,
    fallback_title,
    fetch_oembed_title,
    fetch_page_title,
    is_valid_youtube_url,
)

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def response(status=200, json_data=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.text = text
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
    else:
        resp.json.return_value = json_data
    return resp


class TestYoutubeLinks:
    @pytest.mark.parametrize(
        "url",
        [
            VIDEO_URL,
            "https://youtu.be/dQw4w9WgXcQ",
            "youtube.com/watch?v=dQw4w9WgXcQ&t=42",
            "https://m.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_valid_links(self, url):
        assert is_valid_youtube_url(url)
        assert extract_video_id(url) == "dQw4w9WgXcQ"

    @pytest.mark.parametrize(
        "url", ["https://example.com/video", "", None, "https://www.youtube.com/"]
    )
    def test_invalid_links(self, url):
        assert not is_valid_youtube_url(url)

    def test_fallback_title_is_video_id(self):
        assert fallback_title(VIDEO_URL) == "dQw4w9WgXcQ"
        assert fallback_title("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_fallback_title_placeholder(self):
        assert fallback_title("https://example.com/") == "Untitled video"


class TestFetchOembedTitle:
    def test_returns_title(self):
        with patch("utils.requests.get", return_value=response(json_data={"title": "Song"})) as get:
            assert fetch_oembed_title(VIDEO_URL, 3) == "Song"
        assert get.call_args.kwargs["timeout"] == 3
        assert get.call_args.kwargs["params"]["url"] == VIDEO_URL

    @pytest.mark.parametrize("status", [401, 404])
    def test_unembeddable_raises(self, status):
        with patch("utils.requests.get", return_value=response(status=status)):
            with pytest.raises(UnavailableVideoError, match="embedding is disabled"):
                fetch_oembed_title(VIDEO_URL, 3)

    def test_other_status_gives_none(self):
        with patch("utils.requests.get", return_value=response(status=429)):
            assert fetch_oembed_title(VIDEO_URL, 3) is None

    def test_network_error_gives_none(self):
        with patch("utils.requests.get", side_effect=requests.exceptions.Timeout("slow")):
            assert fetch_oembed_title(VIDEO_URL, 3) is None

    def test_malformed_json_gives_none(self):
        with patch("utils.requests.get", return_value=response(json_data=ValueError("bad"))):
            assert fetch_oembed_title(VIDEO_URL, 3) is None


class TestFetchPageTitle:
    def test_og_title(self):
        html = '<html><head><meta property="og:title" content="OG Song"></head></html>'
        with patch("utils.requests.get", return_value=response(text=html)):
            assert fetch_page_title(VIDEO_URL, 3) == "OG Song"

    def test_title_tag(self):
        html = "<html><head><title>Tag Song - YouTube</title></head></html>"
        with patch("utils.requests.get", return_value=response(text=html)):
            assert fetch_page_title(VIDEO_URL, 3) == "Tag Song"

    def test_generic_page_gives_none(self):
        html = "<html><head><title>YouTube</title></head></html>"
        with patch("utils.requests.get", return_value=response(text=html)):
            assert fetch_page_title(VIDEO_URL, 3) is None


class TestEnrichVideoTitle:
    def test_first_success_wins(self):
        second = MagicMock(return_value="second")
        result = enrich_video_title(VIDEO_URL, strategies=[lambda u, t: "first", second])
        assert result.title == "first"
        assert result.enriched
        second.assert_not_called()

    def test_falls_through_failures(self):
        def broken(url, timeout):
            raise RuntimeError("boom")

        result = enrich_video_title(VIDEO_URL, strategies=[broken, lambda u, t: None, lambda u, t: "third"])
        assert result.title == "third"

    def test_total_failure_is_deterministic_fallback(self):
        def broken(url, timeout):
            raise RuntimeError("boom")

        result = enrich_video_title(VIDEO_URL, strategies=[broken, broken])
        assert result.title == "dQw4w9WgXcQ"
        assert not result.enriched

    def test_unavailable_video_propagates(self):
        def unavailable(url, timeout):
            raise UnavailableVideoError("gone")

        with pytest.raises(UnavailableVideoError):
            enrich_video_title(VIDEO_URL, strategies=[unavailable, lambda u, t: "never"])

    def test_default_chain_with_network_down(self):
        with patch("utils.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
            result = enrich_video_title(VIDEO_URL, timeout=1)
        assert result.title == "dQw4w9WgXcQ"
        assert not result.enriched


class TestBuildQueueItem:
    def test_video_link(self):
        item, verified = build_queue_item(
            {"videoUrl": VIDEO_URL, "username": "Sam"},
            requested_by="192.168.1.50",
            strategies=[lambda u, t: "Song"],
        )
        assert verified
        assert item.kind is ItemKind.VIDEO_LINK
        assert item.external_id == "dQw4w9WgXcQ"
        assert item.source_url == VIDEO_URL
        assert item.title == "Song"
        assert item.username == "Sam"
        assert item.requested_by == "192.168.1.50"

    @pytest.mark.parametrize("data", [{}, {"videoUrl": ""}, {"videoUrl": "https://example.com/video"}])
    def test_invalid_video_reference(self, data):
        with pytest.raises(InvalidReferenceError, match="Invalid URL"):
            build_queue_item(data, requested_by="x", strategies=[])

    def test_library_track(self):
        item, verified = build_queue_item(
            {"kind": "library-track", "externalId": "abc123", "title": "Track", "artist": "Band"},
            requested_by="x",
        )
        assert verified
        assert item.kind is ItemKind.LIBRARY_TRACK
        assert item.cover_reference == "abc123"
        assert item.artist == "Band"
        assert item.source_url is None

    def test_library_track_defaults(self):
        item, verified = build_queue_item(
            {"kind": "library-track", "externalId": "abc123"}, requested_by="x"
        )
        assert not verified
        assert item.title == "Unknown track"
        assert item.artist == "Unknown"

    def test_library_track_needs_id(self):
        with pytest.raises(InvalidReferenceError):
            build_queue_item({"kind": "library-track", "title": "x"}, requested_by="x")

    def test_unknown_kind(self):
        with pytest.raises(InvalidReferenceError, match="Unsupported"):
            build_queue_item({"kind": "podcast", "videoUrl": VIDEO_URL}, requested_by="x")
