import httpx
import pytest

from trafficsnap.core.errors import CatalogError, QuotaExceeded
from trafficsnap.services.youtube_service import YouTubeCatalogClient

VIDEOS = {
    "items": [
        {
            "id": "abc123",
            "snippet": {
                "title": "Some video",
                "channelId": "UC1",
                "channelTitle": "Channel one",
                "publishedAt": "2024-01-01T00:00:00Z",
                "thumbnails": {"default": {"url": "d.jpg"}, "high": {"url": "h.jpg"}},
            },
            "contentDetails": {"duration": "PT4M13S"},
            "statistics": {"viewCount": "1234"},
        }
    ]
}
CHANNELS = {"items": [{"id": "UC1", "snippet": {"thumbnails": {"medium": {"url": "avatar.jpg"}}}}]}


def _client(handler):
    return YouTubeCatalogClient(base_url="https://yt.test/v3", transport=httpx.MockTransport(handler))


def test_fetch_batch_joins_videos_and_channels():
    seen = []

    def handler(request):
        seen.append((request.url.path, dict(request.url.params)))
        if request.url.path.endswith("/videos"):
            return httpx.Response(200, json=VIDEOS)
        return httpx.Response(200, json=CHANNELS)

    with _client(handler) as client:
        items = client.fetch_batch(["abc123", "missing"], "key")

    assert [path for path, _ in seen] == ["/v3/videos", "/v3/channels"]
    assert seen[0][1]["id"] == "abc123,missing"
    assert seen[0][1]["key"] == "key"
    assert len(items) == 1
    item = items[0]
    assert item.title == "Some video"
    assert item.channel_id == "UC1"
    assert item.thumbnail == "h.jpg"
    assert item.channel_avatar == "avatar.jpg"
    assert item.duration == "PT4M13S"
    assert item.view_count == "1234"


def test_empty_batch_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert _client(handler).fetch_batch([], "key") == []


def test_more_than_fifty_ids_is_rejected():
    with pytest.raises(ValueError):
        _client(lambda r: httpx.Response(200, json={})).fetch_batch([str(i) for i in range(51)], "key")


def test_quota_error_is_raised_as_quota_exceeded():
    body = {"error": {"code": 403, "message": "quota", "errors": [{"reason": "quotaExceeded"}]}}
    client = _client(lambda r: httpx.Response(403, json=body))
    with pytest.raises(QuotaExceeded) as exc:
        client.fetch_batch(["abc123"], "key")
    assert exc.value.status_code == 403


def test_other_errors_are_catalog_errors():
    body = {"error": {"code": 400, "message": "API key not valid", "errors": [{"reason": "badRequest"}]}}
    client = _client(lambda r: httpx.Response(400, json=body))
    with pytest.raises(CatalogError) as exc:
        client.fetch_batch(["abc123"], "key")
    assert not isinstance(exc.value, QuotaExceeded)
    assert "API key not valid" in str(exc.value)


def test_transport_errors_are_catalog_errors():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(CatalogError):
        _client(handler).fetch_batch(["abc123"], "key")
