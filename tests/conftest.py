import errno
import json

import pytest
import requests
import responses

from tiktok_fetcher import net

ALICE_URL = "https://www.tiktok.com/@alice/video/7123456789012345678"


def connection_reset():
    """A requests ConnectionError wrapping a real ECONNRESET socket error."""
    return requests.exceptions.ConnectionError(
        ConnectionResetError(errno.ECONNRESET, "Connection reset by peer")
    )


def tiktok_page(item_struct=None, extra_head=""):
    """Render a minimal TikTok page embedding ``item_struct``."""
    script = ""
    if item_struct is not None:
        payload = {
            "__DEFAULT_SCOPE__": {
                "webapp.video-detail": {"itemInfo": {"itemStruct": item_struct}}
            }
        }
        script = (
            '<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__" type="application/json">'
            + json.dumps(payload)
            + "</script>"
        )
    return f"<html><head>{extra_head}</head><body>{script}</body></html>"


@pytest.fixture
def alice_item():
    return {
        "id": "7123456789012345678",
        "desc": "Morning run #fitness #running",
        "author": {"uniqueId": "alice", "avatarLarger": "https://cdn.example/alice.jpg"},
        "stats": {"diggCount": 120, "commentCount": 7, "collectCount": "3", "playCount": 4500},
        "textExtra": [{"hashtagName": "fitness"}, {"hashtagName": "running"}, {"userId": "1"}],
        "video": {
            "cover": "https://cdn.example/cover.jpg",
            "playAddr": "https://v16.example/play.mp4",
            "downloadAddr": "https://v16.example/download.mp4",
            "duration": 15,
        },
        "music": {"playUrl": "https://sf16.example/music.mp3"},
    }


@pytest.fixture
def session():
    s = net.new_session()
    yield s
    s.close()


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def client():
    from main import app

    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client
