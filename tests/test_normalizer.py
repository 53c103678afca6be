import pytest
import responses

from tiktok_fetcher.exceptions import InvalidUrlError
from tiktok_fetcher.models import ContentReference
from tiktok_fetcher.normalizer import UrlNormalizer, canonical_url, is_short_link


@pytest.fixture
def normalizer(session):
    return UrlNormalizer(session)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://www.tiktok.com/@user/video/1234567890123456", ("user", "1234567890123456", "video")),
        ("https://m.tiktok.com/@some.one_2/video/7123456789012345678?lang=en", ("some.one_2", "7123456789012345678", "video")),
        ("www.tiktok.com/@artist/photo/7300000000000000001", ("artist", "7300000000000000001", "photo")),
        ("@https://www.tiktok.com/@user/video/1234567890123456", ("user", "1234567890123456", "video")),
    ],
)
def test_direct_links_need_no_network(normalizer, mocked, url, expected):
    ref = normalizer.normalize(url)

    assert (ref.username, ref.content_id, ref.kind) == expected
    assert len(mocked.calls) == 0


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "https://example.com/watch/abc", "https://www.tiktok.com/@user/video/12345", None],
)
def test_inputs_without_content_id_are_invalid(normalizer, mocked, raw):
    with pytest.raises(InvalidUrlError):
        normalizer.normalize(raw)


def test_bare_digit_run_is_last_resort(normalizer):
    ref = normalizer.normalize("look at 7123456789012345678 please")

    assert ref == ContentReference("unknown", "7123456789012345678", "video")


def test_short_link_redirecting_to_direct_pattern(normalizer, mocked):
    mocked.add(
        responses.GET,
        "https://vm.tiktok.com/ZMabc123/",
        status=301,
        headers={"Location": "https://www.tiktok.com/@alice/video/7123456789012345678"},
    )
    mocked.add(responses.GET, "https://www.tiktok.com/@alice/video/7123456789012345678", body="<html></html>")

    ref = normalizer.normalize("https://vm.tiktok.com/ZMabc123/")

    assert (ref.username, ref.content_id, ref.kind) == ("alice", "7123456789012345678", "video")
    assert all("ssstik" not in call.request.url for call in mocked.calls)


def test_short_link_uses_canonical_link_of_landing_page(normalizer, mocked):
    mocked.add(
        responses.GET,
        "https://vt.tiktok.com/ZSxyz/",
        status=302,
        headers={"Location": "https://www.tiktok.com/"},
    )
    mocked.add(
        responses.GET,
        "https://www.tiktok.com/",
        body='<html><head><link rel="canonical" href="https://www.tiktok.com/@bob/video/7000000000000000001">'
        '<meta property="og:url" content="https://www.tiktok.com/@eve/video/7000000000000000002"></head></html>',
    )

    ref = normalizer.normalize("vt.tiktok.com/ZSxyz/")

    assert (ref.username, ref.content_id) == ("bob", "7000000000000000001")


def test_short_link_falls_back_to_og_url(normalizer, mocked):
    mocked.add(
        responses.GET,
        "https://vm.tiktok.com/ZMog/",
        body='<html><head><meta property="og:url" content="https://www.tiktok.com/@eve/photo/7000000000000000002"></head></html>',
    )

    ref = normalizer.normalize("https://vm.tiktok.com/ZMog/")

    assert (ref.username, ref.content_id, ref.kind) == ("eve", "7000000000000000002", "photo")


def test_short_link_falls_back_to_script_tokens(normalizer, mocked):
    mocked.add(
        responses.GET,
        "https://vm.tiktok.com/ZMscript/",
        body='<html><script>window.x = {"itemId":"7111111111111111111","uniqueId":"carol"};</script></html>',
    )

    ref = normalizer.normalize("https://vm.tiktok.com/ZMscript/")

    assert (ref.username, ref.content_id) == ("carol", "7111111111111111111")


def test_unresolvable_short_link_is_invalid(normalizer, mocked):
    mocked.add(responses.GET, "https://vm.tiktok.com/ZMdead/", status=404)

    with pytest.raises(InvalidUrlError):
        normalizer.normalize("https://vm.tiktok.com/ZMdead/")


def test_canonical_url_keeps_username_and_id(normalizer):
    ref = normalizer.normalize("https://www.tiktok.com/@user/video/1234567890123456?is_from_webapp=1")

    url = canonical_url(ref)

    assert url == "https://www.tiktok.com/@user/video/1234567890123456"
    assert normalizer.normalize(url) == ref


def test_short_domains():
    assert is_short_link("https://vm.tiktok.com/abc/")
    assert is_short_link("vt.tiktok.com/abc")
    assert not is_short_link("https://www.tiktok.com/@a/video/1")
