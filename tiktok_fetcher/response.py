"""Maps an ExtractionResult onto the JSON contract returned to clients."""

from urllib.parse import quote

from .models import ProxyRoute

PLACEHOLDER_THUMBNAIL = "https://placehold.co/600x800/fe2c55/ffffff?text=TikTok+Content"


def generated_avatar(username):
    return f"https://ui-avatars.com/api/?name={quote(username or 'TikTok')}&background=random&size=128"


def sanitize_filename(filename):
    """Remove invalid characters from filename"""
    invalid_chars = '<>:"/\\|?*\r\n'
    for char in invalid_chars:
        filename = filename.replace(char, "_")
    return filename[:100] or "download"


def content_disposition(filename):
    return f'attachment; filename="{sanitize_filename(filename)}"'


def build_payload(result, filename_prefix="tiktok"):
    """Return the response body for a successful lookup.

    Missing optional data is filled with defaults so every key of the
    contract is present even for partial extractions.
    """
    ref = result.reference
    username = result.profile.username or (ref.username if ref else "") or "N/A"
    stats = result.stats

    payload = {
        "thumbnail": result.thumbnail or PLACEHOLDER_THUMBNAIL,
        "title": result.title or f"Video by @{username}",
        "hashtags": list(result.hashtags),
        "duration": result.duration or 0,
        "profile": {
            "username": username,
            "avatar": result.profile.avatar or generated_avatar(username),
        },
        "stats": {
            "likes": stats.likes if stats else 0,
            "comments": stats.comments if stats else 0,
            "bookmarks": stats.bookmarks if stats else 0,
            "views": stats.views if stats else 0,
        },
        "downloadOptions": _download_options(result, username, filename_prefix),
    }
    if result.alternate_thumbnails:
        payload["alternateThumbnails"] = list(result.alternate_thumbnails)
    return payload


def _download_options(result, username, filename_prefix):
    ref = result.reference
    options = {}
    if ref and ref.content_id:
        options["proxyUrl"] = ProxyRoute(
            ref.content_id,
            f"{filename_prefix}_HD.mp4",
            username=username,
        ).to_path()
        options["altProxyUrl"] = ProxyRoute(
            ref.content_id,
            f"{filename_prefix}_SD.mp4",
            username=username,
            provider_hint="alt1",
            watermark=True,
        ).to_path()

    refs = result.download_refs
    if refs.audio:
        options["audioUrl"] = refs.audio
    if refs.primary:
        options["videoUrl"] = refs.primary
    if refs.secondary:
        options["hdVideoUrl"] = refs.secondary
    return options
