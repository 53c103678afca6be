import mimetypes

from flask import Flask, request, jsonify, Response, stream_with_context
from flask_cors import CORS

from tiktok_fetcher import net
from tiktok_fetcher.config import config, timeouts
from tiktok_fetcher.exceptions import FetcherError, InvalidUrlError, UpstreamError
from tiktok_fetcher.logging_utils import configure_logging, new_request_id, request_logger
from tiktok_fetcher.models import DownloadRequest, StreamHandle
from tiktok_fetcher.normalizer import CONTENT_ID_PATTERN
from tiktok_fetcher.resolver import build_resolver
from tiktok_fetcher.response import build_payload, content_disposition

configure_logging(config["logs"]["level"])

app = Flask(__name__)

_origins = config["cors"]["origins"]
CORS(app, resources={
    r"/*": {
        "origins": "*" if _origins.strip() == "*" else [o.strip() for o in _origins.split(",") if o.strip()],
        "methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", "X-Requested-With", "Accept", "Origin"],
        "supports_credentials": False
    }
})


def _pipeline():
    """Per-request logger, HTTP session and resolver; nothing is shared."""
    log = request_logger("tiktok_fetcher", new_request_id())
    session = net.new_session()
    resolver = build_resolver(
        session, log=log, default_provider=config["download"]["default_provider"]
    )
    return log, session, resolver


def _stream_response(handle, session, log):
    def generate():
        try:
            for chunk in handle.iter_content(chunk_size=config["download"]["chunk_size"]):
                yield chunk
            log.info(f"Finished streaming {handle.filename} from {handle.provider}")
        finally:
            handle.close()
            session.close()

    headers = {
        'Content-Disposition': content_disposition(handle.filename),
        'Access-Control-Allow-Origin': '*'
    }
    if handle.content_length:
        headers['Content-Length'] = handle.content_length

    return Response(
        stream_with_context(generate()),
        content_type=handle.content_type,
        headers=headers
    )


@app.route('/')
def home():
    """API documentation"""
    docs = {
        "name": "TikTok Fetcher API",
        "version": "1.0",
        "description": "Fetch TikTok metadata and download media without saving on server",
        "cors_enabled": True,
        "endpoints": {
            "/api/tiktok": {
                "method": "POST",
                "description": "Get post information and download options",
                "body": {"url": "TikTok video or photo URL (required)"}
            },
            "/api/tiktok-video-download/<content_id>/<filename>": {
                "method": "GET",
                "description": "Download a video through the downloader services",
                "parameters": {
                    "username": "Author handle (optional)",
                    "quality": "'hd' or 'sd' (optional)",
                    "pref_source": "Provider to try first: tikwm, savett, snaptik, alt1 (optional)",
                    "watermark": "'true' to download the watermarked file (optional)"
                },
                "example": "/api/tiktok-video-download/7123456789012345678/tiktok_HD.mp4?username=user"
            },
            "/api/download-image": {
                "method": "GET",
                "description": "Re-serve a remote image as an attachment",
                "parameters": {
                    "url": "Image URL (required)",
                    "filename": "Attachment filename (required)"
                }
            },
            "/health": {
                "method": "GET",
                "description": "Health check"
            }
        },
        "supported_formats": [
            "https://www.tiktok.com/@username/video/1234567890123456789",
            "https://www.tiktok.com/@username/photo/1234567890123456789",
            "https://vm.tiktok.com/ZMxxxxxx/",
            "https://vt.tiktok.com/ZSxxxxxx/"
        ]
    }
    return jsonify(docs)


@app.route('/health')
def health():
    return jsonify({"status": "ok"})


@app.route('/api/tiktok', methods=['POST'])
def get_info():
    """Get TikTok post information"""
    data = request.get_json(silent=True) or request.form
    url = data.get('url') if hasattr(data, 'get') else None
    if not url or not isinstance(url, str):
        raise InvalidUrlError("Missing 'url' in request body")

    log, session, resolver = _pipeline()
    log.info(f"Fetching TikTok data for {url}")
    try:
        result = resolver.resolve(url)
    finally:
        session.close()

    payload = build_payload(result, config["download"]["filename_prefix"])
    log.info(f"Resolved @{payload['profile']['username']} via {result.source}")
    return jsonify(payload)


@app.route('/api/tiktok-video-download/<content_id>/<filename>', methods=['GET'])
def download_video(content_id, filename):
    """Download a TikTok video through the provider chain"""
    if not CONTENT_ID_PATTERN.fullmatch(content_id):
        raise InvalidUrlError("Error: Missing or invalid video ID")
    if not filename.strip():
        raise InvalidUrlError("Error: Missing filename for download")

    username = request.args.get('username') or (filename.split('_')[0] if '_' in filename else 'user')
    download = DownloadRequest(
        content_id=content_id,
        filename=filename,
        username=username,
        quality=request.args.get('quality'),
        provider_preference=request.args.get('pref_source'),
        watermark=request.args.get('watermark', '').lower() in ('1', 'true', 'yes'),
    )

    log, session, resolver = _pipeline()
    log.info(
        f"Processing download for {content_id}, filename {filename}, "
        f"preferred source {download.provider_preference or 'default'}, watermark {download.watermark}"
    )
    try:
        handle = resolver.resolve_download(download)
    except FetcherError:
        session.close()
        raise
    return _stream_response(handle, session, log)


@app.route('/api/download-image', methods=['GET'])
def download_image():
    """Re-host a remote image as an attachment"""
    url = request.args.get('url')
    filename = request.args.get('filename')
    if not url:
        return jsonify({"error": "Image URL is required"}), 400
    if not filename:
        return jsonify({"error": "Filename is required"}), 400

    log = request_logger("tiktok_fetcher", new_request_id())
    session = net.new_session()
    try:
        upstream = net.request(session, 'GET', url, timeout=timeouts["image"], stream=True)
    except UpstreamError as e:
        session.close()
        log.warning(f"Image fetch failed: {e}")
        return jsonify({"error": f"Failed to fetch image: {e}"}), e.upstream_status or e.status_code

    inferred = mimetypes.guess_type(filename)[0] or 'application/octet-stream'
    handle = StreamHandle(upstream, filename, "image", default_type=inferred)
    return _stream_response(handle, session, log)


@app.errorhandler(FetcherError)
def fetcher_error(error):
    return jsonify({"error": str(error)}), error.status_code


@app.errorhandler(404)
def not_found(error):
    return jsonify({
        "error": "Endpoint not found",
        "message": "Please check the API documentation at '/'"
    }), 404


@app.errorhandler(405)
def method_not_allowed(error):
    return jsonify({"error": f"Method {request.method} Not Allowed"}), 405


@app.errorhandler(500)
def internal_error(error):
    return jsonify({
        "error": "Internal server error",
        "message": "Something went wrong on our end"
    }), 500


if __name__ == '__main__':
    server = config["server"]
    app.run(debug=server["debug"], host=server["host"], port=server["port"])
