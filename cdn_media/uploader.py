"""Upload API calls.

Builds signed parameters, encodes them as multipart/form-data and posts
them to the upload API with httpx. Responses follow a fixed contract: a
handful of status codes carry JSON (possibly an error payload), anything
else is unexpected.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from . import __version__
from .errors import ApiError, RequestTimeoutError, ServerError, UnexpectedResponse
from .models import MediaConfig
from .multipart import FileSource, MultipartEncoder
from .signing import process_request_params
from .transformation import build_eager, generate_transformation_string
from .url import api_url
from .utils import as_safe_bool, build_array, encode_context, is_remote_url, timestamp


logger = logging.getLogger(__name__)

USER_AGENT = f"CdnMediaPython/{__version__}"
RECOGNIZED_STATUS_CODES = {200, 400, 401, 404, 420, 500}

# Upload parameters canonized to 1/0
BOOLEAN_UPLOAD_PARAMS = [
    "async",
    "backup",
    "colors",
    "eager_async",
    "exif",
    "faces",
    "image_metadata",
    "invalidate",
    "overwrite",
    "phash",
    "quality_analysis",
    "unique_filename",
    "use_filename",
]

# Upload parameters passed through as given
PLAIN_UPLOAD_PARAMS = [
    "access_mode",
    "callback",
    "eager_notification_url",
    "filename_override",
    "folder",
    "format",
    "moderation",
    "notification_url",
    "proxy",
    "public_id",
    "type",
]


def create_http_client(config: MediaConfig) -> httpx.AsyncClient:
    """Create an httpx client configured for the upload API.

    Args:
        config: Configuration supplying proxy and timeout

    Returns:
        Configured httpx.AsyncClient
    """
    return httpx.AsyncClient(proxy=config.api_proxy, timeout=config.timeout)


@asynccontextmanager
async def http_client_scope(
    client: httpx.AsyncClient | None, config: MediaConfig
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client, or a fresh one closed afterwards."""
    if client is not None:
        yield client
        return
    async with create_http_client(config) as owned:
        yield owned


def parse_result(body: bytes, status_code: int) -> dict[str, Any]:
    """Decode a JSON response body.

    Raises:
        ServerError: If the body is not JSON or carries an error payload
    """
    try:
        result = json.loads(body)
    except ValueError as e:
        raise ServerError(
            f"Server return invalid JSON response. Status Code {status_code}. {e}",
            http_code=status_code,
        )

    error = result.get("error") if isinstance(result, dict) else None
    if error:
        if not isinstance(error, dict):
            error = {"message": str(error)}
        raise ServerError(
            error.get("message", ""),
            http_code=status_code,
            name=error.get("name") or "Error",
        )
    return result


def handle_response(response: httpx.Response) -> dict[str, Any]:
    """Apply the response contract to an HTTP response.

    Raises:
        ServerError: For error payloads and malformed bodies
        UnexpectedResponse: For status codes outside the recognized set
    """
    if response.status_code in RECOGNIZED_STATUS_CODES:
        return parse_result(response.content, response.status_code)
    raise UnexpectedResponse(
        f"Server returned unexpected status code - {response.status_code}",
        http_code=response.status_code,
    )


async def call_api(
    action: str,
    params: dict[str, Any],
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    unsigned_params: dict[str, Any] | None = None,
    file: FileSource | None = None,
    headers: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Sign params and POST them to the API endpoint for ``action``.

    Args:
        action: API action (upload, explicit, destroy, ...)
        params: Parameters to sign and send
        options: Per-call options (credentials, resource_type, timeout, ...)
        config: Account configuration
        unsigned_params: Extra fields sent without being signed
        file: Optional file part
        headers: Extra request headers
        client: Optional shared httpx client

    Returns:
        Decoded JSON response

    Raises:
        ConfigurationError: If credentials or cloud name are missing
        RequestTimeoutError: If the request exceeds its timeout
        ServerError: If the service reports an error
        UnexpectedResponse: If the status code is not recognized
        ApiError: On other transport failures
    """
    options = options or {}
    config = config or MediaConfig()

    params = process_request_params(params, options, config)
    params.update(unsigned_params or {})
    url = api_url(action, options, config)

    # raw bytes have no name of their own
    filename = options.get("filename") if isinstance(file, (bytes, bytearray)) else None
    encoder = MultipartEncoder(params, file=file, filename=filename)

    request_headers = {
        "Content-Type": encoder.content_type,
        "User-Agent": USER_AGENT,
    }
    request_headers.update(headers or {})
    oauth_token = options.get("oauth_token") or config.oauth_token
    if oauth_token:
        request_headers["Authorization"] = f"Bearer {oauth_token}"

    timeout = options.get("timeout") or config.timeout
    logger.debug("POST %s (%d fields)", url, len(encoder.fields))

    async with http_client_scope(client, config) as http:
        try:
            response = await http.post(
                url,
                content=encoder.aiter_bytes(),
                headers=request_headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.debug("Request to %s timed out after %ss", url, timeout)
            raise RequestTimeoutError() from e
        except httpx.TransportError as e:
            raise ApiError(str(e)) from e

    return handle_response(response)


def build_upload_params(options: dict[str, Any], config: MediaConfig | None = None) -> dict[str, Any]:
    """Collect upload API parameters from options.

    Booleans are canonized to 1/0, lists are comma joined, and the options
    themselves are compiled into an incoming ``transformation``.
    """
    params: dict[str, Any] = {
        "timestamp": options.get("timestamp") or timestamp(),
        "transformation": generate_transformation_string(dict(options)),
        "allowed_formats": ",".join(str(f) for f in build_array(options.get("allowed_formats"))) or None,
        "tags": ",".join(str(t) for t in build_array(options.get("tags"))) or None,
        "context": encode_context(options.get("context")),
        "metadata": encode_context(options.get("metadata")),
        "eager": build_eager(options["eager"]) if options.get("eager") else None,
        "upload_preset": options.get("upload_preset") or (config.upload_preset if config else None),
    }
    for name in PLAIN_UPLOAD_PARAMS:
        params[name] = options.get(name)
    for name in BOOLEAN_UPLOAD_PARAMS:
        params[name] = as_safe_bool(options.get(name))
    return params


async def upload(
    file: FileSource,
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Upload a file in a single request.

    Remote URLs (http, https, ftp, s3, gs, data) are sent for the service
    to fetch; anything else is streamed as the file part.

    Returns:
        Resource metadata returned by the service
    """
    options = dict(options or {})
    params = build_upload_params(options, config)
    if is_remote_url(file):
        return await call_api("upload", params, options, config, unsigned_params={"file": file}, client=client)
    return await call_api("upload", params, options, config, file=file, client=client)


async def explicit(
    public_id: str,
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Apply actions (eager transformations, tags, ...) to an uploaded resource."""
    options = dict(options or {})
    params = build_upload_params({**options, "public_id": public_id}, config)
    return await call_api("explicit", params, options, config, client=client)


async def destroy(
    public_id: str,
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Delete an uploaded resource."""
    options = dict(options or {})
    params = {
        "timestamp": timestamp(),
        "type": options.get("type"),
        "invalidate": as_safe_bool(options.get("invalidate")),
        "public_id": public_id,
    }
    return await call_api("destroy", params, options, config, client=client)


async def rename(
    from_public_id: str,
    to_public_id: str,
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Rename an uploaded resource."""
    options = dict(options or {})
    params = {
        "timestamp": timestamp(),
        "type": options.get("type"),
        "from_public_id": from_public_id,
        "to_public_id": to_public_id,
        "overwrite": as_safe_bool(options.get("overwrite")),
        "invalidate": as_safe_bool(options.get("invalidate")),
        "to_type": options.get("to_type"),
    }
    return await call_api("rename", params, options, config, client=client)
