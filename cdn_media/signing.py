"""Request and notification signing.

Signatures are a hash over the sorted ``key=value`` pairs of a request
followed by the API secret. The service recomputes them byte for byte, so
rendering and ordering here must not change.
"""

import base64
import hashlib
import hmac
import time
from typing import Any

from .config import ConfigurationError
from .models import MediaConfig
from .utils import build_array, clear_blank, present, to_param_string


DEFAULT_SIGNATURE_ALGORITHM = "sha1"
SIGNATURE_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}
NOTIFICATION_VALID_FOR = 7200


def compute_hash(text: str, algorithm: str | None = None, encoding: str = "hex") -> str:
    """Hash text with the given algorithm.

    Args:
        text: Input string (UTF-8 encoded before hashing)
        algorithm: sha1 or sha256 (default sha1)
        encoding: hex or base64

    Returns:
        Digest in the requested encoding

    Raises:
        ConfigurationError: If the algorithm is not supported
    """
    algorithm = algorithm or DEFAULT_SIGNATURE_ALGORITHM
    try:
        hasher = SIGNATURE_ALGORITHMS[algorithm.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Signature algorithm {algorithm} is not supported. "
            f"Supported algorithms: {', '.join(SIGNATURE_ALGORITHMS)}"
        )
    digest = hasher(text.encode("utf-8"))
    if encoding == "base64":
        return base64.b64encode(digest.digest()).decode("ascii")
    return digest.hexdigest()


def _render_value(value: Any) -> str:
    return ",".join(to_param_string(v) for v in build_array(value))


def api_sign_request(params: dict[str, Any], api_secret: str, algorithm: str | None = None) -> str:
    """Sign request parameters.

    Blank values are dropped, list values are comma joined, and the
    ``key=value`` pairs are sorted and joined with ``&`` before the secret is
    appended.
    """
    to_sign = "&".join(
        sorted(f"{key}={_render_value(value)}" for key, value in params.items() if present(value))
    )
    return compute_hash(to_sign + api_secret, algorithm, "hex")


def _ensure_option(options: dict[str, Any], config: MediaConfig | None, name: str) -> Any:
    value = options.get(name)
    if value is None and config is not None:
        value = getattr(config, name)
    if value is None:
        raise ConfigurationError(f"Must supply {name}")
    return value


def sign_request(
    params: dict[str, Any],
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
) -> dict[str, Any]:
    """Return a copy of params with ``signature`` and ``api_key`` added.

    Credentials come from options first, then config.

    Raises:
        ConfigurationError: If api_key or api_secret is missing
    """
    options = options or {}
    api_key = _ensure_option(options, config, "api_key")
    api_secret = _ensure_option(options, config, "api_secret")
    algorithm = options.get("signature_algorithm") or (config.signature_algorithm if config else None)

    params = clear_blank(params)
    params["signature"] = api_sign_request(params, api_secret, algorithm)
    params["api_key"] = api_key
    return params


def process_request_params(
    params: dict[str, Any],
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
) -> dict[str, Any]:
    """Prepare request parameters according to the authentication mode.

    - unsigned requests (upload presets) drop blanks and the timestamp
    - OAuth requests drop blanks; the token travels in a header
    - pre-signed requests pass the caller's signed options through
    - everything else is signed with the API key and secret
    """
    options = options or {}
    oauth_token = options.get("oauth_token") or (config.oauth_token if config else None)

    if options.get("unsigned"):
        params = clear_blank(params)
        params.pop("timestamp", None)
    elif oauth_token:
        params = clear_blank(params)
    elif options.get("signature"):
        params = clear_blank(options)
    else:
        params = sign_request(params, options, config)
    return params


def webhook_signature(
    data: str,
    timestamp: int | float,
    api_secret: str | None = None,
    algorithm: str | None = None,
) -> str:
    """Signature of a notification body sent by the service.

    Raises:
        ConfigurationError: If no secret is supplied
    """
    if not api_secret:
        raise ConfigurationError("Must supply api_secret")
    return compute_hash(f"{data}{to_param_string(timestamp)}{api_secret}", algorithm, "hex")


def verify_notification_signature(
    body: str | None,
    timestamp: int | float | None,
    signature: str | None,
    config: MediaConfig | None = None,
    valid_for: int = NOTIFICATION_VALID_FOR,
) -> bool:
    """Check an inbound notification against its signature header.

    Args:
        body: Raw JSON body as received
        timestamp: X-Cld-Timestamp header value (seconds)
        signature: X-Cld-Signature header value
        config: Configuration supplying api_secret and algorithm
        valid_for: Seconds a notification stays valid

    Returns:
        True when the signature matches and the timestamp is fresh
    """
    if not body or not timestamp or not signature:
        return False
    if float(timestamp) < time.time() - valid_for:
        return False

    expected = webhook_signature(
        body,
        timestamp,
        api_secret=config.api_secret if config else None,
        algorithm=config.signature_algorithm if config else None,
    )
    return hmac.compare_digest(expected, signature)
