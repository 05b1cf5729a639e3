"""Delivery and API URL generation.

Builds URLs of the form::

    https://res.cloudinary.com/<cloud>/image/upload/s--sig--/c_fill,w_100/v3/folder/id.jpg

from a public id plus options. Like the transformation compiler, every
option used here is consumed from the options dict.
"""

import logging
import re
import zlib
from typing import Any
from urllib.parse import quote, unquote

from .config import ConfigurationError
from .models import MediaConfig
from .signing import compute_hash
from .transformation import generate_transformation_string
from .utils import join_present, option_consume


logger = logging.getLogger(__name__)

SHARED_CDN = "res.cloudinary.com"
OLD_AKAMAI_SHARED_CDN = "cloudinary-a.akamaihd.net"
SHORT_URL_SIGNATURE_LENGTH = 8
LONG_URL_SIGNATURE_LENGTH = 32

# image/upload/v123/id.jpg as returned by signed upload tags
PRELOADED_RE = re.compile(r"^(image|raw)/([a-z0-9_]+)/v(\d+)/([^#]+)$")
ABSOLUTE_URL_RE = re.compile(r"^https?:/", re.IGNORECASE)
VERSION_RE = re.compile(r"^v\d+")
DOUBLE_SLASH_RE = re.compile(r"([^:])//")
SMART_ESCAPE_RE = re.compile(r"([^a-zA-Z0-9_.\-/:]+)")

# (resource_type, type) pairs allowed with url_suffix, and what they become
SUFFIX_RESOURCE_TYPES = {
    ("image", "upload"): "images",
    ("image", "private"): "private_images",
    ("image", "authenticated"): "authenticated_images",
    ("raw", "upload"): "files",
    ("video", "upload"): "videos",
}


def smart_escape(value: str, unsafe: re.Pattern = SMART_ESCAPE_RE) -> str:
    """Percent-escape every run matched by ``unsafe`` (UTF-8 bytes)."""
    def escape(match: re.Match) -> str:
        return "".join(f"%{byte:02X}" for byte in match.group(0).encode("utf-8"))

    return unsafe.sub(escape, value)


def escape_public_id(public_id: str) -> str:
    """Escape a public id, leaving existing ``%XX`` sequences intact."""
    return quote(unquote(public_id), safe="-_.!~*'():/")


def finalize_resource_type(
    resource_type: str | None,
    delivery_type: str | None,
    url_suffix: str | None,
    use_root_path: bool,
    shorten: bool,
) -> tuple[str | None, str | None]:
    """Resolve the resource type and delivery type path segments.

    Raises:
        ConfigurationError: If url_suffix or use_root_path is used with an
            unsupported resource/delivery type
    """
    if delivery_type is None:
        delivery_type = "upload"

    if url_suffix:
        suffixed = SUFFIX_RESOURCE_TYPES.get((resource_type, delivery_type))
        if suffixed is None:
            raise ConfigurationError(
                "URL Suffix only supported for image/upload, image/private, "
                "image/authenticated, video/upload and raw/upload"
            )
        resource_type, delivery_type = suffixed, None

    if use_root_path:
        if (resource_type == "image" and delivery_type == "upload") or (
            resource_type == "images" and delivery_type is None
        ):
            resource_type, delivery_type = None, None
        else:
            raise ConfigurationError("Root path only supported for image/upload")

    if shorten and resource_type == "image" and delivery_type == "upload":
        resource_type, delivery_type = "iu", None

    return resource_type, delivery_type


def finalize_source(source: str, fmt: str | None, url_suffix: str | None) -> tuple[str, str]:
    """Escape the public id and attach suffix and format.

    Returns:
        Tuple of (source for the URL, source used for signing)

    Raises:
        ConfigurationError: If url_suffix contains ``.`` or ``/``
    """
    source = DOUBLE_SLASH_RE.sub(r"\1/", source)
    if ABSOLUTE_URL_RE.match(source):
        source = smart_escape(source)
        return source, source

    source = escape_public_id(source)
    source_to_sign = source
    if url_suffix:
        if re.search(r"[./]", url_suffix):
            raise ConfigurationError("url_suffix should not include . or /")
        source = f"{source}/{url_suffix}"
    if fmt is not None:
        source = f"{source}.{fmt}"
        source_to_sign = f"{source_to_sign}.{fmt}"
    return source, source_to_sign


def cdn_subdomain_number(source: str) -> int:
    return zlib.crc32(source.encode("utf-8")) % 5 + 1


def unsigned_url_prefix(
    source: str,
    cloud_name: str,
    private_cdn: bool,
    cdn_subdomain: bool,
    secure_cdn_subdomain: bool | None,
    cname: str | None,
    secure: bool,
    secure_distribution: str | None,
) -> str:
    """Scheme, host and (for the shared CDN) cloud name part of a URL."""
    if cloud_name.startswith("/"):
        return "/res" + cloud_name

    shared_domain = not private_cdn
    if secure:
        if secure_distribution is None or secure_distribution == OLD_AKAMAI_SHARED_CDN:
            secure_distribution = f"{cloud_name}-res.cloudinary.com" if private_cdn else SHARED_CDN
        if secure_cdn_subdomain is None and shared_domain:
            secure_cdn_subdomain = cdn_subdomain
        if secure_cdn_subdomain:
            secure_distribution = secure_distribution.replace(
                "res.cloudinary.com", f"res-{cdn_subdomain_number(source)}.cloudinary.com"
            )
        prefix = f"https://{secure_distribution}"
    elif cname:
        subdomain = f"a{cdn_subdomain_number(source)}." if cdn_subdomain else ""
        prefix = f"http://{subdomain}{cname}"
    else:
        cdn_part = f"{cloud_name}-" if private_cdn else ""
        subdomain_part = f"-{cdn_subdomain_number(source)}" if cdn_subdomain else ""
        prefix = f"http://{cdn_part}res{subdomain_part}.cloudinary.com"

    if shared_domain:
        prefix = f"{prefix}/{cloud_name}"
    return prefix


def patch_fetch_format(options: dict[str, Any]) -> None:
    """Fetched URLs keep their own extension; format becomes fetch_format."""
    if options.get("type") == "fetch" and options.get("fetch_format") is None:
        options["fetch_format"] = option_consume(options, "format")


def build_url(
    public_id: Any,
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
) -> Any:
    """Build a delivery URL for a public id.

    Transformation and URL options are consumed from ``options``; whatever
    remains are display attributes.

    Args:
        public_id: Public id, preloaded id (image/upload/v1/id) or remote URL
        options: Transformation and URL options (modified in place)
        config: Account configuration

    Returns:
        Absolute URL string (None passes through as None)

    Raises:
        ConfigurationError: On invalid options or missing cloud name/secret
    """
    options = {} if options is None else options
    config = config or MediaConfig()

    patch_fetch_format(options)
    delivery_type = option_consume(options, "type")
    transformation = generate_transformation_string(options, config)

    resource_type = option_consume(options, "resource_type", "image")
    version = option_consume(options, "version")
    force_version = option_consume(options, "force_version", config.force_version)
    long_url_signature = bool(option_consume(options, "long_url_signature", config.long_url_signature))
    fmt = option_consume(options, "format")
    cloud_name = option_consume(options, "cloud_name", config.cloud_name)
    if not cloud_name:
        raise ConfigurationError("Must supply cloud_name")
    private_cdn = option_consume(options, "private_cdn", config.private_cdn)
    secure_distribution = option_consume(options, "secure_distribution", config.secure_distribution)
    secure = option_consume(options, "secure", config.secure)
    cdn_subdomain = option_consume(options, "cdn_subdomain", config.cdn_subdomain)
    secure_cdn_subdomain = option_consume(options, "secure_cdn_subdomain", config.secure_cdn_subdomain)
    cname = option_consume(options, "cname", config.cname)
    shorten = option_consume(options, "shorten", config.shorten)
    sign_url = option_consume(options, "sign_url", config.sign_url)
    api_secret = option_consume(options, "api_secret", config.api_secret)
    url_suffix = option_consume(options, "url_suffix")
    use_root_path = option_consume(options, "use_root_path", config.use_root_path)
    signature_algorithm = option_consume(options, "signature_algorithm", config.signature_algorithm)

    if public_id is None:
        return None
    public_id = str(public_id)

    preloaded = PRELOADED_RE.match(public_id)
    if preloaded:
        resource_type, delivery_type, version, public_id = preloaded.groups()

    if delivery_type is None and ABSOLUTE_URL_RE.match(public_id):
        return public_id

    resource_type, delivery_type = finalize_resource_type(
        resource_type, delivery_type, url_suffix, use_root_path, shorten
    )
    public_id, source_to_sign = finalize_source(public_id, fmt, url_suffix)

    if (
        version is None
        and force_version
        and "/" in source_to_sign
        and not VERSION_RE.match(source_to_sign)
        and not ABSOLUTE_URL_RE.match(source_to_sign)
    ):
        version = 1
    version = f"v{version}" if version is not None else None

    transformation = DOUBLE_SLASH_RE.sub(r"\1/", transformation)

    signature = None
    if sign_url:
        if not api_secret:
            raise ConfigurationError("Must supply api_secret")
        if long_url_signature:
            algorithm, length = "sha256", LONG_URL_SIGNATURE_LENGTH
        else:
            algorithm, length = signature_algorithm, SHORT_URL_SIGNATURE_LENGTH
        to_sign = join_present([transformation, source_to_sign], "/")
        digest = compute_hash(to_sign + api_secret, algorithm, "base64")
        signature = "s--" + digest[:length].replace("/", "_").replace("+", "-") + "--"

    prefix = unsigned_url_prefix(
        public_id,
        cloud_name,
        private_cdn,
        cdn_subdomain,
        secure_cdn_subdomain,
        cname,
        secure,
        secure_distribution,
    )
    parts = [prefix, resource_type, delivery_type, signature, transformation, version, public_id]
    url = join_present(parts, "/").replace(" ", "%20")
    logger.debug("Built URL %s", url)
    return url


def api_url(action: str = "upload", options: dict[str, Any] | None = None, config: MediaConfig | None = None) -> str:
    """Upload API endpoint for an action.

    Raises:
        ConfigurationError: If no cloud name is configured
    """
    options = options or {}
    config = config or MediaConfig()
    prefix = options.get("upload_prefix") or config.upload_prefix
    cloud_name = options.get("cloud_name") or config.cloud_name
    if not cloud_name:
        raise ConfigurationError("Must supply cloud_name")
    resource_type = options.get("resource_type") or "image"
    return "/".join([prefix.rstrip("/"), "v1_1", cloud_name, resource_type, action])


def upload_url(options: dict[str, Any] | None = None, config: MediaConfig | None = None) -> str:
    """Endpoint for direct (e.g. browser) uploads; resource type defaults to auto."""
    options = dict(options or {})
    options.setdefault("resource_type", "auto")
    return api_url("upload", options, config)
