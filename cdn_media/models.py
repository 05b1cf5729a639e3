"""Data models for the CDN Media client.

Contains data classes for client configuration, compiled transformations,
upload chunks and upload results.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional


DEFAULT_CHUNK_SIZE = 20_000_000
DEFAULT_TIMEOUT = 60.0
DEFAULT_UPLOAD_PREFIX = "https://api.cloudinary.com"


@dataclass
class MediaConfig:
    """Account and delivery configuration.

    Handed explicitly to every operation. Treat instances as immutable while a
    call is in flight; use ``with_options`` to derive a modified copy.

    Attributes:
        cloud_name: Account (cloud) name used in URLs
        api_key: API key for signed requests
        api_secret: API secret for signed requests
        oauth_token: Bearer token, used instead of key/secret signing
        signature_algorithm: sha1 (default) or sha256
        upload_prefix: Base URL of the upload API
        api_proxy: Optional proxy URL for API calls
        secure: Build https delivery URLs
        private_cdn: Use a private CDN distribution
        secure_distribution: Custom secure delivery host
        cname: Custom delivery host for non-secure URLs
        cdn_subdomain: Shard delivery across numbered subdomains
        secure_cdn_subdomain: Shard secure delivery across subdomains
        shorten: Shorten image/upload to iu
        sign_url: Sign delivery URLs
        force_version: Inject v1 into versionless ids that contain folders
        use_root_path: Drop image/upload from delivery URLs
        long_url_signature: Use 32 character sha256 URL signatures
        responsive_width: Append the responsive width transformation
        responsive_width_transformation: Transformation used for responsive width
        dpr: Default device pixel ratio
        chunk_size: Chunk size in bytes for chunked uploads
        timeout: Per-request timeout in seconds
        upload_preset: Default upload preset
    """
    cloud_name: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    oauth_token: Optional[str] = None
    signature_algorithm: str = "sha1"
    upload_prefix: str = DEFAULT_UPLOAD_PREFIX
    api_proxy: Optional[str] = None
    secure: bool = True
    private_cdn: bool = False
    secure_distribution: Optional[str] = None
    cname: Optional[str] = None
    cdn_subdomain: bool = False
    secure_cdn_subdomain: Optional[bool] = None
    shorten: bool = False
    sign_url: bool = False
    force_version: bool = True
    use_root_path: bool = False
    long_url_signature: bool = False
    responsive_width: bool = False
    responsive_width_transformation: dict[str, Any] = field(
        default_factory=lambda: {"width": "auto", "crop": "limit"}
    )
    dpr: Any = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    timeout: float = DEFAULT_TIMEOUT
    upload_preset: Optional[str] = None

    def with_options(self, **changes: Any) -> "MediaConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


@dataclass
class TransformationResult:
    """Output of compiling one set of transformation options.

    Attributes:
        transformation: Rendered transformation string (may be empty)
        leftover: Options the compiler did not consume
    """
    transformation: str
    leftover: dict[str, Any] = field(default_factory=dict)


@dataclass
class Chunk:
    """A bounded slice of an upload stream.

    Attributes:
        data: Chunk bytes
        start: Offset of the first byte in the whole stream
        is_last: True for the terminal chunk
    """
    data: bytes
    start: int
    is_last: bool = False

    @property
    def end(self) -> int:
        """Offset of the last byte (inclusive)."""
        return self.start + len(self.data) - 1

    @property
    def total(self) -> int:
        """Total stream size on the last chunk, -1 while streaming."""
        return self.end + 1 if self.is_last else -1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


@dataclass
class UploadResult:
    """Summary of a completed upload.

    Attributes:
        public_id: Public id assigned by the service
        version: Resource version
        url: Delivery URL
        secure_url: https delivery URL
        bytes: Stored size in bytes
        resource_type: image, video or raw
        format: Stored format
        raw: Full response payload
    """
    public_id: str
    version: Optional[int] = None
    url: Optional[str] = None
    secure_url: Optional[str] = None
    bytes: Optional[int] = None
    resource_type: Optional[str] = None
    format: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> "UploadResult":
        return cls(
            public_id=response.get("public_id", ""),
            version=response.get("version"),
            url=response.get("url"),
            secure_url=response.get("secure_url"),
            bytes=response.get("bytes"),
            resource_type=response.get("resource_type"),
            format=response.get("format"),
            raw=response,
        )
