"""CDN Media - client for a remote media management service.

Builds transformation and delivery URLs, signs API requests and uploads
files, including large files in sequential chunks.
"""

__version__ = "0.1.0"
__author__ = "CDN Media"

from .config import ConfigurationError, load_config
from .errors import ApiError, RequestTimeoutError, ServerError, UnexpectedResponse
from .models import MediaConfig, TransformationResult, UploadResult
from .signing import api_sign_request, sign_request, verify_notification_signature
from .transformation import compile_transformation, generate_transformation_string
from .url import build_url
from .uploader import destroy, explicit, rename, upload
from .chunked import UploadStream, upload_chunked, upload_chunked_stream, upload_large

__all__ = [
    "__version__",
    "ApiError",
    "ConfigurationError",
    "MediaConfig",
    "RequestTimeoutError",
    "ServerError",
    "TransformationResult",
    "UnexpectedResponse",
    "UploadResult",
    "UploadStream",
    "api_sign_request",
    "build_url",
    "compile_transformation",
    "destroy",
    "explicit",
    "generate_transformation_string",
    "load_config",
    "rename",
    "sign_request",
    "upload",
    "upload_chunked",
    "upload_chunked_stream",
    "upload_large",
    "verify_notification_signature",
]
