"""Tests for url.py module.

Tests delivery URL construction, URL signing, fetch URLs and API
endpoint URLs.
"""

import base64
import hashlib
import zlib

import pytest

from cdn_media.config import ConfigurationError
from cdn_media.models import MediaConfig
from cdn_media.url import api_url, build_url, escape_public_id, upload_url


UPLOAD_PATH = "https://res.cloudinary.com/test123/image/upload"


@pytest.fixture
def config():
    """Account configuration with default delivery settings."""
    return MediaConfig(cloud_name="test123", api_key="a", api_secret="b")


def expected_signature(to_sign, secret="b"):
    digest = base64.b64encode(hashlib.sha1((to_sign + secret).encode()).digest()).decode()
    return "s--" + digest[:8].replace("/", "_").replace("+", "-") + "--"


class TestBuildUrl:
    """Tests for build_url function."""

    def test_default_url(self, config):
        assert build_url("test", {}, config) == f"{UPLOAD_PATH}/test"

    def test_format(self, config):
        assert build_url("test", {"format": "jpg"}, config) == f"{UPLOAD_PATH}/test.jpg"

    def test_version(self, config):
        assert build_url("test", {"version": 1234}, config) == f"{UPLOAD_PATH}/v1234/test"

    def test_folder_gets_default_version(self, config):
        """Should add v1 to ids inside folders."""
        assert build_url("folder/test", {}, config) == f"{UPLOAD_PATH}/v1/folder/test"

    def test_force_version_off(self, config):
        options = {"force_version": False}
        assert build_url("folder/test", options, config) == f"{UPLOAD_PATH}/folder/test"

    def test_explicit_version_in_public_id(self, config):
        """Should not add v1 when the id already starts with a version."""
        assert build_url("v1234/test", {}, config) == f"{UPLOAD_PATH}/v1234/test"

    def test_transformation(self, config):
        options = {"width": 100, "height": 50, "crop": "fill"}
        assert build_url("test", options, config) == f"{UPLOAD_PATH}/c_fill,h_50,w_100/test"
        assert options == {}

    def test_leftover_options_remain(self, config):
        """Should leave display attributes in options."""
        options = {"width": 100, "alt": "A cat"}
        assert build_url("test", options, config) == f"{UPLOAD_PATH}/w_100/test"
        assert options == {"width": 100, "alt": "A cat"}

    def test_resource_and_delivery_type(self, config):
        options = {"resource_type": "video", "type": "private"}
        assert build_url("clip", options, config) == "https://res.cloudinary.com/test123/video/private/clip"

    def test_insecure(self, config):
        assert build_url("test", {"secure": False}, config) == "http://res.cloudinary.com/test123/image/upload/test"

    def test_private_cdn(self, config):
        options = {"private_cdn": True}
        assert build_url("test", options, config) == "https://test123-res.cloudinary.com/image/upload/test"

    def test_secure_distribution(self, config):
        options = {"secure_distribution": "something.else.com"}
        assert build_url("test", options, config) == "https://something.else.com/test123/image/upload/test"

    def test_cname(self, config):
        options = {"secure": False, "cname": "hello.com"}
        assert build_url("test", options, config) == "http://hello.com/test123/image/upload/test"

    def test_cdn_subdomain(self, config):
        """Should shard across numbered subdomains by public id."""
        number = zlib.crc32(b"test") % 5 + 1
        options = {"cdn_subdomain": True}
        assert build_url("test", options, config) == f"https://res-{number}.cloudinary.com/test123/image/upload/test"

    def test_shorten(self, config):
        assert build_url("test", {"shorten": True}, config) == "https://res.cloudinary.com/test123/iu/test"

    def test_use_root_path(self, config):
        assert build_url("test", {"use_root_path": True}, config) == "https://res.cloudinary.com/test123/test"

    def test_use_root_path_rejects_other_types(self, config):
        with pytest.raises(ConfigurationError, match="Root path"):
            build_url("test", {"use_root_path": True, "resource_type": "raw"}, config)

    def test_url_suffix(self, config):
        """Should move to the suffixed resource type and append the suffix."""
        assert build_url("test", {"url_suffix": "hello"}, config) == "https://res.cloudinary.com/test123/images/test/hello"
        assert (
            build_url("test", {"url_suffix": "hello", "format": "jpg"}, config)
            == "https://res.cloudinary.com/test123/images/test/hello.jpg"
        )
        assert (
            build_url("test", {"url_suffix": "hello", "resource_type": "raw"}, config)
            == "https://res.cloudinary.com/test123/files/test/hello"
        )

    def test_empty_url_suffix_is_ignored(self, config):
        """Should treat an empty suffix as no suffix at all."""
        assert build_url("sample", {"url_suffix": ""}, config) == f"{UPLOAD_PATH}/sample"
        url = build_url("http://example.com/a.jpg", {"type": "fetch", "url_suffix": ""}, config)
        assert url == "https://res.cloudinary.com/test123/image/fetch/http://example.com/a.jpg"

    def test_url_suffix_rejects_separators(self, config):
        with pytest.raises(ConfigurationError, match="url_suffix"):
            build_url("test", {"url_suffix": "hel/lo"}, config)
        with pytest.raises(ConfigurationError, match="url_suffix"):
            build_url("test", {"url_suffix": "hel.lo"}, config)

    def test_url_suffix_rejects_unsupported_types(self, config):
        with pytest.raises(ConfigurationError, match="URL Suffix"):
            build_url("test", {"url_suffix": "hello", "type": "facebook"}, config)

    def test_fetch(self, config):
        """Should deliver remote URLs through the fetch type."""
        url = build_url("http://example.com/a.jpg", {"type": "fetch"}, config)
        assert url == "https://res.cloudinary.com/test123/image/fetch/http://example.com/a.jpg"

    def test_fetch_format_becomes_transformation(self, config):
        url = build_url("http://example.com/a.jpg", {"type": "fetch", "format": "png"}, config)
        assert url == "https://res.cloudinary.com/test123/image/fetch/f_png/http://example.com/a.jpg"

    def test_absolute_url_passes_through(self, config):
        assert build_url("http://example.com/a.jpg", {}, config) == "http://example.com/a.jpg"

    def test_preloaded_id(self, config):
        assert build_url("image/upload/v123/abc.jpg", {}, config) == f"{UPLOAD_PATH}/v123/abc.jpg"

    def test_escapes_public_id(self, config):
        assert build_url("my file", {}, config) == f"{UPLOAD_PATH}/my%20file"

    def test_none_public_id(self, config):
        assert build_url(None, {}, config) is None

    def test_requires_cloud_name(self):
        with pytest.raises(ConfigurationError, match="cloud_name"):
            build_url("test", {}, MediaConfig())


class TestSignedUrl:
    """Tests for URL signatures."""

    def test_signature_covers_transformation_and_id(self, config):
        """Should sign the transformation and id but not the version."""
        options = {"version": 1234, "transformation": {"crop": "crop", "width": 10, "height": 20}, "sign_url": True}
        signature = expected_signature("c_crop,h_20,w_10/image.jpg")

        url = build_url("image.jpg", options, config)

        assert url == f"{UPLOAD_PATH}/{signature}/c_crop,h_20,w_10/v1234/image.jpg"

    def test_signature_without_transformation(self, config):
        signature = expected_signature("image.jpg")
        url = build_url("image.jpg", {"version": 1234, "sign_url": True}, config)
        assert url == f"{UPLOAD_PATH}/{signature}/v1234/image.jpg"

    def test_signature_is_url_safe(self, config):
        url = build_url("sample", {"sign_url": True, "width": 10}, config)
        signature = url.split("/")[6]
        assert signature.startswith("s--") and signature.endswith("--")
        assert "/" not in signature and "+" not in signature

    def test_long_url_signature(self, config):
        """Should use 32 characters of a sha256 digest."""
        url = build_url("sample", {"sign_url": True, "long_url_signature": True}, config)
        signature = url.split("/")[6]
        assert len(signature) == len("s--") + 32 + len("--")

    def test_requires_secret(self):
        config = MediaConfig(cloud_name="test123")
        with pytest.raises(ConfigurationError, match="api_secret"):
            build_url("sample", {"sign_url": True}, config)


class TestEscapePublicId:
    """Tests for escape_public_id function."""

    def test_keeps_existing_escapes(self):
        assert escape_public_id("a%20b c") == "a%20b%20c"

    def test_keeps_folders(self):
        assert escape_public_id("folder/sub/id") == "folder/sub/id"


class TestApiUrl:
    """Tests for api_url and upload_url functions."""

    def test_upload_endpoint(self, config):
        assert api_url("upload", {}, config) == "https://api.cloudinary.com/v1_1/test123/image/upload"

    def test_resource_type(self, config):
        assert api_url("destroy", {"resource_type": "raw"}, config) == "https://api.cloudinary.com/v1_1/test123/raw/destroy"

    def test_custom_prefix(self, config):
        options = {"upload_prefix": "https://api.example.com/"}
        assert api_url("upload", options, config) == "https://api.example.com/v1_1/test123/image/upload"

    def test_upload_url_defaults_to_auto(self, config):
        assert upload_url({}, config) == "https://api.cloudinary.com/v1_1/test123/auto/upload"

    def test_requires_cloud_name(self):
        with pytest.raises(ConfigurationError):
            api_url("upload", {}, MediaConfig())
