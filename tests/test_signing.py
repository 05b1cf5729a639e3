"""Tests for signing.py module.

Tests request signing, request parameter processing per authentication
mode, and notification signature verification.
"""

import json
import time

import pytest

from cdn_media.config import ConfigurationError
from cdn_media.models import MediaConfig
from cdn_media.signing import (
    api_sign_request,
    compute_hash,
    process_request_params,
    sign_request,
    verify_notification_signature,
    webhook_signature,
)


@pytest.fixture
def config():
    """Account configuration used across signing tests."""
    return MediaConfig(cloud_name="test123", api_key="a", api_secret="b")


class TestComputeHash:
    """Tests for compute_hash function."""

    def test_defaults_to_sha1_hex(self):
        """Should produce a 40 character sha1 hex digest by default."""
        assert compute_hash("hello") == "aaf4c61ddcc5e8a2dabede0f3b482cd9aea9434d"

    def test_base64_encoding(self):
        """Should support base64 output."""
        assert compute_hash("hello", "sha1", "base64") == "qvTGHdzF6KLavt4PO0gs2a6pQ00="

    def test_rejects_unknown_algorithm(self):
        """Should raise ConfigurationError for unsupported algorithms."""
        with pytest.raises(ConfigurationError, match="md5"):
            compute_hash("hello", "md5")


class TestApiSignRequest:
    """Tests for api_sign_request function."""

    def test_skips_blank_values(self):
        """Should ignore None values when signing."""
        params = {"hello": None, "goodbye": 12, "world": "problem", "undef": None}
        assert api_sign_request(params, "1234") == "f05cfe85cee78e7e997b3c7da47ba212dcbf1ea5"

    def test_sha1(self):
        """Should match the known sha1 signature."""
        params = {"username": "user@cloudinary.com", "timestamp": 1568810420, "cloud_name": "dn6ot3ged"}
        signature = api_sign_request(params, "hdcixPpR2iKERPwqvH6sHdK9cyac", "sha1")
        assert signature == "14c00ba6d0dfdedbc86b316847d95b9e6cd46d94"

    def test_sha1_is_default(self):
        """Should use sha1 when no algorithm is given."""
        params = {"username": "user@cloudinary.com", "timestamp": 1568810420, "cloud_name": "dn6ot3ged"}
        signature = api_sign_request(params, "hdcixPpR2iKERPwqvH6sHdK9cyac")
        assert signature == "14c00ba6d0dfdedbc86b316847d95b9e6cd46d94"

    def test_sha256(self):
        """Should match the known sha256 signature."""
        params = {"username": "user@cloudinary.com", "timestamp": 1568810420, "cloud_name": "dn6ot3ged"}
        signature = api_sign_request(params, "hdcixPpR2iKERPwqvH6sHdK9cyac", "sha256")
        assert signature == "45ddaa4fa01f0c2826f32f669d2e4514faf275fe6df053f1a150e7beae58a3bd"

    def test_independent_of_key_order(self):
        """Should sign the same params identically regardless of insertion order."""
        first = api_sign_request({"a": 1, "b": 2, "c": "x"}, "s")
        second = api_sign_request({"c": "x", "b": 2, "a": 1}, "s")
        assert first == second

    def test_joins_lists_with_commas(self):
        """Should render list values comma separated."""
        expected = compute_hash("tags=a,b&timestamp=10s")
        assert api_sign_request({"tags": ["a", "b"], "timestamp": 10}, "s") == expected


class TestSignRequest:
    """Tests for sign_request function."""

    def test_adds_signature_and_api_key(self):
        """Should add signature and api_key to a copy of params."""
        params = {"public_id": "folder/file", "version": "1234"}
        signed = sign_request(params, {"api_key": "1234", "api_secret": "b"})

        assert signed == {
            "public_id": "folder/file",
            "version": "1234",
            "signature": "7a3349cbb373e4812118d625047ede50b90e7b67",
            "api_key": "1234",
        }
        assert "signature" not in params

    def test_falls_back_to_config_credentials(self, config):
        """Should use config credentials when options lack them."""
        signed = sign_request({"public_id": "folder/file", "version": "1234"}, {}, config)
        assert signed["api_key"] == "a"
        assert signed["signature"] == "7a3349cbb373e4812118d625047ede50b90e7b67"

    def test_requires_api_key(self):
        """Should fail without an api_key."""
        with pytest.raises(ConfigurationError, match="Must supply api_key"):
            sign_request({"public_id": "x"}, {"api_secret": "b"})

    def test_requires_api_secret(self):
        """Should fail without an api_secret."""
        with pytest.raises(ConfigurationError, match="Must supply api_secret"):
            sign_request({"public_id": "x"}, {"api_key": "1234"})


class TestProcessRequestParams:
    """Tests for process_request_params function."""

    def test_unsigned_drops_blanks_and_timestamp(self):
        """Should send unsigned requests without signature or timestamp."""
        params = {"public_id": "folder/file", "version": "1234", "colors": None, "timestamp": 1}
        result = process_request_params(params, {"api_key": "1234", "api_secret": "b", "unsigned": True})
        assert result == {"public_id": "folder/file", "version": "1234"}

    def test_signed_by_default(self):
        """Should sign with key and secret."""
        result = process_request_params(
            {"public_id": "folder/file", "version": "1234"},
            {"api_key": "1234", "api_secret": "b"},
        )
        assert result["signature"] == "7a3349cbb373e4812118d625047ede50b90e7b67"
        assert result["api_key"] == "1234"

    def test_oauth_skips_signing(self):
        """Should not sign when an OAuth token is configured."""
        config = MediaConfig(cloud_name="test123", oauth_token="token")
        result = process_request_params({"public_id": "x", "tags": None}, {}, config)
        assert result == {"public_id": "x"}

    def test_presigned_options_pass_through(self):
        """Should send the caller's pre-signed options as the params."""
        options = {"signature": "abc", "api_key": "1234", "timestamp": 5, "public_id": "x"}
        result = process_request_params({"public_id": "ignored"}, options)
        assert result == options


class TestWebhookSignature:
    """Tests for webhook_signature function."""

    def test_known_signature(self):
        """Should hash body, timestamp and secret."""
        data = '{"public_id":"117e5550-7bfa-11e4-80d7-f962166bd3be","version":1417727468}'
        assert webhook_signature(data, 1417727468, "shhh") == "bac927006d3ce039ef7632e2c03189348d02924a"

    def test_requires_secret(self):
        """Should fail without a secret."""
        with pytest.raises(ConfigurationError):
            webhook_signature("{}", 1)


class TestVerifyNotificationSignature:
    """Tests for verify_notification_signature function."""

    @pytest.fixture
    def body(self):
        return json.dumps({"public_id": "b8sjhoslj8cq8ovoa0ma", "version": "1555337587", "width": 1000, "height": 800})

    def test_valid_signature(self, config, body):
        """Should accept a fresh, correctly signed body."""
        timestamp = int(time.time()) - 5000
        signature = webhook_signature(body, timestamp, "b")
        assert verify_notification_signature(body, timestamp, signature, config) is True

    def test_sha256_signature(self):
        """Should verify sha256 notifications."""
        config = MediaConfig(api_secret="hardcoded", signature_algorithm="sha256")
        body = '{"public_id":"b8sjhoslj8cq8ovoa0ma","version":"1555337587","width":1000,"height":800}'
        signature = "6c5a29fd8815772fbac2f10ae741e093d0859313947ef8fadeb29126ded6649c"
        assert verify_notification_signature(body, 7952342400000, signature, config) is True

    def test_tampered_body(self, config, body):
        """Should reject a body that does not match the signature."""
        timestamp = int(time.time())
        signature = webhook_signature(body, timestamp, "b")
        assert verify_notification_signature(body.replace("1000", "100"), timestamp, signature, config) is False

    def test_missing_arguments(self, config, body):
        """Should reject calls missing body, timestamp or signature."""
        assert verify_notification_signature(body, int(time.time()), None, config) is False
        assert verify_notification_signature(body, None, None, config) is False
        assert verify_notification_signature(None, None, None, config) is False

    def test_expired_timestamp(self, config, body):
        """Should reject notifications older than the default validity window."""
        timestamp = int(time.time()) - 10000
        signature = webhook_signature(body, timestamp, "b")
        assert verify_notification_signature(body, timestamp, signature, config) is False

    def test_custom_validity(self, config, body):
        """Should honor a custom validity window."""
        timestamp = int(time.time()) - 5000
        signature = webhook_signature(body, timestamp, "b")
        assert verify_notification_signature(body, timestamp, signature, config, valid_for=10) is False
