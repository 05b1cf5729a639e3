"""Shared fixtures for CDN Media tests."""

import re

import httpx
import pytest

from cdn_media.models import MediaConfig


@pytest.fixture
def config():
    """Account configuration used by API tests."""
    return MediaConfig(cloud_name="test123", api_key="a", api_secret="b")


@pytest.fixture
def mock_client():
    """Factory for httpx clients served by a handler function."""
    def factory(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return factory


def parse_form(request: httpx.Request) -> dict[str, bytes]:
    """Split a multipart/form-data request body into {name: value}."""
    boundary = request.headers["Content-Type"].split("boundary=")[1]
    fields = {}
    for part in request.content.split(f"--{boundary}".encode()):
        header, sep, value = part.partition(b"\r\n\r\n")
        if not sep:
            continue
        name = re.search(rb'name="([^"]+)"', header).group(1).decode()
        fields[name] = value[:-2]
    return fields


def form_filename(request: httpx.Request) -> str | None:
    match = re.search(rb'name="file"; filename="([^"]*)"', request.content)
    return match.group(1).decode() if match else None
