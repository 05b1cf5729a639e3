"""multipart/form-data body encoding.

The body is produced lazily: field parts first, then the file part, whose
bytes are read block by block from disk or a file object instead of being
loaded up front.
"""

import asyncio
from os import PathLike
from pathlib import Path
from typing import Any, AsyncIterator, BinaryIO, Iterator, Union

from .utils import random_public_id, to_param_string


BLOCK_SIZE = 64 * 1024

FileSource = Union[bytes, bytearray, memoryview, str, PathLike, BinaryIO]


async def read_blocks(f: BinaryIO, block_size: int = BLOCK_SIZE) -> AsyncIterator[bytes]:
    """Read a binary file block by block in a worker thread."""
    while True:
        block = await asyncio.to_thread(f.read, block_size)
        if not block:
            return
        yield block


def hash_to_parameters(params: dict[str, Any]) -> list[tuple[str, Any]]:
    """Flatten params into (key, value) entries; lists become ``key[]`` entries."""
    entries = []
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            name = key if key.endswith("[]") else f"{key}[]"
            entries.extend((name, item) for item in value)
        else:
            entries.append((key, value))
    return entries


def encode_field_part(boundary: str, name: str, value: Any) -> bytes:
    return "\r\n".join([
        f"--{boundary}",
        f'Content-Disposition: form-data; name="{name}"',
        "",
        to_param_string(value),
        "",
    ]).encode("utf-8")


def encode_file_part(boundary: str, content_type: str, name: str, filename: str) -> bytes:
    return "\r\n".join([
        f"--{boundary}",
        f'Content-Disposition: form-data; name="{name}"; filename="{filename}"',
        f"Content-Type: {content_type}",
        "",
        "",
    ]).encode("utf-8")


class MultipartEncoder:
    """Streaming multipart/form-data encoder.

    Args:
        fields: Form fields; None values are dropped
        file: Optional file part as bytes, a path or a binary file object
        filename: Filename reported for the file part (default: basename or "file")
        boundary: Boundary token (random when omitted)
        file_content_type: Content-Type of the file part
    """

    def __init__(
        self,
        fields: dict[str, Any],
        file: FileSource | None = None,
        filename: str | None = None,
        boundary: str | None = None,
        file_content_type: str = "application/octet-stream",
    ):
        self.boundary = boundary or random_public_id()
        self.fields = [(key, value) for key, value in hash_to_parameters(fields) if value is not None]
        self.file = file
        self.filename = filename or self._default_filename(file)
        self.file_content_type = file_content_type

    @staticmethod
    def _default_filename(file: FileSource | None) -> str:
        if isinstance(file, (str, PathLike)):
            return Path(file).name
        name = getattr(file, "name", None)
        if isinstance(name, str):
            return Path(name).name
        return "file"

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def _iter_file(self) -> Iterator[bytes]:
        if isinstance(self.file, (bytes, bytearray, memoryview)):
            yield bytes(self.file)
        elif isinstance(self.file, (str, PathLike)):
            with open(self.file, "rb") as f:
                yield from iter(lambda: f.read(BLOCK_SIZE), b"")
        else:
            yield from iter(lambda: self.file.read(BLOCK_SIZE), b"")

    def _iter_head(self) -> Iterator[bytes]:
        for name, value in self.fields:
            yield encode_field_part(self.boundary, name, value)
        if self.file is not None:
            yield encode_file_part(self.boundary, self.file_content_type, "file", self.filename)

    def _tail(self) -> bytes:
        if self.file is None:
            return f"--{self.boundary}--".encode("ascii")
        return f"\r\n--{self.boundary}--".encode("ascii")

    def __iter__(self) -> Iterator[bytes]:
        yield from self._iter_head()
        if self.file is not None:
            yield from self._iter_file()
        yield self._tail()

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Async view of the body, as required by httpx.AsyncClient.

        File reads run in a worker thread so the event loop is not blocked.
        """
        for block in self._iter_head():
            yield block
        if isinstance(self.file, (bytes, bytearray, memoryview)):
            yield bytes(self.file)
        elif isinstance(self.file, (str, PathLike)):
            with open(self.file, "rb") as f:
                async for block in read_blocks(f):
                    yield block
        elif self.file is not None:
            async for block in read_blocks(self.file):
                yield block
        yield self._tail()

    def to_bytes(self) -> bytes:
        """Encode the whole body at once."""
        return b"".join(self)
