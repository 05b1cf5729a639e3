"""Chunked uploads.

Large files are cut into fixed-size chunks that are uploaded one after the
other. Every chunk is a complete signed upload request carrying a
``Content-Range`` header and the same ``X-Unique-Upload-Id``, so the
service can stitch them together. Only the last response contains the
finished resource.

The slicing lives in ChunkedUploadState, a plain state machine with no
I/O; UploadStream drives it and talks HTTP.
"""

import logging
from enum import Enum
from os import PathLike
from pathlib import Path
from typing import Any, BinaryIO, Callable, Union

import httpx

from .config import ConfigurationError
from .errors import ApiError
from .models import DEFAULT_CHUNK_SIZE, Chunk, MediaConfig
from .multipart import read_blocks
from .signing import process_request_params
from .uploader import build_upload_params, call_api, create_http_client, upload
from .url import api_url
from .utils import is_remote_url, random_public_id, timestamp


logger = logging.getLogger(__name__)

READ_BLOCK_SIZE = 64 * 1024

ProgressCallback = Callable[[int], None]
Source = Union[str, PathLike, BinaryIO]


class ChunkState(Enum):
    ACCUMULATING = "accumulating"
    EMITTING_CHUNK = "emitting_chunk"
    FINISHED = "finished"
    ERRORED = "errored"


class ChunkedUploadState:
    """Byte-buffering state machine that slices a stream into chunks.

    A full buffer is held back until more bytes arrive, so whichever chunk
    ``close`` emits is always the terminal one and carries the total size.

    Attributes:
        chunk_size: Size of every chunk except the last
        buffer: Bytes waiting to be emitted
        active: False once a chunk failed or the last chunk completed
        bytes_sent: Offset of the next chunk's first byte
        state: Current ChunkState
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size
        self.buffer = bytearray()
        self.active = True
        self.bytes_sent = 0
        self.state = ChunkState.ACCUMULATING

    def _emit(self, is_last: bool) -> Chunk:
        chunk = Chunk(data=bytes(self.buffer), start=self.bytes_sent, is_last=is_last)
        self.bytes_sent += len(chunk.data)
        self.buffer = bytearray()
        self.state = ChunkState.EMITTING_CHUNK
        return chunk

    def feed(self, data: bytes) -> list[Chunk]:
        """Accept a block of bytes.

        Returns:
            Chunks that are ready to upload, in order (often none)
        """
        if not self.active:
            # No backpressure: bytes after a failure are dropped.
            return []

        chunks = []
        view = memoryview(data)
        while len(self.buffer) + len(view) > self.chunk_size:
            grab = self.chunk_size - len(self.buffer)
            self.buffer += view[:grab]
            view = view[grab:]
            chunks.append(self._emit(is_last=False))
        self.buffer += view
        return chunks

    def close(self) -> Chunk | None:
        """End of source: emit the remaining buffer as the last chunk."""
        if not self.active:
            return None
        return self._emit(is_last=True)

    def complete(self, chunk: Chunk, failed: bool = False) -> bool:
        """Record the outcome of a chunk upload.

        Returns:
            True if the machine accepts more bytes
        """
        if failed:
            self.state = ChunkState.ERRORED
            self.active = False
        elif chunk.is_last:
            self.state = ChunkState.FINISHED
            self.active = False
        else:
            self.state = ChunkState.ACCUMULATING
        return self.active


class UploadStream:
    """Writable sink that uploads everything written to it in chunks.

    Write bytes with ``await stream.write(data)`` and finish with
    ``await stream.close()``, which returns the final response or raises the
    first chunk error. After a failed chunk, further writes are ignored.

    Args:
        options: Upload options (public_id, chunk_size, filename, ...)
        config: Account configuration
        client: Optional shared httpx client
        on_progress: Called with the number of bytes uploaded after each chunk

    Raises:
        ConfigurationError: If the cloud name, credentials or chunk size are invalid
    """

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        config: MediaConfig | None = None,
        client: httpx.AsyncClient | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.options = dict(options or {})
        self.config = config or MediaConfig()
        self.options.setdefault("filename", "file")
        chunk_size = self.options.get("chunk_size") or self.options.get("part_size") or self.config.chunk_size
        self.state = ChunkedUploadState(chunk_size)
        self.unique_upload_id = random_public_id()
        self.params = build_upload_params(self.options, self.config)
        self.on_progress = on_progress
        self.result: dict[str, Any] | None = None
        self.error: ApiError | None = None
        self._client = client
        self._owns_client = client is None

        # Fail before any byte is read if the call could never be made.
        api_url("upload", self.options, self.config)
        process_request_params(dict(self.params), self.options, self.config)

    async def __aenter__(self) -> "UploadStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self._release_client()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_http_client(self.config)
        return self._client

    async def _release_client(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, chunk: Chunk) -> bool:
        params = dict(self.params)
        params["timestamp"] = timestamp()
        headers = {
            "Content-Range": chunk.content_range,
            "X-Unique-Upload-Id": self.unique_upload_id,
        }
        logger.debug("Uploading chunk %s (%s)", chunk.content_range, self.unique_upload_id)

        try:
            result = await call_api(
                "upload",
                params,
                self.options,
                self.config,
                file=chunk.data,
                headers=headers,
                client=self._http(),
            )
        except ApiError as e:
            logger.debug("Chunk %s failed: %s", chunk.content_range, e.message)
            self.error = e
            self.state.complete(chunk, failed=True)
            return False

        self.result = result
        if self.on_progress is not None:
            self.on_progress(chunk.end + 1)
        return self.state.complete(chunk)

    async def write(self, data: bytes) -> None:
        """Buffer data, uploading each chunk as soon as it is complete."""
        for chunk in self.state.feed(data):
            if not await self._send(chunk):
                break

    async def close(self) -> dict[str, Any]:
        """Upload the last chunk and return the final response.

        Raises:
            ApiError: The first error any chunk reported
        """
        try:
            chunk = self.state.close()
            if chunk is not None:
                await self._send(chunk)
        finally:
            await self._release_client()

        if self.error is not None:
            raise self.error
        return self.result or {}


def upload_chunked_stream(
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    client: httpx.AsyncClient | None = None,
    on_progress: ProgressCallback | None = None,
) -> UploadStream:
    """Create a stream that uploads whatever is written to it in chunks."""
    return UploadStream(options, config, client=client, on_progress=on_progress)


def upload_large_stream(
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    client: httpx.AsyncClient | None = None,
    on_progress: ProgressCallback | None = None,
) -> UploadStream:
    """Like upload_chunked_stream, defaulting the resource type to raw."""
    options = {"resource_type": "raw", **(options or {})}
    return upload_chunked_stream(options, config, client=client, on_progress=on_progress)


async def upload_chunked(
    source: Source,
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    client: httpx.AsyncClient | None = None,
    on_progress: ProgressCallback | None = None,
) -> dict[str, Any]:
    """Upload a file (path or binary file object) in chunks."""
    stream = upload_chunked_stream(options, config, client=client, on_progress=on_progress)
    async with stream:
        if isinstance(source, (str, PathLike)):
            with open(source, "rb") as f:
                async for block in read_blocks(f, READ_BLOCK_SIZE):
                    await stream.write(block)
        else:
            async for block in read_blocks(source, READ_BLOCK_SIZE):
                await stream.write(block)
        return await stream.close()


async def upload_large(
    path: Source,
    options: dict[str, Any] | None = None,
    config: MediaConfig | None = None,
    client: httpx.AsyncClient | None = None,
    on_progress: ProgressCallback | None = None,
) -> dict[str, Any]:
    """Upload a large file in chunks.

    Remote URLs are handed to a regular upload. Local files default to the
    raw resource type and are named after the file (without extension).
    """
    options = dict(options or {})
    if is_remote_url(path):
        return await upload(path, options, config, client=client)
    if isinstance(path, (str, PathLike)) and not options.get("filename"):
        options["filename"] = Path(path).stem
    options.setdefault("resource_type", "raw")
    return await upload_chunked(path, options, config, client=client, on_progress=on_progress)
