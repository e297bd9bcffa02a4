"""Async HTTP transfer client for queued media uploads."""

import json
import mimetypes
from typing import Any, Callable, Protocol

import httpx

from mediaqueue import __version__
from mediaqueue.sync.errors import TransferFailed
from mediaqueue.sync.records import MediaKind, UploadPayload

ProgressCallback = Callable[[int], None]

_FALLBACK_CONTENT_TYPES = {
    MediaKind.IMAGE: "image/jpeg",
    MediaKind.VIDEO: "video/mp4",
}


class TransferClient(Protocol):
    """Transport used by the QueueManager to deliver one payload.

    Implementations perform a single attempt and raise TransferFailed on any
    error. Retries are the caller's job.
    """

    async def send(
        self,
        payload: UploadPayload,
        progress: ProgressCallback | None = None,
    ) -> str | None: ...


def content_type_for(payload: UploadPayload) -> str:
    """Guess the MIME type from the filename, falling back to the media kind."""
    guessed, _ = mimetypes.guess_type(payload.filename)
    if guessed and guessed.split("/", 1)[0] == payload.kind.value:
        return guessed
    return _FALLBACK_CONTENT_TYPES[payload.kind]


class HttpTransferClient:
    """Uploads media to the server as multipart form data.

    Uses httpx.AsyncClient for connection pooling. Every non-2xx response,
    timeout and transport error is reported as TransferFailed.
    """

    def __init__(
        self,
        server_url: str,
        upload_path: str = "/api/media/upload",
        health_path: str = "/health",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transfer client.

        Args:
            server_url: Base URL of the media server (e.g., http://localhost:3001)
            upload_path: Path of the upload endpoint
            health_path: Path polled by check_server()
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.server_url = server_url.rstrip("/")
        self.upload_path = upload_path
        self.health_path = health_path
        self.timeout = timeout

        # Create reusable client with connection pooling
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": f"mediaqueue/{__version__}",
            },
            transport=transport,
        )

    async def send(
        self,
        payload: UploadPayload,
        progress: ProgressCallback | None = None,
    ) -> str | None:
        """Upload one payload.

        Args:
            payload: Media bytes with kind and filename
            progress: Optional callback receiving a percentage (0-100)

        Returns:
            Media id assigned by the server, if it returned one

        Raises:
            TransferFailed: On any non-2xx response or network error
        """
        if progress:
            progress(0)

        files = {
            "file": (payload.filename, payload.data, content_type_for(payload)),
        }
        data = {"type": payload.kind.value}

        try:
            response = await self._client.post(
                f"{self.server_url}{self.upload_path}",
                files=files,
                data=data,
            )
        except httpx.ConnectError as e:
            raise TransferFailed(f"Connection error: {e}") from e
        except httpx.TimeoutException as e:
            raise TransferFailed(f"Timeout: {e}") from e
        except httpx.HTTPError as e:
            raise TransferFailed(f"HTTP error: {e}") from e

        if 400 <= response.status_code < 500:
            raise TransferFailed(
                f"Client error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        if not response.is_success:
            raise TransferFailed(
                f"Server error: {response.status_code}",
                status_code=response.status_code,
            )

        if progress:
            progress(100)

        return self._media_id(response)

    @staticmethod
    def _media_id(response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except json.JSONDecodeError:
            return None
        if not isinstance(body, dict):
            return None
        data = body.get("data")
        if isinstance(data, dict) and data.get("id") is not None:
            return str(data["id"])
        if body.get("id") is not None:
            return str(body["id"])
        return None

    async def check_server(self) -> bool:
        """Check if the server is available.

        Returns:
            True if server responds to health check, False otherwise
        """
        try:
            response = await self._client.get(
                f"{self.server_url}{self.health_path}",
                timeout=httpx.Timeout(5.0),
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "HttpTransferClient":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
