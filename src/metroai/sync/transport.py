"""Async HTTP transport for the MetroAI photo API."""

import json
from typing import Any

import httpx

from metroai import __version__
from metroai.sync.auth import AuthProvider
from metroai.sync.errors import (
    DecodeError,
    NetworkError,
    ServerRejectedError,
    UnauthorizedError,
)
from metroai.sync.models import LeaderboardEntry, UploadMetadata, UserStatsSnapshot


class TransportClient:
    """Async HTTP client for photo uploads and annotation updates.

    Uses a single httpx.AsyncClient for connection pooling. Performs exactly
    one request per call: retrying is the upload coordinator's job. Every
    failure is raised as one of the UploadError subclasses so callers never
    see raw httpx exceptions.
    """

    def __init__(
        self,
        base_url: str,
        auth: AuthProvider,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Base URL of the API server (e.g., http://localhost:8000)
            auth: Provider of the bearer token
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used to stub the network)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth = auth

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": f"metroai-uploader/{__version__}",
            },
            transport=transport,
        )

    def _auth_headers(self) -> dict[str, str]:
        token = self._auth.get_bearer_token()
        if not token:
            raise UnauthorizedError("No access token available")
        return {"Authorization": f"Bearer {token}"}

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one authenticated request and check its status."""
        headers = self._auth_headers()

        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timeout: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Connection error: {e}") from e
        except httpx.DecodingError as e:
            raise DecodeError(f"Response decoding failed: {e}") from e
        except httpx.HTTPError as e:
            # No clean HTTP status to judge by: treat as connectivity
            raise NetworkError(f"HTTP error: {e}") from e

        if response.status_code == 401:
            raise UnauthorizedError("Unauthorized access")

        if not response.is_success:
            raise ServerRejectedError(response.status_code, response.text[:200] or None)

        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Failed to decode server response: {e}") from e

    async def upload_photo(self, metadata: UploadMetadata, image_bytes: bytes) -> int:
        """Upload a photo with its metadata.

        Args:
            metadata: Upload metadata built from the capture record
            image_bytes: Encoded JPEG bytes

        Returns:
            The user's point total after the upload, as reported by the server
        """
        files = {"file": ("photo.jpg", image_bytes, "image/jpeg")}
        data = {"metadata": json.dumps(metadata.to_dict())}

        response = await self._send("POST", "/api/photos/upload", files=files, data=data)

        payload = self._json(response)
        points = payload.get("points") if isinstance(payload, dict) else None
        if not isinstance(points, int) or isinstance(points, bool):
            raise DecodeError("Upload response missing integer 'points'")
        return points

    async def upload_annotation_patch(
        self,
        server_photo_id: str,
        metadata: UploadMetadata,
    ) -> None:
        """Update annotation metadata of an already uploaded photo.

        Args:
            server_photo_id: Server-side photo ID
            metadata: Updated annotation metadata
        """
        await self._send(
            "PATCH",
            f"/api/photos/{server_photo_id}/annotation",
            json=metadata.to_dict(),
        )

    async def fetch_user_stats(self) -> UserStatsSnapshot:
        """Fetch the authenticated user's statistics from the server."""
        response = await self._send("GET", "/api/user/stats")
        payload = self._json(response)
        try:
            return UserStatsSnapshot(
                user_id=str(payload["user_id"]),
                username=str(payload["username"]),
                points=int(payload["points"]),
                photos_uploaded=int(payload["photos_uploaded"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Malformed stats response: {e}") from e

    async def fetch_leaderboard(self, limit: int = 50, offset: int = 0) -> list[LeaderboardEntry]:
        """Fetch one page of the points leaderboard.

        Args:
            limit: Maximum number of entries to return
            offset: Number of entries to skip, for paging

        Returns:
            Entries in the order the server ranked them
        """
        response = await self._send(
            "GET",
            "/api/leaderboard",
            params={"limit": limit, "offset": offset},
        )
        payload = self._json(response)
        if not isinstance(payload, list):
            raise DecodeError("Leaderboard response is not a list")
        try:
            return [
                LeaderboardEntry(
                    user_id=str(item["user_id"]),
                    username=str(item["username"]),
                    points=int(item["points"]),
                    rank=int(item["rank"]),
                )
                for item in payload
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Malformed leaderboard response: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "TransportClient":
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
