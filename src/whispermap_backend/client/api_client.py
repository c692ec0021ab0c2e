"""HTTP client for the whisper service."""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from whispermap_backend.exceptions import TransientFetchError, WhisperValidationError
from whispermap_backend.models.whisper import GeoPoint, Whisper, WhisperCategory

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def _parse_whispers(payload: Any) -> List[Whisper]:
    if not isinstance(payload, list):
        raise TransientFetchError(f"Unexpected whisper list payload: {type(payload).__name__}")
    whispers = []
    for item in payload:
        try:
            whispers.append(Whisper.from_wire(item))
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping malformed whisper record from server: {e}")
    return whispers


class WhisperApiClient:
    """Async client for the ``/api/whispers`` endpoints.

    Network failures, timeouts and server errors raise
    :class:`TransientFetchError`; a 400 raises :class:`WhisperValidationError`.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        user_id: Optional[str] = None,
        premium: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {}
        if user_id:
            headers["user-id"] = user_id
        if premium:
            headers["x-premium-user"] = "true"
        self.user_id = user_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "WhisperApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientFetchError(f"Request to {url} timed out") from e
        except httpx.HTTPError as e:
            raise TransientFetchError(f"Request to {url} failed: {e}") from e

        if response.status_code == 400:
            raise WhisperValidationError(_error_message(response))
        if response.status_code >= 400:
            raise TransientFetchError(
                f"Whisper service returned {response.status_code}: {_error_message(response)}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransientFetchError(f"Invalid JSON from {url}") from e

    async def fetch_nearby(
        self,
        location: GeoPoint,
        radius_meters: Optional[float] = None,
        limit: Optional[int] = None,
        max_age_hours: Optional[float] = None,
    ) -> List[Whisper]:
        """Live whispers around ``location``, newest first."""
        params: Dict[str, Any] = {"lat": location.latitude, "lng": location.longitude}
        if radius_meters is not None:
            params["radius"] = radius_meters
        if limit is not None:
            params["limit"] = limit
        if max_age_hours is not None:
            params["maxAgeHours"] = max_age_hours
        payload = await self._request("GET", "/api/whispers", params=params)
        whispers = _parse_whispers(payload)
        logger.debug(f"Fetched {len(whispers)} whispers near {location.latitude},{location.longitude}")
        return whispers

    async def fetch_user_whispers(self, user_id: str) -> List[Whisper]:
        payload = await self._request("GET", f"/api/whispers/user/{user_id}")
        return _parse_whispers(payload)

    async def fetch_whisper(self, whisper_id: str) -> Whisper:
        payload = await self._request("GET", f"/api/whispers/{whisper_id}")
        return Whisper.from_wire(payload)

    async def submit_whisper(
        self,
        audio: bytes,
        location: GeoPoint,
        *,
        filename: str = "recording.webm",
        category: WhisperCategory = WhisperCategory.GENERAL,
        title: Optional[str] = None,
        description: Optional[str] = None,
        expiration_days: Optional[int] = None,
        is_anonymous: bool = False,
        radius_meters: Optional[float] = None,
    ) -> Whisper:
        """Upload a recording with its metadata; returns the stored whisper."""
        data: Dict[str, Any] = {
            "latitude": str(location.latitude),
            "longitude": str(location.longitude),
            "category": WhisperCategory.parse(category).value,
            "isAnonymous": "true" if is_anonymous else "false",
        }
        if title:
            data["title"] = title
        if description:
            data["description"] = description
        if expiration_days is not None:
            data["expirationDays"] = str(expiration_days)
        if radius_meters is not None:
            data["radius"] = str(radius_meters)
        if self.user_id and not is_anonymous:
            data["ownerId"] = self.user_id

        files = {"audio": (filename, audio, "application/octet-stream")}
        payload = await self._request("POST", "/api/whispers", data=data, files=files)
        whisper = Whisper.from_wire(payload)
        logger.info(f"Submitted whisper {whisper.id}")
        return whisper
