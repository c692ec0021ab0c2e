"""
Whisper controller: request-level business logic behind the /api/whispers routes.

Routes hand over raw form/query strings; this module validates them, talks to
the store, discovery engine and audio storage, and shapes wire responses.
"""

import logging
import math
from typing import Optional

from fastapi import UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response

from whispermap_backend.exceptions import WhisperNotFoundError, WhisperValidationError
from whispermap_backend.models.whisper import (
    GeoPoint,
    Reply,
    Whisper,
    WhisperCategory,
)
from whispermap_backend.services import WhisperServices

logger = logging.getLogger(__name__)
whisper_logger = logging.getLogger("whisper_processing")

TRUTHY_VALUES = {"true", "1", "yes", "on"}


def parse_flag(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in TRUTHY_VALUES


def _parse_float(value: Optional[str], name: str) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise WhisperValidationError(f"Invalid {name}: {value!r}")
    if not math.isfinite(number):
        raise WhisperValidationError(f"Invalid {name}: {value!r}")
    return number


def parse_coordinates(latitude: Optional[str], longitude: Optional[str]) -> GeoPoint:
    """Parse a lat/lng pair from request strings.

    Raises:
        WhisperValidationError: Missing, non-numeric or out-of-range coordinates
    """
    lat = _parse_float(latitude, "latitude")
    lng = _parse_float(longitude, "longitude")
    if lat is None or lng is None:
        raise WhisperValidationError("Missing coordinates")
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
        raise WhisperValidationError(f"Coordinates out of range: ({lat}, {lng})")
    return GeoPoint(latitude=lat, longitude=lng)


def _whisper_list_response(whispers: list) -> JSONResponse:
    return JSONResponse(content=[whisper.to_wire() for whisper in whispers])


async def get_nearby_whispers(
    services: WhisperServices,
    latitude: Optional[str],
    longitude: Optional[str],
    radius: Optional[str] = None,
    max_age_hours: Optional[str] = None,
    limit: Optional[int] = None,
    premium: bool = False,
) -> JSONResponse:
    """Live whispers around a point, newest first."""
    location = parse_coordinates(latitude, longitude)
    detection_radius = _parse_float(radius, "radius")
    if detection_radius is not None and detection_radius < 0:
        raise WhisperValidationError(f"Invalid radius: {radius!r}")

    whispers = await services.discovery.discover(
        location,
        detection_radius,
        premium=premium,
        max_age_hours=_parse_float(max_age_hours, "maxAgeHours"),
        max_count=limit,
    )
    whisper_logger.info(
        f"Found {len(whispers)} whispers near [{location.latitude}, {location.longitude}] "
        f"(radius {detection_radius or services.settings.default_detection_radius_meters}m)"
    )
    return _whisper_list_response(whispers)


def _resolve_lifetime_days(services: WhisperServices, expiration_days: Optional[str], premium: bool) -> int:
    if expiration_days is None or str(expiration_days).strip() == "":
        return services.settings.default_lifetime_days
    try:
        days = int(float(expiration_days))
    except (TypeError, ValueError):
        raise WhisperValidationError(f"Invalid expirationDays: {expiration_days!r}")
    limit = services.settings.lifetime_days_limit(premium)
    if days < 1:
        raise WhisperValidationError("expirationDays must be at least 1")
    if days > limit:
        raise WhisperValidationError(
            f"expirationDays {days} exceeds the {'premium' if premium else 'free'} limit of {limit}"
        )
    return days


def _resolve_whisper_radius(services: WhisperServices, radius: Optional[str], premium: bool) -> float:
    value = _parse_float(radius, "radius")
    if value is None:
        return services.settings.default_whisper_radius_meters
    limit = services.settings.whisper_radius_limit(premium)
    if value <= 0:
        raise WhisperValidationError("Whisper radius must be positive")
    if value > limit:
        raise WhisperValidationError(
            f"Whisper radius {value}m exceeds the {'premium' if premium else 'free'} limit of {limit}m"
        )
    return value


async def _read_upload(services: WhisperServices, audio: UploadFile) -> bytes:
    # Read one byte past the limit so oversize uploads are detected without buffering them whole
    content = await audio.read(services.audio_storage.max_upload_bytes + 1)
    if len(content) > services.audio_storage.max_upload_bytes:
        raise WhisperValidationError(
            f"Audio file too large (limit {services.audio_storage.max_upload_bytes} bytes)"
        )
    return content


async def create_whisper(
    services: WhisperServices,
    audio: Optional[UploadFile],
    latitude: Optional[str],
    longitude: Optional[str],
    category: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    expiration_days: Optional[str] = None,
    is_anonymous: Optional[str] = None,
    radius: Optional[str] = None,
    owner_id: Optional[str] = None,
    premium: bool = False,
) -> JSONResponse:
    """
    Store an uploaded whisper.

    Validation happens before any bytes are written; if persisting the record
    fails after the audio was saved, the audio is removed again.

    Returns:
        201 with the created whisper in wire format
    """
    if audio is None:
        raise WhisperValidationError("No audio file provided")
    location = parse_coordinates(latitude, longitude)
    lifetime_days = _resolve_lifetime_days(services, expiration_days, premium)
    whisper_radius = _resolve_whisper_radius(services, radius, premium)
    anonymous = parse_flag(is_anonymous)
    services.audio_storage.resolve_extension(audio.filename)

    content = await _read_upload(services, audio)
    audio_url = await services.audio_storage.save(content, audio.filename)

    draft = Whisper(
        location=location,
        audio_url=audio_url,
        category=WhisperCategory.parse(category),
        title=title or "Untitled Whisper",
        description=description or "",
        lifetime_days=lifetime_days,
        owner_id=None if anonymous else (owner_id or None),
        is_anonymous=anonymous,
        whisper_radius_meters=whisper_radius,
    )

    try:
        whisper_id = await services.store.insert(draft)
        created = await services.store.find_by_id(whisper_id)
    except Exception as e:
        logger.error(f"Error saving whisper: {e}", exc_info=True)
        await services.audio_storage.delete(audio_url)
        return JSONResponse(status_code=500, content={"error": f"Failed to process whisper: {e}"})

    whisper_logger.info(
        f"Created whisper {created.id} at [{location.latitude}, {location.longitude}] "
        f"category={created.category.value} expires={created.expires_at.isoformat()}"
    )
    return JSONResponse(status_code=201, content=created.to_wire())


async def get_user_whispers(services: WhisperServices, user_id: str) -> JSONResponse:
    """A user's own live whispers; anonymous ones are never attributed."""
    if not user_id or user_id == "anonymous":
        raise WhisperValidationError("User ID is required")
    whispers = await services.store.find_by_owner(user_id)
    logger.info(f"Found {len(whispers)} whispers for user {user_id}")
    return _whisper_list_response(whispers)


async def get_whisper(services: WhisperServices, whisper_id: str) -> JSONResponse:
    whisper = await services.store.find_by_id(whisper_id)
    return JSONResponse(content=whisper.to_wire())


async def add_reply(
    services: WhisperServices,
    whisper_id: str,
    audio: Optional[UploadFile] = None,
    text: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> JSONResponse:
    """Append a reply (audio, text or both) to a live whisper."""
    if audio is None and not (text and text.strip()):
        raise WhisperValidationError("A reply needs audio or text")

    # Fail fast before storing audio for a whisper that is gone
    await services.store.find_by_id(whisper_id)

    audio_url = None
    if audio is not None:
        content = await _read_upload(services, audio)
        audio_url = await services.audio_storage.save(content, audio.filename)

    reply = Reply(audio_url=audio_url, owner_id=owner_id or None, text=(text or "").strip() or None)
    try:
        updated = await services.store.append_reply(whisper_id, reply)
    except WhisperNotFoundError:
        if audio_url:
            await services.audio_storage.delete(audio_url)
        raise

    whisper_logger.info(f"Added reply {reply.id} to whisper {whisper_id}")
    return JSONResponse(status_code=201, content=updated.to_wire())


async def get_whisper_audio(services: WhisperServices, whisper_id: str, range_header: Optional[str] = None) -> Response:
    """
    Serve a whisper's audio with byte-range support for seeking.

    Returns:
        200 with the full file, 206 for a satisfiable Range, 416 otherwise

    Raises:
        WhisperNotFoundError: Whisper missing/expired or audio file gone
    """
    whisper = await services.store.find_by_id(whisper_id)
    path = services.audio_storage.path_for(whisper.audio_url)
    if path is None or not path.exists():
        logger.warning(f"Audio file missing for whisper {whisper_id}: {whisper.audio_url}")
        raise WhisperNotFoundError(whisper_id)

    media_type = services.audio_storage.media_type_for(path)
    no_cache = {"Cache-Control": "no-store, no-cache, must-revalidate"}

    if not range_header:
        return FileResponse(path, media_type=media_type, headers={"Accept-Ranges": "bytes", **no_cache})

    file_size = path.stat().st_size
    try:
        range_str = range_header.replace("bytes=", "")
        range_start, range_end = range_str.split("-")
        if not range_start:
            # Suffix form: the last N bytes
            suffix_length = int(range_end)
            if suffix_length <= 0:
                raise ValueError(f"Unsatisfiable range {range_header}")
            range_start = max(0, file_size - suffix_length)
            range_end = file_size - 1
        else:
            range_start = int(range_start)
            range_end = int(range_end) if range_end else file_size - 1

        range_start = max(0, range_start)
        range_end = min(file_size - 1, range_end)
        if range_start > range_end:
            raise ValueError(f"Unsatisfiable range {range_header}")
        content_length = range_end - range_start + 1

        with open(path, "rb") as f:
            f.seek(range_start)
            range_data = f.read(content_length)

        return Response(
            content=range_data,
            status_code=206,
            media_type=media_type,
            headers={
                "Content-Range": f"bytes {range_start}-{range_end}/{file_size}",
                "Content-Length": str(content_length),
                "Accept-Ranges": "bytes",
                **no_cache,
            },
        )
    except (ValueError, IndexError):
        return Response(status_code=416, headers={"Content-Range": f"bytes */{file_size}"})
