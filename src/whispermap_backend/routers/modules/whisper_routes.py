"""
Whisper routes for the WhisperMap API.

Handles nearby discovery, whisper upload, per-user listing, replies and
audio serving. Identity and premium tier are supplied by the fronting
auth/payment layer through the ``user-id`` and ``x-premium-user`` headers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, Query, Request, UploadFile

from whispermap_backend.controllers import whisper_controller
from whispermap_backend.services import WhisperServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whispers", tags=["whispers"])


def get_premium_flag(x_premium_user: Optional[str] = Header(default=None)) -> bool:
    """Premium tier widens radius and lifetime limits."""
    return whisper_controller.parse_flag(x_premium_user)


@router.get("")
async def get_nearby_whispers(
    lat: Optional[str] = Query(default=None, description="Latitude of the listener"),
    lng: Optional[str] = Query(default=None, description="Longitude of the listener"),
    latitude: Optional[str] = Query(default=None, description="Alias of lat"),
    longitude: Optional[str] = Query(default=None, description="Alias of lng"),
    radius: Optional[str] = Query(default=None, description="Detection radius in meters"),
    max_age_hours: Optional[str] = Query(default=None, alias="maxAgeHours", description="Only whispers created within this many hours"),
    limit: Optional[int] = Query(default=None, ge=1, le=500, description="Max whispers to return"),
    premium: bool = Depends(get_premium_flag),
    services: WhisperServices = Depends(get_services),
):
    """Live whispers within the detection radius, newest first."""
    return await whisper_controller.get_nearby_whispers(
        services,
        lat if lat is not None else latitude,
        lng if lng is not None else longitude,
        radius=radius,
        max_age_hours=max_age_hours,
        limit=limit,
        premium=premium,
    )


@router.post("")
async def upload_whisper(
    audio: Optional[UploadFile] = File(default=None),
    latitude: Optional[str] = Form(default=None),
    longitude: Optional[str] = Form(default=None),
    category: Optional[str] = Form(default=None),
    title: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    expiration_days: Optional[str] = Form(default=None, alias="expirationDays"),
    is_anonymous: Optional[str] = Form(default=None, alias="isAnonymous"),
    radius: Optional[str] = Form(default=None, description="Whisper broadcast radius in meters"),
    owner_id: Optional[str] = Form(default=None, alias="ownerId"),
    user_id: Optional[str] = Header(default=None, alias="user-id"),
    premium: bool = Depends(get_premium_flag),
    services: WhisperServices = Depends(get_services),
):
    """Upload a whisper (multipart audio plus metadata)."""
    return await whisper_controller.create_whisper(
        services,
        audio,
        latitude,
        longitude,
        category=category,
        title=title,
        description=description,
        expiration_days=expiration_days,
        is_anonymous=is_anonymous,
        radius=radius,
        owner_id=owner_id or user_id,
        premium=premium,
    )


@router.get("/user/{user_id}")
async def get_user_whispers(user_id: str, services: WhisperServices = Depends(get_services)):
    """Whispers owned by a user, excluding anonymous ones."""
    return await whisper_controller.get_user_whispers(services, user_id)


@router.get("/{whisper_id}")
async def get_whisper(whisper_id: str, services: WhisperServices = Depends(get_services)):
    """A single live whisper with its replies."""
    return await whisper_controller.get_whisper(services, whisper_id)


@router.get("/{whisper_id}/audio")
async def get_whisper_audio(
    whisper_id: str,
    request: Request,
    services: WhisperServices = Depends(get_services),
):
    """Stream a whisper's audio; honours Range requests for seeking."""
    return await whisper_controller.get_whisper_audio(services, whisper_id, request.headers.get("range"))


@router.post("/{whisper_id}/replies")
async def add_reply(
    whisper_id: str,
    audio: Optional[UploadFile] = File(default=None),
    text: Optional[str] = Form(default=None),
    owner_id: Optional[str] = Form(default=None, alias="ownerId"),
    user_id: Optional[str] = Header(default=None, alias="user-id"),
    services: WhisperServices = Depends(get_services),
):
    """Reply to a whisper with audio, text or both."""
    return await whisper_controller.add_reply(
        services, whisper_id, audio=audio, text=text, owner_id=owner_id or user_id
    )
