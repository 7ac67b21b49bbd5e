"""
Third-party call providers.

Each provider turns a room name and expiry into a ProvisionedRoom and knows
how its join handle is shaped in the API response. RoomProvisioningService
owns everything else (auth, persistence, notifications).
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from core.exceptions import ConfigurationError, UpstreamError
from core.logger import logger
from database.models import CallProviderKind, VideoCall
from services.call_tokens import TokenMinter, SERVER_PERMISSIONS, PARTICIPANT_PERMISSIONS
import config

VIDEO_CALL_MESSAGE = 'Admin has started a video call regarding: "{title}"'
VOICE_CALL_MESSAGE = 'Admin is requesting a voice call regarding your complaint: "{title}"'


def _iso(value: datetime) -> str:
    return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


def _epoch(value: datetime) -> int:
    return int(value.replace(tzinfo=timezone.utc).timestamp())


def _json_object(response: httpx.Response, provider: str, error_message: str) -> Dict[str, Any]:
    """Decode a 2xx provider body, which must be a JSON object."""
    try:
        data = response.json()
    except ValueError:
        logger.error(f"{provider} returned a non-JSON body: {response.text[:200]}")
        raise UpstreamError(error_message)
    if not isinstance(data, dict):
        logger.error(f"{provider} returned an unexpected body: {data!r}")
        raise UpstreamError(error_message)
    return data


@dataclass
class ProvisionedRoom:
    room_id: str
    room_url: Optional[str] = None
    token: Optional[str] = None


# ============================================================================
# Settings
# ============================================================================

@dataclass(frozen=True)
class DailySettings:
    api_key: str
    api_url: str
    timeout: float

    @classmethod
    def from_config(cls) -> "DailySettings":
        if not config.DAILY_API_KEY:
            raise ConfigurationError("DAILY_API_KEY is not configured")
        return cls(
            api_key=config.DAILY_API_KEY,
            api_url=config.DAILY_API_URL.rstrip("/"),
            timeout=config.CALL_PROVIDER_TIMEOUT_SECONDS
        )


@dataclass(frozen=True)
class VideoSDKSettings:
    api_key: str
    secret: str
    api_url: str
    timeout: float

    @classmethod
    def from_config(cls) -> "VideoSDKSettings":
        if not config.VIDEOSDK_API_KEY or not config.VIDEOSDK_SECRET:
            raise ConfigurationError("VideoSDK not configured")
        return cls(
            api_key=config.VIDEOSDK_API_KEY,
            secret=config.VIDEOSDK_SECRET,
            api_url=config.VIDEOSDK_API_URL.rstrip("/"),
            timeout=config.CALL_PROVIDER_TIMEOUT_SECONDS
        )


@dataclass(frozen=True)
class ZegoSettings:
    app_id: int
    app_sign: str

    @classmethod
    def from_config(cls) -> "ZegoSettings":
        if not config.ZEGO_APP_ID or not config.ZEGO_APP_SIGN:
            raise ConfigurationError("ZEGO_APP_ID and ZEGO_APP_SIGN are not configured")
        try:
            app_id = int(config.ZEGO_APP_ID)
        except ValueError:
            raise ConfigurationError("ZEGO_APP_ID must be numeric")
        return cls(app_id=app_id, app_sign=config.ZEGO_APP_SIGN)


# ============================================================================
# Providers
# ============================================================================

class CallProvider:
    """Base capability: create a room and describe how to join it."""

    kind: CallProviderKind
    requires_admin = False
    room_ttl = timedelta(hours=1)
    notification_message = VIDEO_CALL_MESSAGE

    async def create_room(self, name: str, expires_at: datetime) -> ProvisionedRoom:
        raise NotImplementedError

    def join_response(self, room: ProvisionedRoom, call: VideoCall) -> Dict[str, Any]:
        raise NotImplementedError


class DailyRoomProvider(CallProvider):
    """URL-based rooms: the response carries a directly openable room URL."""

    kind = CallProviderKind.DAILY

    def __init__(self, settings: DailySettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    async def create_room(self, name: str, expires_at: datetime) -> ProvisionedRoom:
        body = {
            "name": name,
            "privacy": "public",
            "properties": {
                "exp": _epoch(expires_at),
                "enable_chat": True,
                "enable_screenshare": True,
            },
        }
        headers = {"Authorization": f"Bearer {self.settings.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.settings.api_url}/rooms", json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Daily room request failed: {e}")
            raise UpstreamError("Failed to create video room")

        if response.status_code >= 400:
            logger.error(f"Daily API error {response.status_code}: {response.text}")
            raise UpstreamError("Failed to create video room")

        data = _json_object(response, "Daily API", "Failed to create video room")
        if not data.get("url"):
            logger.error(f"Daily API returned no room url: {data}")
            raise UpstreamError("Failed to create video room")
        return ProvisionedRoom(room_id=data.get("name") or name, room_url=data["url"])

    def join_response(self, room: ProvisionedRoom, call: VideoCall) -> Dict[str, Any]:
        return {
            "roomUrl": room.room_url,
            "roomName": room.room_id,
            "videoCallId": call.id,
            "expiresAt": _iso(call.expires_at),
        }


class VideoSDKRoomProvider(CallProvider):
    """Token-based rooms: room id plus a signed participant token. Admin only."""

    kind = CallProviderKind.VIDEOSDK
    requires_admin = True
    room_ttl = timedelta(hours=24)
    notification_message = VOICE_CALL_MESSAGE

    def __init__(self, settings: VideoSDKSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.minter = TokenMinter(settings.api_key, settings.secret)
        self._transport = transport

    async def create_room(self, name: str, expires_at: datetime) -> ProvisionedRoom:
        server_token = self.minter.mint(SERVER_PERMISSIONS)
        headers = {"Authorization": server_token}
        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.settings.api_url}/rooms",
                    json={"customRoomId": name},
                    headers=headers
                )
        except httpx.HTTPError as e:
            logger.error(f"VideoSDK room request failed: {e}")
            raise UpstreamError("Failed to create voice room")

        if response.status_code >= 400:
            logger.error(f"VideoSDK room creation failed {response.status_code}: {response.text}")
            raise UpstreamError("Failed to create voice room")

        data = _json_object(response, "VideoSDK API", "Failed to create voice room")
        room_id = data.get("roomId")
        if not room_id:
            logger.error(f"VideoSDK API returned no room id: {data}")
            raise UpstreamError("Failed to create voice room")

        expiry_seconds = int(self.room_ttl.total_seconds())
        token = self.minter.mint(PARTICIPANT_PERMISSIONS, expiry_seconds=expiry_seconds)
        return ProvisionedRoom(room_id=room_id, room_url=f"videosdk://{room_id}", token=token)

    def join_response(self, room: ProvisionedRoom, call: VideoCall) -> Dict[str, Any]:
        return {
            "success": True,
            "roomId": room.room_id,
            "token": room.token,
            "videoCallId": call.id,
            "expiresAt": _iso(call.expires_at),
        }


class ZegoRoomProvider(CallProvider):
    """Client-handle rooms: the client joins by room id with the app credentials."""

    kind = CallProviderKind.ZEGO

    def __init__(self, settings: ZegoSettings):
        self.settings = settings

    async def create_room(self, name: str, expires_at: datetime) -> ProvisionedRoom:
        # Rooms are created implicitly when the first client joins
        return ProvisionedRoom(room_id=name)

    def join_response(self, room: ProvisionedRoom, call: VideoCall) -> Dict[str, Any]:
        return {
            "roomId": room.room_id,
            "appId": self.settings.app_id,
            "appSign": self.settings.app_sign,
            "videoCallId": call.id,
            "expiresAt": _iso(call.expires_at),
        }


def video_provider_from_config(transport: Optional[httpx.AsyncBaseTransport] = None) -> CallProvider:
    """Provider behind the video-room endpoint, chosen by VIDEO_CALL_PROVIDER."""
    name = config.VIDEO_CALL_PROVIDER
    if name == CallProviderKind.DAILY.value:
        return DailyRoomProvider(DailySettings.from_config(), transport=transport)
    if name == CallProviderKind.ZEGO.value:
        return ZegoRoomProvider(ZegoSettings.from_config())
    raise ConfigurationError(f"Unknown VIDEO_CALL_PROVIDER: {name}")


def voice_provider_from_config(transport: Optional[httpx.AsyncBaseTransport] = None) -> CallProvider:
    return VideoSDKRoomProvider(VideoSDKSettings.from_config(), transport=transport)
