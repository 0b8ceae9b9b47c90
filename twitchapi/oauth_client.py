#!/usr/bin/env python3
"""
OAuthClient
Twitch OAuth endpoints (refresh, validate, device code grant) over aiohttp
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from core.interfaces import AuthInterface
from twitchapi.tokens import LiveToken

LOGGER = logging.getLogger(__name__)

TWITCH_AUTH_BASE_URL = "https://id.twitch.tv/oauth2"
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"


class RefreshError(Exception):
    """Refreshing the access token failed"""


class RefreshRequestError(RefreshError):
    """Network/transport error or unexpected status from the token endpoint"""


class NoRefreshToken(RefreshError):
    """The token has no refresh token attached"""


class NoClientSecret(RefreshError):
    """No client secret configured, refresh is impossible"""


class RefreshUnauthorized(RefreshError):
    """Twitch rejected the refresh token (revoked or already used)"""


class ValidationError(Exception):
    """Validating the access token failed"""


class ValidationRequestError(ValidationError):
    """Network/transport error or unexpected status from /validate"""


class TokenInvalid(ValidationError):
    """Twitch answered 401: the access token is expired or revoked"""


class DeviceFlowError(Exception):
    """Device code grant denied, expired or malformed"""


@dataclass
class DeviceCode:
    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int
    scopes: list[str]


class OAuthClient(AuthInterface):
    """
    Thin client over id.twitch.tv
    - refresh(token) -> new LiveToken
    - validate(token) -> LiveToken updated with login/user_id/scopes/expiry
    - device code grant for first-run bootstrap
    """

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        auth_base_url: str = TWITCH_AUTH_BASE_URL,
        session_factory: Callable[[], Any] = aiohttp.ClientSession,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.auth_base_url = auth_base_url.rstrip("/")
        self._session_factory = session_factory

    async def refresh(self, token: LiveToken) -> LiveToken:
        """
        Exchange the refresh token for a new access token.

        Raises:
            NoRefreshToken, NoClientSecret, RefreshUnauthorized, RefreshRequestError
        """
        if not token.refresh_token:
            raise NoRefreshToken(f"no refresh token for {token.login or token.user_id}")
        if not self.client_secret:
            raise NoClientSecret("CLIENT_SECRET not configured")

        data = {
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        try:
            async with self._session_factory() as session:
                async with session.post(f"{self.auth_base_url}/token", data=data) as resp:
                    if resp.status in (400, 401):
                        error_text = await resp.text()
                        raise RefreshUnauthorized(f"Refresh rejected: {resp.status} - {error_text}")
                    if resp.status != 200:
                        error_text = await resp.text()
                        raise RefreshRequestError(f"Refresh failed: {resp.status} - {error_text}")
                    result = await resp.json()
        except aiohttp.ClientError as e:
            raise RefreshRequestError(f"Refresh request error: {e}") from e

        try:
            access_token = result["access_token"]
        except (KeyError, TypeError) as e:
            raise RefreshRequestError(f"Malformed refresh response: {result!r}") from e

        return replace(
            token,
            access_token=access_token,
            refresh_token=result.get("refresh_token") or token.refresh_token,
            expires_at=time.time() + float(result.get("expires_in", 0)),
            scopes=list(result.get("scope") or token.scopes),
        )

    async def validate(self, token: LiveToken) -> LiveToken:
        """
        Check the access token against /validate.

        Returns:
            A copy of the token with login, user_id, scopes and expiry from Twitch

        Raises:
            TokenInvalid, ValidationRequestError
        """
        headers = {"Authorization": f"OAuth {token.access_token}"}
        try:
            async with self._session_factory() as session:
                async with session.get(f"{self.auth_base_url}/validate", headers=headers) as resp:
                    if resp.status == 401:
                        raise TokenInvalid("access token expired or revoked (401)")
                    if resp.status != 200:
                        error_text = await resp.text()
                        raise ValidationRequestError(f"Validation failed: {resp.status} - {error_text}")
                    data = await resp.json()
        except aiohttp.ClientError as e:
            raise ValidationRequestError(f"Validation request error: {e}") from e

        return replace(
            token,
            login=data.get("login") or token.login,
            user_id=str(data.get("user_id") or token.user_id),
            scopes=list(data.get("scopes") or []),
            expires_at=time.time() + float(data.get("expires_in", 0)),
        )

    async def start_device_flow(self, scopes: list[str]) -> DeviceCode:
        """
        Start the device code grant.

        Raises:
            DeviceFlowError
        """
        data = {"client_id": self.client_id, "scopes": " ".join(scopes)}
        try:
            async with self._session_factory() as session:
                async with session.post(f"{self.auth_base_url}/device", data=data) as resp:
                    if resp.status != 200:
                        error_text = await resp.text()
                        raise DeviceFlowError(f"Device authorization failed: {resp.status} - {error_text}")
                    result = await resp.json()
        except aiohttp.ClientError as e:
            raise DeviceFlowError(f"Device authorization request error: {e}") from e

        try:
            return DeviceCode(
                device_code=result["device_code"],
                user_code=result["user_code"],
                verification_uri=result["verification_uri"],
                expires_in=int(result.get("expires_in", 1800)),
                interval=max(1, int(result.get("interval", 5))),
                scopes=list(scopes),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeviceFlowError(f"Malformed device response: {result!r}") from e

    async def wait_for_device_token(
        self,
        code: DeviceCode,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> LiveToken:
        """
        Poll the token endpoint until the user completes the grant.

        Returns:
            Validated LiveToken

        Raises:
            DeviceFlowError: denied, expired, or unexpected answer
        """
        data = {
            "client_id": self.client_id,
            "scopes": " ".join(code.scopes),
            "device_code": code.device_code,
            "grant_type": DEVICE_GRANT_TYPE,
        }
        interval = code.interval
        deadline = time.monotonic() + code.expires_in

        while time.monotonic() < deadline:
            try:
                async with self._session_factory() as session:
                    async with session.post(f"{self.auth_base_url}/token", data=data) as resp:
                        if resp.status == 200:
                            result = await resp.json()
                            break
                        body = await resp.json(content_type=None)
            except aiohttp.ClientError as e:
                LOGGER.warning(f"⚠️ Device token poll failed: {e}, retrying")
                await sleep(interval)
                continue

            message = str((body or {}).get("message", "")) if isinstance(body, dict) else ""
            if message == "authorization_pending":
                await sleep(interval)
            elif message == "slow_down":
                interval += 5
                await sleep(interval)
            else:
                raise DeviceFlowError(f"Device grant failed: {message or body!r}")
        else:
            raise DeviceFlowError("Device code expired before authorization")

        token = LiveToken(
            access_token=result["access_token"],
            refresh_token=result.get("refresh_token"),
            user_id="",
            login="",
            scopes=list(result.get("scope") or code.scopes),
            expires_at=time.time() + float(result.get("expires_in", 0)),
        )
        try:
            return await self.validate(token)
        except ValidationError as e:
            raise DeviceFlowError(f"Token granted but validation failed: {e}") from e
