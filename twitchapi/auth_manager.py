#!/usr/bin/env python3
"""
AuthManager
Materializes the bot's live token at startup (stored tokens or device code grant)
"""

import logging
import time
from typing import Optional

from twitchapi.oauth_client import (
    DeviceCode,
    NoClientSecret,
    NoRefreshToken,
    OAuthClient,
    RefreshError,
    RefreshRequestError,
    RefreshUnauthorized,
    TokenInvalid,
    ValidationError,
    ValidationRequestError,
)
from twitchapi.tokens import Credential, LiveToken

LOGGER = logging.getLogger(__name__)

BOT_SCOPES = [
    "user:bot",
    "channel:bot",
    "user:read:chat",
    "user:write:chat",
    "moderator:manage:announcements",
    "user:read:moderated_channels",
]


class CredentialError(Exception):
    """The credential cannot produce a live token"""


class NoTokens(CredentialError):
    """Neither access nor refresh token stored: interactive bootstrap needed"""


class TokenRetrievalError(CredentialError):
    """Stored tokens could not be validated nor refreshed"""

    def __init__(self, cause: Exception):
        super().__init__(f"Error retrieving token: {cause}")
        self.cause = cause


def describe_token_error(error: Exception) -> str:
    """Operator-facing label for refresh/validation failures (logging only)"""
    if isinstance(error, NoRefreshToken):
        return "no refresh token available"
    if isinstance(error, NoClientSecret):
        return "no client secret configured"
    if isinstance(error, RefreshUnauthorized):
        return "refresh token rejected"
    if isinstance(error, RefreshRequestError):
        return "refresh request failed"
    if isinstance(error, TokenInvalid):
        return "token invalid/unauthorized"
    if isinstance(error, ValidationRequestError):
        return "validation request failed"
    return type(error).__name__


class AuthManager:
    """
    Bot token bootstrap
    - ensure_token: stored access token validated, refreshed if invalid
    - new_user_token: device code grant (prints the verification URL)
    - bootstrap: ensure, falling back to the device code grant
    """

    def __init__(self, oauth: OAuthClient, scopes: Optional[list[str]] = None):
        self.oauth = oauth
        self.scopes = list(scopes or BOT_SCOPES)
        LOGGER.info("AuthManager initialized")

    async def ensure_token(self, credential: Credential) -> LiveToken:
        """
        Make sure credential.live_token is a validated token.

        Raises:
            NoTokens: nothing stored
            TokenRetrievalError: stored tokens unusable
        """
        if credential.live_token is not None:
            return credential.live_token

        if not credential.has_tokens():
            raise NoTokens(f"No tokens stored for {credential.display_name}")

        candidate = LiveToken(
            access_token=credential.access_token or "",
            refresh_token=credential.refresh_token,
            user_id=credential.user_id,
            login=credential.display_name,
            expires_at=time.time() + (credential.expires_in or 0),
        )

        try:
            token = await self._validate_or_refresh(candidate)
        except (RefreshError, ValidationError) as e:
            LOGGER.error(f"❌ Error refreshing token ({describe_token_error(e)}): {e}")
            raise TokenRetrievalError(e) from e

        credential.access_token = token.access_token
        credential.refresh_token = token.refresh_token
        credential.expires_in = int(token.expires_in())
        credential.user_id = token.user_id or credential.user_id
        credential.display_name = token.login or credential.display_name
        credential.live_token = token
        LOGGER.info(f"✅ Token ready for {token.login} (expires in {int(token.expires_in())}s)")
        return token

    async def _validate_or_refresh(self, token: LiveToken) -> LiveToken:
        if token.access_token:
            try:
                return await self.oauth.validate(token)
            except TokenInvalid:
                LOGGER.warning("⚠️ Stored access token invalid (401), trying refresh...")

        refreshed = await self.oauth.refresh(token)
        LOGGER.info("🔄 Token refreshed, re-validating...")
        return await self.oauth.validate(refreshed)

    async def new_user_token(self, credential: Credential) -> LiveToken:
        """
        Interactive device code grant.

        Raises:
            DeviceFlowError
        """
        code: DeviceCode = await self.oauth.start_device_flow(self.scopes)
        print(f"Please go to: {code.verification_uri} (code: {code.user_code})")
        LOGGER.info(f"🔐 Waiting for device authorization at {code.verification_uri}")

        token = await self.oauth.wait_for_device_token(code)

        credential.access_token = token.access_token
        credential.refresh_token = token.refresh_token
        credential.live_token = None
        LOGGER.info(f"✅ Device authorization granted for {token.login}")
        return token

    async def bootstrap(self, credential: Credential) -> LiveToken:
        """Ensure a token, running the device grant when none is usable"""
        try:
            return await self.ensure_token(credential)
        except (NoTokens, TokenRetrievalError) as e:
            LOGGER.warning(f"⚠️ {e} - starting device code authorization")
            await self.new_user_token(credential)
            return await self.ensure_token(credential)
