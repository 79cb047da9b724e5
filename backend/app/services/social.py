"""
Ariya Backend — Social Identity Providers
===========================================

What:  Verifies a provider access token and returns the profile behind it.
Why:   Social login must never trust an email sent by the client; only the
       provider's own answer for the token counts.
How:   One async httpx call per verification:
           google    GET {GOOGLE_TOKENINFO_URL}?access_token=...
           facebook  GET {FACEBOOK_GRAPH_URL}?fields=id,name,email&access_token=...
       Transport failures, non-200 answers and profiles without an email all
       raise InvalidSocialTokenError.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class InvalidSocialTokenError(Exception):
    """The provider rejected the token or returned an unusable profile."""


@dataclass(frozen=True)
class SocialProfile:
    provider: str
    provider_user_id: str
    email: str
    name: str
    email_verified: bool


class SocialIdentityProvider(ABC):
    name: str = ""

    @abstractmethod
    async def verify(self, access_token: str) -> SocialProfile:
        ...


class _HttpProvider(SocialIdentityProvider):
    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def _get_json(self, params: Dict[str, str]) -> dict:
        try:
            if self._client is not None:
                response = await self._client.get(self.url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("%s token verification failed: %s", self.name, exc)
            raise InvalidSocialTokenError(str(exc))

        if response.status_code != 200:
            logger.info("%s rejected access token with HTTP %d", self.name, response.status_code)
            raise InvalidSocialTokenError(f"HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError:
            raise InvalidSocialTokenError("Malformed provider response")


class GoogleIdentityProvider(_HttpProvider):
    name = "google"

    async def verify(self, access_token: str) -> SocialProfile:
        data = await self._get_json({"access_token": access_token})
        email = data.get("email")
        if not email:
            raise InvalidSocialTokenError("Token carries no email scope")
        verified = str(data.get("email_verified", "false")).lower() == "true"
        return SocialProfile(
            provider=self.name,
            provider_user_id=str(data.get("sub", "")),
            email=email.lower(),
            name=data.get("name") or email.split("@")[0],
            email_verified=verified,
        )


class FacebookIdentityProvider(_HttpProvider):
    name = "facebook"

    async def verify(self, access_token: str) -> SocialProfile:
        data = await self._get_json({"fields": "id,name,email", "access_token": access_token})
        email = data.get("email")
        if not email:
            raise InvalidSocialTokenError("Token carries no email permission")
        # Graph only returns confirmed emails
        return SocialProfile(
            provider=self.name,
            provider_user_id=str(data.get("id", "")),
            email=email.lower(),
            name=data.get("name") or email.split("@")[0],
            email_verified=True,
        )


def default_providers(settings) -> Dict[str, SocialIdentityProvider]:
    timeout = settings.social_http_timeout
    return {
        "google": GoogleIdentityProvider(settings.google_tokeninfo_url, timeout),
        "facebook": FacebookIdentityProvider(settings.facebook_graph_url, timeout),
    }
