"""
Spotify Accounts (OAuth) Client

Talks to the Spotify accounts token endpoint for the authorization-code
exchange and for refresh-token grants. Holds no token state itself; the
TokenLifecycleManager owns the TokenSet.
"""

import base64
from typing import Dict, Optional, Any

import structlog

from .base_client import BaseAPIClient
from .errors import AuthExpired, MalformedResponse, NetworkFailure, TokenRejected
from .rate_limiter import UnifiedRateLimiter

logger = structlog.get_logger(__name__)


class SpotifyAuthClient(BaseAPIClient):
    """
    OAuth token endpoint client.

    Invalid-grant style answers (400/401) are terminal and surface as
    AuthExpired; transport failures surface as NetworkFailure so the caller
    can decide whether to retry.
    """

    ACCOUNTS_URL = "https://accounts.spotify.com"
    TOKEN_PATH = "api/token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        accounts_url: str = ACCOUNTS_URL,
        rate_limiter: Optional[UnifiedRateLimiter] = None,
        timeout: float = 10
    ):
        super().__init__(
            base_url=accounts_url,
            rate_limiter=rate_limiter,
            timeout=timeout,
            service_name="SpotifyAccounts"
        )
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    def _extract_api_error(self, data: Dict[str, Any]) -> Optional[str]:
        if "error" in data:
            return data.get("error_description") or str(data["error"])
        return None

    def _auth_headers(self) -> Dict[str, str]:
        auth_str = f"{self.client_id}:{self.client_secret}"
        auth_b64 = base64.b64encode(auth_str.encode()).decode()
        return {
            "Authorization": f"Basic {auth_b64}",
            "Content-Type": "application/x-www-form-urlencoded"
        }

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Exchange an authorization code for an initial token payload.

        Args:
            code: Authorization code from the OAuth redirect

        Returns:
            Validated token payload (access_token, refresh_token, expires_in)
        """
        return await self._request_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """
        Trade a refresh token for a new access token.

        The response may omit refresh_token; callers keep the old one then.
        """
        return await self._request_token({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    async def _request_token(self, form: Dict[str, str]) -> Dict[str, Any]:
        grant_type = form["grant_type"]
        try:
            payload = await self._make_request(
                self.TOKEN_PATH,
                method="POST",
                headers=self._auth_headers(),
                data=form
            )
        except TokenRejected as e:
            self.logger.error("Token endpoint rejected client or grant", grant_type=grant_type)
            raise AuthExpired(str(e), service=self.service_name) from e
        except NetworkFailure as e:
            if e.status == 400:
                self.logger.error("Token grant is invalid", grant_type=grant_type)
                raise AuthExpired(
                    f"{grant_type} grant was rejected",
                    service=self.service_name
                ) from e
            raise
        except MalformedResponse as e:
            # error body on a 200 is still a rejected grant
            raise AuthExpired(str(e), service=self.service_name) from e

        return self._validate_token_payload(payload)

    def _validate_token_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")

        if not isinstance(access_token, str) or not access_token:
            raise MalformedResponse("Token response missing access_token", service=self.service_name)
        if not isinstance(expires_in, (int, float)) or isinstance(expires_in, bool):
            raise MalformedResponse("Token response missing expires_in", service=self.service_name)

        self.logger.info(
            "Token endpoint call succeeded",
            expires_in=expires_in,
            issued_refresh_token="refresh_token" in payload
        )
        return {
            "access_token": access_token,
            "refresh_token": payload.get("refresh_token"),
            "expires_in": expires_in,
            "token_type": payload.get("token_type", "Bearer"),
        }
