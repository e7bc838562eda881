"""
Token Lifecycle Manager

Owns the OAuth TokenSet for one authenticated session and hands out access
tokens that stay valid for at least a safety margin. Concurrent callers that
hit an expiring token share one in-flight refresh, since Spotify refresh
tokens may be single-use.

State machine:
    UNAUTHENTICATED -> VALID -> EXPIRING -> REFRESHING -> VALID
                                            REFRESHING -> INVALID
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import structlog

from .errors import AuthExpired, MalformedResponse, NetworkFailure, RateLimited

logger = structlog.get_logger(__name__)

# Failures of the refresh call that are worth one more attempt
TRANSIENT_REFRESH_ERRORS = (NetworkFailure, MalformedResponse, RateLimited)


@dataclass(frozen=True)
class TokenSet:
    """Access/refresh token pair with absolute expiry (epoch seconds)."""
    access_token: str
    refresh_token: str
    expires_at: float

    def expires_within(self, margin: float, now: float) -> bool:
        """True if the access token expires within ``margin`` seconds of ``now``."""
        return now + margin >= self.expires_at

    def __repr__(self) -> str:
        return f"TokenSet(expires_at={self.expires_at!r})"


class TokenState(Enum):
    """Lifecycle states of a session's credentials."""
    UNAUTHENTICATED = "unauthenticated"
    VALID = "valid"
    EXPIRING = "expiring"
    REFRESHING = "refreshing"
    INVALID = "invalid"


class TokenLifecycleManager:
    """
    Session-scoped owner of one TokenSet.

    The manager never retries on its own after a terminal failure: once the
    state is INVALID every caller gets AuthExpired until new tokens are
    installed via exchange_code() or set_tokens().
    """

    def __init__(
        self,
        auth_client,
        safety_margin: float = 60.0,
        retry_backoff: float = 1.0,
        clock: Callable[[], float] = time.time,
        session_id: Optional[str] = None
    ):
        """
        Initialize the token manager.

        Args:
            auth_client: Object with async ``exchange_code(code)`` and
                ``refresh(refresh_token)`` returning token payload dicts
            safety_margin: Seconds of remaining validity required
            retry_backoff: Delay before the single refresh retry
            clock: Time source returning epoch seconds
            session_id: Identifier used only for logging
        """
        self.auth_client = auth_client
        self.safety_margin = safety_margin
        self.retry_backoff = retry_backoff
        self.clock = clock

        self._token_set: Optional[TokenSet] = None
        self._invalid = False
        self._refresh_task: Optional[asyncio.Task] = None
        self.refresh_count = 0

        self.logger = logger.bind(service="TokenLifecycleManager", session_id=session_id)

    @property
    def state(self) -> TokenState:
        if self._invalid:
            return TokenState.INVALID
        if self._token_set is None:
            return TokenState.UNAUTHENTICATED
        if self._refresh_task is not None and not self._refresh_task.done():
            return TokenState.REFRESHING
        if self._token_set.expires_within(self.safety_margin, self.clock()):
            return TokenState.EXPIRING
        return TokenState.VALID

    @property
    def expires_at(self) -> Optional[float]:
        return self._token_set.expires_at if self._token_set else None

    def set_tokens(self, access_token: str, refresh_token: str, expires_in: float) -> TokenSet:
        """
        Install a fresh TokenSet.

        Args:
            access_token: Bearer token
            refresh_token: Refresh token
            expires_in: Lifetime of the access token in seconds

        Returns:
            The installed TokenSet
        """
        self._token_set = TokenSet(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self.clock() + expires_in
        )
        self._invalid = False
        self.logger.info("Tokens installed", expires_in=expires_in)
        return self._token_set

    async def exchange_code(self, code: str) -> TokenSet:
        """
        One-time exchange of an authorization code for the initial TokenSet.

        Raises:
            AuthExpired: the code was rejected or the exchange failed
        """
        try:
            payload = await self.auth_client.exchange_code(code)
        except TRANSIENT_REFRESH_ERRORS as e:
            # codes are single-use, so a failed exchange cannot be retried
            self.logger.error("Authorization code exchange failed", error=str(e))
            raise AuthExpired(f"Authorization code exchange failed: {e}") from e

        if not payload.get("refresh_token"):
            raise AuthExpired("Authorization code exchange returned no refresh token")

        return self.set_tokens(
            payload["access_token"],
            payload["refresh_token"],
            payload["expires_in"]
        )

    async def get_valid_access_token(self) -> str:
        """
        Return an access token valid for at least the safety margin.

        Triggers (or joins) a refresh when the held token is expiring.

        Raises:
            AuthExpired: no tokens installed, or refresh failed
        """
        self._ensure_usable()

        if not self._token_set.expires_within(self.safety_margin, self.clock()):
            return self._token_set.access_token

        return await self._join_refresh()

    async def force_refresh(self, rejected_token: Optional[str] = None) -> str:
        """
        Refresh after an upstream 401.

        If ``rejected_token`` has already been replaced by a concurrent
        refresh, the current token is returned without another refresh.
        """
        self._ensure_usable()

        current = self._token_set
        if (
            rejected_token is not None
            and current.access_token != rejected_token
            and not current.expires_within(self.safety_margin, self.clock())
        ):
            return current.access_token

        return await self._join_refresh()

    def clear(self) -> None:
        """
        Drop credentials when the session ends.

        An in-flight refresh is cancelled; callers waiting on it get AuthExpired.
        """
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
        self._token_set = None
        self._invalid = False
        self.logger.info("Tokens cleared")

    def _ensure_usable(self) -> None:
        if self._invalid:
            raise AuthExpired("Session credentials are invalid; re-authenticate")
        if self._token_set is None:
            raise AuthExpired("No Spotify tokens for this session")

    async def _join_refresh(self) -> str:
        if self._refresh_task is None:
            task = asyncio.get_running_loop().create_task(self._run_refresh())
            task.add_done_callback(self._on_refresh_done)
            self._refresh_task = task
        task = self._refresh_task

        # shield: a cancelled caller must not cancel the refresh others wait on
        try:
            token_set = await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                # clear() ended the session mid-refresh
                raise AuthExpired("Session ended during token refresh") from None
            raise
        return token_set.access_token

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # mark the exception retrieved even if every awaiter went away
            task.exception()

    async def _run_refresh(self) -> TokenSet:
        previous = self._token_set
        self.logger.info("Refreshing access token", expires_at=previous.expires_at)

        payload: Optional[Dict[str, Any]] = None
        for attempt in range(2):
            try:
                payload = await self.auth_client.refresh(previous.refresh_token)
                break
            except AuthExpired:
                self._invalid = True
                self.logger.error("Refresh token rejected", attempt=attempt + 1)
                raise
            except TRANSIENT_REFRESH_ERRORS as e:
                self.logger.warning(
                    "Token refresh failed",
                    attempt=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__
                )
                if attempt == 0:
                    await asyncio.sleep(self.retry_backoff)
                    continue
                self._invalid = True
                raise AuthExpired(f"Token refresh failed: {e}") from e

        self.refresh_count += 1
        new_expiry = self.clock() + payload["expires_in"]
        self._token_set = TokenSet(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or previous.refresh_token,
            expires_at=max(new_expiry, previous.expires_at)
        )

        self.logger.info(
            "Access token refreshed",
            expires_in=payload["expires_in"],
            rotated_refresh_token=bool(payload.get("refresh_token"))
        )
        return self._token_set
