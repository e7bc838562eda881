"""
System Configuration

Pydantic settings model for MoodSync, populated from the environment
(and a .env file, via python-dotenv) by SystemConfig.from_env().
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


class SystemConfig(BaseModel):
    """Overall system configuration"""

    # API configurations
    spotify_client_id: Optional[str] = Field(default=None, description="Spotify client ID")
    spotify_client_secret: Optional[str] = Field(default=None, description="Spotify client secret")
    spotify_redirect_uri: str = Field(
        default="http://localhost:3000/callback",
        description="OAuth redirect URI registered with Spotify"
    )
    spotify_api_url: str = Field(default="https://api.spotify.com/v1", description="Spotify Web API base URL")
    spotify_accounts_url: str = Field(default="https://accounts.spotify.com", description="Spotify accounts base URL")
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model name")

    # Rate limiting
    spotify_rate_limit: int = Field(default=1000, description="Spotify requests per hour")
    gemini_rate_limit: int = Field(default=15, description="Gemini requests per minute")

    # Token lifecycle
    token_safety_margin: float = Field(default=60.0, description="Seconds of validity required on handed-out tokens")
    refresh_retry_backoff: float = Field(default=1.0, description="Delay before the single refresh retry")

    # Recommendations
    tier_timeout: float = Field(default=5.0, description="Per-tier timeout in seconds")
    min_results: int = Field(default=5, ge=1, description="Default minimum recommendation count")
    recommendation_limit: int = Field(default=20, ge=1, le=100, description="Tracks requested per upstream call")

    # Insights
    llm_timeout: float = Field(default=10.0, description="LLM call timeout in seconds")
    trend_threshold: float = Field(default=1.0, description="Intensity delta that counts as a trend")
    trend_window_days: int = Field(default=7, ge=1, description="Days per trend comparison window")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_dir: str = Field(default="logs", description="Directory for rotating log files")

    @field_validator(
        "token_safety_margin", "tier_timeout", "llm_timeout", "trend_threshold"
    )
    @classmethod
    def must_be_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("refresh_retry_backoff")
    @classmethod
    def must_not_be_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @property
    def spotify_configured(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "SystemConfig":
        """
        Build configuration from environment variables.

        Loads ``env_file`` (or ``.env`` in the working directory) first;
        variables already set in the process environment win.
        """
        load_dotenv(env_file)

        env_map = {
            "spotify_client_id": "SPOTIFY_CLIENT_ID",
            "spotify_client_secret": "SPOTIFY_CLIENT_SECRET",
            "spotify_redirect_uri": "SPOTIFY_REDIRECT_URI",
            "gemini_api_key": "GEMINI_API_KEY",
            "gemini_model": "GEMINI_MODEL",
            "tier_timeout": "RECOMMENDATION_TIER_TIMEOUT",
            "llm_timeout": "LLM_TIMEOUT",
            "log_level": "LOG_LEVEL",
            "log_dir": "LOG_DIR",
        }
        values = {
            field_name: os.getenv(env_name)
            for field_name, env_name in env_map.items()
            if os.getenv(env_name)
        }
        return cls(**values)
