"""
PDF Server Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

import logging
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

UNKNOWN_PRESET_POLICIES = ("fallback", "reject")

DEFAULT_BROWSER_LAUNCH_ARGS = (
    "--no-sandbox,--disable-setuid-sandbox,--disable-gpu,--disable-dev-shm-usage"
)


class PdfServerSettings(BaseSettings):
    """
    PDF server configuration with validation.

    All settings can be overridden via environment variables
    (case-insensitive, no prefix: PAGES_NUM = pages_num).
    """

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # === Presets ===
    preset_pdf_options_file_path: Optional[str] = Field(
        default=None,
        description="JSON file with preset PDF options (built-in presets when unset)"
    )
    default_preset_pdf_options_name: str = Field(
        default="DEFAULT",
        min_length=1,
        description="Preset used when a request names none"
    )
    unknown_preset_policy: str = Field(
        default="fallback",
        description="What to do with an unknown preset name: fallback or reject"
    )
    default_pdf_option_format: str = Field(default="A4", description="Format of the built-in DEFAULT preset")
    default_pdf_option_landscape: bool = Field(default=False, description="Orientation of the built-in DEFAULT preset")
    default_pdf_option_margin: str = Field(default="0", description="Margin (all sides) of the built-in DEFAULT preset")

    # === Page pool ===
    pages_num: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Number of browser pages in the pool (1-50)"
    )
    page_timeout_milliseconds: int = Field(
        default=60000,
        ge=1000,
        le=600000,
        description="Navigation and per-render timeout in milliseconds"
    )
    user_agent: Optional[str] = Field(default=None, description="User agent for browser pages")
    accept_language: str = Field(default="", description="Accept-Language header sent by browser pages")
    emulate_media_type_screen_enabled: bool = Field(
        default=False,
        description="Render with 'screen' CSS media instead of 'print'"
    )
    viewport_width: int = Field(default=1280, ge=1, le=10000)
    viewport_height: int = Field(default=720, ge=1, le=10000)
    browser_launch_args: str = Field(
        default=DEFAULT_BROWSER_LAUNCH_ARGS,
        description="Comma-separated Chromium launch arguments"
    )
    browser_headless: bool = Field(default=True)

    # === Template images ===
    image_fetch_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout for downloading header/footer images"
    )

    # === HTTP ===
    bearer_auth_secret_key: Optional[str] = Field(
        default=None,
        description="When set, every render route requires this bearer token"
    )
    body_limit: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Maximum request body size in bytes"
    )
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("unknown_preset_policy")
    @classmethod
    def validate_unknown_preset_policy(cls, v: str) -> str:
        """Validate the unknown preset policy is a known value."""
        v_lower = v.lower()
        if v_lower not in UNKNOWN_PRESET_POLICIES:
            raise ValueError(f"unknown_preset_policy must be one of: {', '.join(UNKNOWN_PRESET_POLICIES)}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is understood by the logging module."""
        v_upper = v.upper()
        if not isinstance(logging.getLevelName(v_upper), int):
            raise ValueError(f"Invalid log level: {v}")
        return v_upper

    @field_validator("bearer_auth_secret_key", "preset_pdf_options_file_path", "user_agent")
    @classmethod
    def empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty environment values as unset."""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def browser_launch_args_list(self) -> List[str]:
        """Parse launch arguments into a list."""
        return [arg.strip() for arg in self.browser_launch_args.split(",") if arg.strip()]

    @property
    def viewport(self) -> Dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @property
    def page_timeout_seconds(self) -> float:
        return self.page_timeout_milliseconds / 1000

    @property
    def auth_required(self) -> bool:
        """Check if bearer authentication is enabled."""
        return self.bearer_auth_secret_key is not None


@lru_cache()
def get_settings() -> PdfServerSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for the process lifetime.
    """
    return PdfServerSettings()


def log_settings(settings: PdfServerSettings) -> None:
    """Log loaded configuration (secrets redacted)."""
    logger = logging.getLogger(__name__)
    logger.info(f"Configuration loaded: pages_num={settings.pages_num}")
    logger.info(f"  page_timeout={settings.page_timeout_milliseconds}ms")
    logger.info(f"  presets_file={settings.preset_pdf_options_file_path or '<built-in>'}")
    logger.info(f"  default_preset={settings.default_preset_pdf_options_name}")
    logger.info(f"  unknown_preset_policy={settings.unknown_preset_policy}")
    logger.info(f"  auth_required={settings.auth_required}")
