"""Configuration management for channel-launcher."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = structlog.get_logger()


class ChannelConfig(BaseModel):
    """Distribution channel descriptor.

    Identifies one game/server combination: where its manifest and
    advertisement live and how the installed game is laid out on disk.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Channel identifier (e.g., CN, OS)")
    update_url: str = Field(..., description="Version manifest URL")
    adv_url: str = Field(..., description="Advertisement/content URL")
    data_dir: str = Field(..., description="Game data directory name")
    executable: str = Field(..., description="Game executable file name")
    content_language: str = Field(
        default="en-us",
        description="Language code requested from the content endpoint"
    )
    fixed_adv_language: str | None = Field(
        default=None,
        description="Language always used for content, overriding the locale"
    )
    supported_version: str = Field(
        default="3.6.0",
        description="Newest on-disk game version this launcher supports"
    )

    @property
    def adv_language(self) -> str:
        """Language sent to the advertisement endpoint."""
        return self.fixed_adv_language or self.content_language

    @field_validator("update_url", "adv_url", "data_dir", "executable")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate required string fields."""
        if not v.strip():
            raise ValueError("Value cannot be empty")
        return v

    @field_validator("supported_version")
    @classmethod
    def validate_supported_version(cls, v: str) -> str:
        """Validate supported version is a semantic version."""
        try:
            Version(v)
        except InvalidVersion as e:
            raise ValueError(f"Invalid supported version: {v}") from e
        return v


class LaunchConfig(BaseModel):
    """User launch preferences."""

    patch_off: bool = Field(default=False, description="Skip client patching")
    reshade: bool = Field(default=False, description="Stage ReShade before launch")
    dxvk: bool = Field(default=True, description="Stage DXVK before launch")
    fps_unlock: str = Field(
        default="default",
        description="Frame rate limit, 'default' leaves the game unchanged"
    )
    wine_prefix: Path | None = Field(
        default=None,
        description="Wine prefix, runs the executable natively when unset"
    )
    patch_dir: Path | None = Field(
        default=None,
        description="Directory holding patch files copied over the install"
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Extra command line arguments for the game"
    )

    @field_validator("fps_unlock")
    @classmethod
    def validate_fps_unlock(cls, v: str) -> str:
        """Validate frame rate setting."""
        if v == "default":
            return v
        if not v.isdigit() or int(v) <= 0:
            raise ValueError(f"Invalid fps_unlock value: {v}")
        return v


class ComponentsConfig(BaseModel):
    """Download locations for auxiliary runtime components."""

    reshade_url: str = Field(default="", description="ReShade archive URL")
    dxvk_url: str = Field(default="", description="DXVK archive URL")
    fps_unlocker_url: str = Field(default="", description="FPS unlocker URL")

    def url_for(self, name: str) -> str:
        """Get download URL for a component name."""
        urls = {
            "reshade": self.reshade_url,
            "dxvk": self.dxvk_url,
            "fps_unlocker": self.fps_unlocker_url,
        }
        if name not in urls:
            raise ValueError(f"Unknown component: {name}")
        return urls[name]


class AppConfig(BaseModel):
    """Application configuration."""

    # Directory settings
    config_dir: Path = Field(
        default=Path.home() / ".config" / "channel-launcher",
        description="Configuration directory"
    )
    data_dir: Path = Field(
        default=Path.home() / ".local" / "share" / "channel-launcher",
        description="Data directory"
    )

    # HTTP settings
    http_timeout: float = Field(default=30.0, description="Request timeout in seconds")
    http_max_retries: int = Field(default=3, description="Maximum retry attempts")

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    channel: ChannelConfig | None = Field(default=None, description="Active channel")
    launch: LaunchConfig = Field(default_factory=LaunchConfig)
    components: ComponentsConfig = Field(default_factory=ComponentsConfig)

    @property
    def store_path(self) -> Path:
        """Path to the persistent key/value store."""
        return self.data_dir / "store.json"

    @property
    def components_dir(self) -> Path:
        """Directory where auxiliary components are staged."""
        return self.data_dir / "components"

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "channel-launcher" / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = self.config_dir / "config.json"

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v

    @field_validator("http_timeout")
    @classmethod
    def validate_http_timeout(cls, v: float) -> float:
        """Validate HTTP timeout value."""
        if v <= 0:
            raise ValueError("HTTP timeout must be positive")
        return v

    @field_validator("http_max_retries")
    @classmethod
    def validate_http_max_retries(cls, v: int) -> int:
        """Validate max retries value."""
        if v < 0:
            raise ValueError("Max retries must be non-negative")
        return v
