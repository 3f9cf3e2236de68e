"""Manifest and content type definitions for channel-launcher."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class VoicePackLanguage(StrEnum):
    """Voice pack language codes used by the manifest."""
    ZH_CN = "zh-cn"
    EN_US = "en-us"
    JA_JP = "ja-jp"
    KO_KR = "ko-kr"


# Directory names used in per-language marker files
# (Audio_<name>_pkg_version in the install directory).
VOICE_PACK_NAMES: dict[str, str] = {
    VoicePackLanguage.ZH_CN: "Chinese",
    VoicePackLanguage.EN_US: "English(US)",
    VoicePackLanguage.JA_JP: "Japanese",
    VoicePackLanguage.KO_KR: "Korean",
}


def voice_pack_marker(language: str) -> str:
    """Get the marker file name signalling an installed voice pack.

    Args:
        language: Voice pack language code (e.g., "en-us")

    Returns:
        Marker file name relative to the install directory

    Raises:
        ValueError: If the language has no known voice pack name
    """
    name = VOICE_PACK_NAMES.get(language)
    if name is None:
        raise ValueError(f"Unknown voice pack language: {language}")
    return f"Audio_{name}_pkg_version"


class VoicePack(BaseModel):
    """Voice pack payload for one language."""
    language: str = Field(..., description="Language code")
    path: str = Field(..., description="Payload URL")
    size: int | None = Field(None, description="Payload size in bytes")
    md5: str | None = Field(None, description="Payload MD5")

    model_config = ConfigDict(extra="allow")


class DiffEntry(BaseModel):
    """Incremental update from one exact source version to latest."""
    version: str = Field(..., description="Source version the diff applies to")
    path: str = Field(..., description="Game payload diff URL")
    size: int | None = Field(None, description="Payload size in bytes")
    md5: str | None = Field(None, description="Payload MD5")
    voice_packs: list[VoicePack] = Field(default_factory=list, description="Voice pack diffs")

    model_config = ConfigDict(extra="allow")


class LatestEntry(BaseModel):
    """Full payload for the latest version."""
    version: str = Field(..., description="Latest version")
    path: str = Field(..., description="Full game payload URL")
    decompressed_path: str = Field("", description="Remote decompressed content root")
    size: int = Field(0, description="Payload size in bytes")
    md5: str | None = Field(None, description="Payload MD5")
    voice_packs: list[VoicePack] = Field(default_factory=list, description="Voice packs")

    model_config = ConfigDict(extra="allow")

    @property
    def size_bytes(self) -> int:
        """Declared size as an integer."""
        return self.size


class GameManifest(BaseModel):
    """Latest payload plus the diffs leading to it."""
    latest: LatestEntry
    diffs: list[DiffEntry] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def find_diff(self, version: str) -> DiffEntry | None:
        """Find the diff whose source equals version exactly.

        Diffs are never chained: only a single hop to latest is considered.
        """
        for diff in self.diffs:
            if diff.version == version:
                return diff
        return None


class VersionManifest(BaseModel):
    """Channel manifest: current game and optional pre-download game."""
    game: GameManifest
    pre_download_game: GameManifest | None = None

    model_config = ConfigDict(extra="allow", frozen=True)

    @property
    def latest_version(self) -> str:
        """Latest released version."""
        return self.game.latest.version


class Advertisement(BaseModel):
    """Launcher content shown next to the game."""
    background: str = Field("", description="Background image URL")
    url: str = Field("", description="Link target")
    icon: str = Field("", description="Icon image URL")

    model_config = ConfigDict(extra="allow")
