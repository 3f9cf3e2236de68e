"""Pytest configuration and shared fixtures for channel_launcher tests."""

import io
import struct
import tempfile
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from channel_launcher.core.components import ComponentStager
from channel_launcher.core.config import ChannelConfig, ComponentsConfig, LaunchConfig
from channel_launcher.core.orchestrator import LifecycleOrchestrator
from channel_launcher.core.progress import BytesTransferred, PhaseChanged
from channel_launcher.core.store import GAME_INSTALL_DIR, KeyValueStore
from channel_launcher.core.types import VersionManifest, voice_pack_marker
from channel_launcher.core.version_probe import MARKER, STRING_OFFSET, VERSION_ASSET

CDN = "https://cdn.example.com/client"


def build_zip(files: dict[str, bytes]) -> bytes:
    """Build an in-memory zip archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def build_version_asset(payload: str, padding: int = 64) -> bytes:
    """Build a globalgamemanagers buffer carrying payload after the marker."""
    encoded = payload.encode("ascii")
    return (
        b"\x01" * padding
        + MARKER
        + b"\x00" * STRING_OFFSET
        + struct.pack("<I", len(encoded))
        + encoded
        + b"\x00" * 32
    )


class FakeTransfer:
    """In-process transfer collaborator recording every call."""

    def __init__(self) -> None:
        self.payloads: dict[str, bytes] = {}
        self.downloads: list[tuple[str, Path]] = []
        self.verifications: list[tuple[Path, str]] = []
        self.fail_on: set[str] = set()

    @property
    def sources(self) -> list[str]:
        return [source for source, _ in self.downloads]

    def download(self, source: str, destination: Path):
        self.downloads.append((source, destination))
        if source in self.fail_on:
            raise RuntimeError(f"transfer failed: {source}")
        data = self.payloads.get(source, build_zip({}))
        yield BytesTransferred(destination.name, 0, len(data))
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        yield BytesTransferred(destination.name, len(data), len(data))

    def verify(self, local_dir: Path, remote_listing: str):
        self.verifications.append((local_dir, remote_listing))
        yield PhaseChanged("verify", "fake verify")


class FakeExecutor:
    """Execution collaborator that records launches instead of running them."""

    def __init__(self) -> None:
        self.launches: list[tuple[Path, str, LaunchConfig]] = []

    def launch(self, install_dir: Path, executable: str, config: LaunchConfig):
        self.launches.append((install_dir, executable, config))
        yield PhaseChanged("launch", executable)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def make_zip() -> Callable[[dict[str, bytes]], bytes]:
    """Builder for in-memory zip archives."""
    return build_zip


@pytest.fixture
def version_asset() -> Callable[..., bytes]:
    """Builder for version asset buffers."""
    return build_version_asset


@pytest.fixture
def channel() -> ChannelConfig:
    """Sample channel descriptor."""
    return ChannelConfig(
        id="OS",
        update_url="https://sdk.example.com/resource?key=abc",
        adv_url="https://sdk.example.com/content?key=abc",
        data_dir="Game_Data",
        executable="Game.exe",
        content_language="en-us",
        supported_version="3.6.0",
    )


@pytest.fixture
def manifest_data() -> dict[str, Any]:
    """Manifest payload: latest 3.6.0 with a single diff from 3.5.0."""
    return {
        "game": {
            "latest": {
                "version": "3.6.0",
                "path": f"{CDN}/game_3.6.0.zip",
                "decompressed_path": f"{CDN}/game_3.6.0",
                "size": str(10 * 1024 ** 3),
                "md5": "0" * 32,
                "voice_packs": [
                    {"language": "en-us", "path": f"{CDN}/Audio_English_3.6.0.zip", "size": "100"},
                ],
            },
            "diffs": [
                {
                    "version": "3.5.0",
                    "path": f"{CDN}/game_3.5.0_3.6.0_hdiff.zip",
                    "size": "1000",
                    "voice_packs": [
                        {"language": "en-us", "path": f"{CDN}/en-us_3.5.0_3.6.0_hdiff.zip"},
                        {"language": "ja-jp", "path": f"{CDN}/ja-jp_3.5.0_3.6.0_hdiff.zip"},
                        {"language": "ko-kr", "path": f"{CDN}/ko-kr_3.5.0_3.6.0_hdiff.zip"},
                    ],
                },
            ],
        },
        "pre_download_game": None,
    }


@pytest.fixture
def manifest(manifest_data: dict[str, Any]) -> VersionManifest:
    """Parsed sample manifest."""
    return VersionManifest.model_validate(manifest_data)


@pytest.fixture
def predownload_data(manifest_data: dict[str, Any]) -> dict[str, Any]:
    """Manifest payload with a 3.7.0 pre-download offering a diff from 3.6.0."""
    data = dict(manifest_data)
    data["pre_download_game"] = {
        "latest": {
            "version": "3.7.0",
            "path": f"{CDN}/game_3.7.0.zip",
            "decompressed_path": f"{CDN}/game_3.7.0",
            "size": "0",
        },
        "diffs": [
            {
                "version": "3.6.0",
                "path": f"{CDN}/game_3.6.0_3.7.0_hdiff.zip",
                "voice_packs": [
                    {"language": "en-us", "path": f"{CDN}/en-us_3.6.0_3.7.0_hdiff.zip"},
                    {"language": "zh-cn", "path": f"{CDN}/zh-cn_3.6.0_3.7.0_hdiff.zip"},
                ],
            },
        ],
    }
    return data


@pytest.fixture
def store(temp_dir: Path) -> KeyValueStore:
    """Empty key/value store in the temp directory."""
    return KeyValueStore(temp_dir / "state" / "store.json")


@pytest.fixture
def make_install(channel: ChannelConfig) -> Callable[..., Path]:
    """Create an on-disk installation at a given version."""

    def factory(path: Path, version: str, voice_packs: tuple[str, ...] = ()) -> Path:
        data_dir = path / channel.data_dir
        data_dir.mkdir(parents=True, exist_ok=True)
        (path / "pkg_version").write_text("")
        (data_dir / VERSION_ASSET).write_bytes(build_version_asset(f"{version}_1234567_7654321"))
        for language in voice_packs:
            (path / voice_pack_marker(language)).write_text("")
        return path

    return factory


@pytest.fixture
def fake_transfer() -> FakeTransfer:
    """Recording transfer collaborator."""
    return FakeTransfer()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    """Recording execution collaborator."""
    return FakeExecutor()


@pytest.fixture
def stager(temp_dir: Path, fake_transfer: FakeTransfer) -> ComponentStager:
    """Component stager backed by the fake transfer."""
    config = ComponentsConfig(
        reshade_url=f"{CDN}/components/reshade.zip",
        dxvk_url=f"{CDN}/components/dxvk.zip",
        fps_unlocker_url=f"{CDN}/components/unlockfps.exe",
    )
    return ComponentStager(temp_dir / "components", fake_transfer, config)


@pytest.fixture
def make_orchestrator(
    channel: ChannelConfig,
    manifest: VersionManifest,
    store: KeyValueStore,
    fake_transfer: FakeTransfer,
    fake_executor: FakeExecutor,
    stager: ComponentStager,
) -> Callable[..., LifecycleOrchestrator]:
    """Factory building orchestrators around the shared fakes."""

    def factory(
        manifest_override: VersionManifest | None = None,
        install_dir: Path | None = None,
        **kwargs: Any,
    ) -> LifecycleOrchestrator:
        if install_dir is not None:
            store.set(GAME_INSTALL_DIR, str(install_dir))
        kwargs.setdefault("free_space", lambda path: 1000.0)
        return LifecycleOrchestrator(
            channel,
            manifest_override or manifest,
            store,
            fake_transfer,
            fake_executor,
            stager,
            **kwargs,
        )

    return factory


# Pytest configuration
def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Modify test collection to add markers automatically."""
    for item in items:
        # Add unit marker to all tests by default
        if not any(marker.name in ['integration', 'slow'] for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
