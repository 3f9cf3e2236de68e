"""Auxiliary runtime components staged before launch.

Each component (ReShade, DXVK, FPS unlocker) is downloaded and unpacked
once into its own directory. A marker file records a finished staging,
so ensure() is a no-op on every later launch.
"""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlsplit

import structlog

from channel_launcher.core.archive import extract_archive
from channel_launcher.core.config import ComponentsConfig
from channel_launcher.core.errors import TransferError
from channel_launcher.core.progress import PhaseChanged, ProgressStream
from channel_launcher.core.transfer import Transfer

logger = structlog.get_logger()

COMPONENTS = ("reshade", "dxvk", "fps_unlocker")
READY_MARKER = ".ready"


class ComponentStager:
    """Ensures auxiliary components are present on disk.

    Args:
        base_dir: Directory holding one subdirectory per component
        transfer: Transfer collaborator used for downloads
        config: Component download locations
    """

    def __init__(self, base_dir: Path, transfer: Transfer, config: ComponentsConfig):
        self.base_dir = base_dir
        self.transfer = transfer
        self.config = config

    def component_dir(self, name: str) -> Path:
        """Directory a component is staged into."""
        return self.base_dir / name

    def is_present(self, name: str) -> bool:
        """Whether a component finished staging."""
        return (self.component_dir(name) / READY_MARKER).is_file()

    def is_configured(self, name: str) -> bool:
        """Whether a download location is configured for a component."""
        return bool(self.config.url_for(name))

    def ensure(self, name: str) -> ProgressStream:
        """Stage a component unless it is already present.

        Zip payloads are unpacked; anything else is kept as downloaded.

        Raises:
            ValueError: If name is not a known component
            TransferError: If no download location is configured
        """
        if name not in COMPONENTS:
            raise ValueError(f"Unknown component: {name}")
        if self.is_present(name):
            logger.debug("component_present", component=name)
            return

        url = self.config.url_for(name)
        if not url:
            raise TransferError(f"No download location configured for {name}")

        target_dir = self.component_dir(name)
        yield PhaseChanged("component", f"Downloading {name}")
        filename = Path(urlsplit(url).path).name or name
        payload = target_dir / filename
        yield from self.transfer.download(url, payload)

        if payload.suffix == ".zip":
            yield from extract_archive(payload, target_dir)

        (target_dir / READY_MARKER).touch()
        logger.info("component_staged", component=name, path=str(target_dir))
