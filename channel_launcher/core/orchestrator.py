"""Installation lifecycle orchestration.

The orchestrator reconciles what is installed on disk with the channel
manifest and drives one lifecycle action at a time: fresh install,
adopting an existing installation, pre-download, update, integrity check,
launch, and startup patch recovery.

Every action is exposed as a lazy progress stream. Installation state and
the persisted install directory are only committed after the underlying
transfer or apply step has finished, so an interrupted action leaves the
previous state untouched.

Diffs are applied in a single hop: an installation can only be updated
when the manifest carries a diff whose source version equals the installed
version exactly.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path
from urllib.parse import urlsplit

import structlog
from packaging.version import Version

from channel_launcher.core.archive import extract_archive
from channel_launcher.core.components import ComponentStager
from channel_launcher.core.config import ChannelConfig, LaunchConfig
from channel_launcher.core.errors import (
    ActionInProgressError,
    InsufficientDiskSpace,
    LaunchError,
    LifecycleError,
    PatchRevertError,
    ProbeError,
    TransferError,
    UnsupportedVersionTooNew,
    VersionTooOldNoDiff,
)
from channel_launcher.core.execution import Executor
from channel_launcher.core.manifest import ManifestFetcher
from channel_launcher.core.patch import PATCH_MANIFEST, apply_patch, revert_patch
from channel_launcher.core.progress import (
    ActionFinished,
    CancelToken,
    PhaseChanged,
    ProgressEvent,
    ProgressStream,
    checked,
)
from channel_launcher.core.state import (
    NOT_INSTALLED_VERSION,
    InstallationState,
    StateHolder,
    StateListener,
)
from channel_launcher.core.store import (
    GAME_INSTALL_DIR,
    PATCHED,
    PREDOWNLOADED_ALL,
    KeyValueStore,
)
from channel_launcher.core.transfer import Transfer
from channel_launcher.core.types import (
    Advertisement,
    DiffEntry,
    VersionManifest,
    VoicePack,
    voice_pack_marker,
)
from channel_launcher.core.utils import free_space_gib, required_space_gib
from channel_launcher.core.version_probe import probe_version

logger = structlog.get_logger()

# Present in the root of every complete installation
INSTALL_MARKER = "pkg_version"

Notifier = Callable[[LifecycleError], None]
ActionBody = Generator[ProgressEvent, None, bool]


def log_notice(error: LifecycleError) -> None:
    """Default notifier: report the notice through the log."""
    logger.warning("lifecycle_notice", kind=type(error).__name__, message=str(error))


def _payload_name(url: str) -> str:
    return Path(urlsplit(url).path).name


class LifecycleOrchestrator:
    """Drives installation lifecycle actions for one channel.

    Construction resolves the installation state from the persisted
    install directory and the on-disk version asset. Any probe failure
    means "not installed".

    Args:
        channel: Channel descriptor
        manifest: Version manifest fetched for this session
        store: Persistent key/value store
        transfer: Transfer collaborator for downloads and verification
        executor: Execution collaborator that runs the game
        stager: Stages auxiliary runtime components before launch
        content: Launcher content for the UI
        notifier: Receives version-policy and disk-space notices
        cancel_token: Checked between progress events of every action
        free_space: Returns free GiB for a directory
    """

    def __init__(
        self,
        channel: ChannelConfig,
        manifest: VersionManifest,
        store: KeyValueStore,
        transfer: Transfer,
        executor: Executor,
        stager: ComponentStager,
        content: Advertisement | None = None,
        notifier: Notifier | None = None,
        cancel_token: CancelToken | None = None,
        free_space: Callable[[Path], float] = free_space_gib,
    ):
        self.channel = channel
        self.manifest = manifest
        self.store = store
        self.transfer = transfer
        self.executor = executor
        self.stager = stager
        self.content = content or Advertisement()
        self.notifier = notifier or log_notice
        self.cancel_token = cancel_token
        self.free_space = free_space
        self._busy = False
        self._holder = StateHolder(self._detect_state())

    @classmethod
    def from_channel(
        cls,
        channel: ChannelConfig,
        store: KeyValueStore,
        transfer: Transfer,
        executor: Executor,
        stager: ComponentStager,
        fetcher: ManifestFetcher | None = None,
        **kwargs: object,
    ) -> LifecycleOrchestrator:
        """Fetch the channel's content and manifest, then build an orchestrator.

        Raises:
            ManifestFetchError: If either endpoint cannot be read
        """
        fetcher = fetcher or ManifestFetcher(channel)
        content = fetcher.fetch_content()
        manifest = fetcher.fetch_manifest()
        return cls(
            channel, manifest, store, transfer, executor, stager,
            content=content, **kwargs,  # type: ignore[arg-type]
        )

    # State

    def _detect_state(self) -> InstallationState:
        install_dir = self.store.get_or_default(GAME_INSTALL_DIR)
        if not install_dir:
            logger.info("game_not_installed", channel=self.channel.id)
            return InstallationState.not_installed()

        try:
            version = probe_version(Path(install_dir) / self.channel.data_dir)
        except ProbeError as e:
            logger.warning("probe_failed", install_dir=install_dir, error=str(e))
            return InstallationState.not_installed()

        logger.info("game_detected", install_dir=install_dir, version=version)
        return InstallationState(
            installed=True,
            install_dir=install_dir,
            current_version=version,
            predownload_available=self._predownload_offered(True, version),
        )

    def _predownload_offered(self, installed: bool, version: str) -> bool:
        pre = self.manifest.pre_download_game
        return (
            pre is not None
            and not self.store.has(PREDOWNLOADED_ALL)
            and installed
            and Version(pre.latest.version) > Version(version)
        )

    @property
    def state(self) -> InstallationState:
        """Current installation state."""
        return self._holder.state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state transition listener; returns an unsubscribe callable."""
        return self._holder.subscribe(listener)

    @property
    def latest_version(self) -> str:
        """Latest version advertised by the manifest."""
        return self.manifest.latest_version

    @property
    def update_required(self) -> bool:
        """Whether the installed version is older than latest."""
        return Version(self.state.current_version) < Version(self.latest_version)

    @property
    def show_predownload_prompt(self) -> bool:
        """Whether the UI should offer a pre-download."""
        return self.state.predownload_available

    @property
    def predownload_version(self) -> str:
        """Version offered by the pre-download, empty when none."""
        pre = self.manifest.pre_download_game
        return pre.latest.version if pre is not None else ""

    @property
    def ui_content(self) -> Advertisement:
        """Launcher content for this channel."""
        return self.content

    def dismiss_predownload(self) -> None:
        """Hide the pre-download prompt for this session."""
        self._holder.update(predownload_available=False)

    def _commit_installed(self, install_dir: Path, version: str) -> None:
        self.store.set(GAME_INSTALL_DIR, str(install_dir))
        self._holder.update(
            installed=True,
            install_dir=str(install_dir),
            current_version=version,
            predownload_available=self._predownload_offered(True, version),
        )
        logger.info("game_installed", install_dir=str(install_dir), version=version)

    def _reset_installation(self) -> None:
        self.store.set(GAME_INSTALL_DIR, None)
        self._holder.update(
            installed=False,
            install_dir="",
            current_version=NOT_INSTALLED_VERSION,
            predownload_available=False,
        )
        logger.info("installation_reset", channel=self.channel.id)

    def _require_install_dir(self) -> Path:
        if not self.state.installed:
            raise LaunchError("Game is not installed")
        return Path(self.state.install_dir)

    # Action plumbing

    def _run(self, action: str, body: ActionBody) -> ProgressStream:
        if self._busy:
            body.close()
            raise ActionInProgressError(f"Cannot start {action}: another action is running")

        self._busy = True
        log = logger.bind(action=action, channel=self.channel.id)
        log.info("action_started")
        try:
            completed = yield from checked(body, self.cancel_token)
        except Exception as e:
            log.error("action_failed", error=str(e))
            raise
        finally:
            self._busy = False

        log.info("action_ended", completed=completed)
        if completed:
            yield ActionFinished(action)

    def _present_voice_packs(self, diff: DiffEntry, install_dir: Path) -> list[VoicePack]:
        present: list[VoicePack] = []
        for pack in diff.voice_packs:
            try:
                marker = voice_pack_marker(pack.language)
            except ValueError:
                logger.warning("unknown_voice_pack", language=pack.language)
                continue
            if (install_dir / marker).is_file():
                present.append(pack)
        logger.debug(
            "voice_packs_selected",
            offered=[p.language for p in diff.voice_packs],
            selected=[p.language for p in present],
        )
        return present

    def _stage(self, url: str, install_dir: Path) -> Generator[ProgressEvent, None, Path]:
        destination = install_dir / _payload_name(url)
        if destination.is_file():
            logger.debug("payload_already_staged", path=str(destination))
            return destination
        yield from self.transfer.download(url, destination)
        return destination

    # Actions

    def install(self, selection: str | Path) -> ProgressStream:
        """Install into, or adopt an existing installation at, selection."""
        return self._run("install", self._install(Path(selection)))

    def _install(self, target: Path) -> ActionBody:
        if not (target / INSTALL_MARKER).is_file():
            return (yield from self._fresh_install(target))

        try:
            version = probe_version(target / self.channel.data_dir)
        except ProbeError as e:
            logger.warning("probe_failed", install_dir=str(target), error=str(e))
            return (yield from self._fresh_install(target))

        latest = self.latest_version
        if Version(version) > Version(self.channel.supported_version):
            self.notifier(UnsupportedVersionTooNew(version, self.channel.supported_version))
            return False

        if Version(version) < Version(latest):
            if self.manifest.game.find_diff(version) is None:
                self.notifier(VersionTooOldNoDiff(version, latest))
                return False
            # Transfer happens in the explicit update action
            self._commit_installed(target, version)
            return True

        yield PhaseChanged("verify", f"Checking game files for {version}")
        yield from self.transfer.verify(target, self.manifest.game.latest.decompressed_path)
        self._commit_installed(target, version)
        return True

    def _fresh_install(self, target: Path) -> ActionBody:
        latest = self.manifest.game.latest
        required = required_space_gib(latest.size_bytes)
        free = self.free_space(target)
        if free < required:
            self.notifier(InsufficientDiskSpace(required, free))
            return False

        target.mkdir(parents=True, exist_ok=True)
        yield PhaseChanged("download", f"Downloading {latest.version}")
        archive = target / _payload_name(latest.path)
        yield from self.transfer.download(latest.path, archive)
        yield from extract_archive(archive, target)
        self._commit_installed(target, latest.version)
        return True

    def predownload(self) -> ProgressStream:
        """Stage the next release's diff ahead of time without applying it."""
        return self._run("predownload", self._predownload())

    def _predownload(self) -> ActionBody:
        self.dismiss_predownload()
        pre = self.manifest.pre_download_game
        if pre is None or not self.state.installed:
            return False

        diff = pre.find_diff(self.state.current_version)
        if diff is None:
            logger.info("predownload_no_diff", version=self.state.current_version)
            return False

        install_dir = Path(self.state.install_dir)
        packs = self._present_voice_packs(diff, install_dir)
        yield PhaseChanged("predownload", f"Pre-downloading {pre.latest.version}")
        for url in [diff.path, *(p.path for p in packs)]:
            yield from self._stage(url, install_dir)

        self.store.set(PREDOWNLOADED_ALL, True)
        return True

    def update(self) -> ProgressStream:
        """Apply the diff from the installed version to latest."""
        return self._run("update", self._update())

    def _update(self) -> ActionBody:
        current = self.state.current_version
        latest = self.latest_version
        diff = self.manifest.game.find_diff(current)
        if diff is None:
            self.notifier(VersionTooOldNoDiff(current, latest))
            self._reset_installation()
            return False

        install_dir = Path(self.state.install_dir)
        packs = self._present_voice_packs(diff, install_dir)
        yield PhaseChanged("update", f"Updating {current} to {latest}")

        archives: list[Path] = []
        for url in [diff.path, *(p.path for p in packs)]:
            archives.append((yield from self._stage(url, install_dir)))
        for archive in archives:
            yield from extract_archive(archive, install_dir)

        self.store.delete(PREDOWNLOADED_ALL)
        self._holder.update(current_version=latest, predownload_available=False)
        logger.info("game_updated", previous=current, version=latest)
        return True

    def check_integrity(self) -> ProgressStream:
        """Verify and repair the installation against the latest listing."""
        return self._run("check_integrity", self._check_integrity())

    def _check_integrity(self) -> ActionBody:
        if not self.state.installed:
            logger.warning("integrity_check_skipped", reason="not installed")
            return False
        yield from self.transfer.verify(
            Path(self.state.install_dir), self.manifest.game.latest.decompressed_path
        )
        return True

    def launch(self, config: LaunchConfig) -> ProgressStream:
        """Stage components, patch if configured, and run the game."""
        return self._run("launch", self._launch(config))

    def _launch(self, config: LaunchConfig) -> ActionBody:
        current = self.state.current_version
        supported = self.channel.supported_version
        if Version(current) > Version(supported) and not config.patch_off:
            self.notifier(UnsupportedVersionTooNew(current, supported))
            return False

        install_dir = self._require_install_dir()
        for name in self._wanted_components(config):
            if not self.stager.is_present(name) and not self.stager.is_configured(name):
                self.notifier(TransferError(f"No download location configured for {name}, skipping"))
                continue
            yield from self.stager.ensure(name)

        patch_dir = None if config.patch_off else config.patch_dir
        if patch_dir is not None:
            yield from apply_patch(install_dir, patch_dir, self.store)

        # A failed launch leaves the patch applied; init() reverts it
        yield from self.executor.launch(install_dir, self.channel.executable, config)

        if patch_dir is not None:
            yield from revert_patch(install_dir, self.store)
        return True

    @staticmethod
    def _wanted_components(config: LaunchConfig) -> list[str]:
        wanted: list[str] = []
        if config.reshade:
            wanted.append("reshade")
        # DXVK only matters when running through wine
        if config.dxvk and config.wine_prefix is not None:
            wanted.append("dxvk")
        if config.fps_unlock != "default":
            wanted.append("fps_unlocker")
        return wanted

    def init(self) -> ProgressStream:
        """Recover from a patch left applied by a previous session."""
        return self._run("init", self._init())

    def _init(self) -> ActionBody:
        if not self.store.has(PATCHED):
            return True

        if not self.state.installed:
            logger.warning("patch_marker_without_install")
            self.store.delete(PATCHED)
            return True

        install_dir = Path(self.state.install_dir)
        try:
            yield from revert_patch(install_dir, self.store)
        except PatchRevertError as e:
            logger.warning("patch_revert_failed", error=str(e))
            yield PhaseChanged("verify", "Restoring game files")
            yield from self.transfer.verify(
                install_dir, self.manifest.game.latest.decompressed_path
            )
            (install_dir / PATCH_MANIFEST).unlink(missing_ok=True)
            self.store.delete(PATCHED)
        return True
