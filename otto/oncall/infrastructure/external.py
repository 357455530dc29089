"""
OnCall External Integrations
============================

Runtime services for the on-call module:
- YAML config file watcher
- APScheduler for the periodic escalation sweep
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from otto.core import ConfigurationException
from otto.oncall.domain import OnCallConfig
from otto.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for on-call config file changes."""

    def __init__(self, config_manager: "OnCallConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("On-call config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()

    on_created = on_modified


class OnCallConfigManager:
    """
    Holds the current OnCallConfig and swaps it when the YAML file changes.

    Watchdog callbacks run on the observer thread, hence the lock. A file
    that fails to parse or validate leaves the previous config in place.
    """

    def __init__(self):
        self._config: Optional[OnCallConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> OnCallConfig:
        """
        Initial load. A missing file yields defaults.

        Raises:
            ConfigurationException: File exists but is not a valid config
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> OnCallConfig:
        if not path.exists():
            logger.warning("On-call config file not found, using defaults", extra={"path": str(path)})
            return OnCallConfig()

        try:
            data = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationException("On-call config could not be read", {"path": str(path), "error": str(e)}) from e

        if not isinstance(data, dict):
            raise ConfigurationException("On-call config must be a mapping", {"path": str(path)})

        try:
            return OnCallConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationException("Invalid on-call config", {"path": str(path), "errors": e.errors()}) from e

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(
                "Failed to reload on-call config, keeping previous",
                extra={"path": str(self._path), "error": e.message}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "On-call configuration reloaded",
            extra={"enabled_repositories": new_config.enabled_repositories}
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skipped when the file does not exist or inotify is unavailable
        (e.g. some containers).
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("On-call config file missing, not watching", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                ConfigFileHandler(self, self._path),
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Watching on-call config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> OnCallConfig:
        with self._lock:
            return self._config or OnCallConfig()


class EscalationScheduler:
    """
    Wrapper for APScheduler running the escalation sweep.

    One sweep at a time; missed runs are coalesced rather than queued.
    Stopping waits for a running sweep to finish.
    """

    JOB_ID = "escalation_sweep"

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Start the scheduler with the given coroutine function."""
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="Escalation Sweep Job",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("Escalation scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None

        self._running = False
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
