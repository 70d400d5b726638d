"""Catalog hot-reload support."""

import threading
from pathlib import Path

from llm_relay.providers.registry import Catalog, CatalogError, CatalogHolder, load_catalog
from llm_relay.utils import get_logger

logger = get_logger(__name__)


class CatalogReloader:
    """Hot-reload the model and provider tables.

    Polls both files for modification-time changes and swaps a freshly
    loaded catalog into the holder. A table that fails to load leaves the
    current snapshot in place.
    """

    def __init__(
        self,
        holder: CatalogHolder,
        models_path: str | Path,
        providers_path: str | Path,
        poll_interval: float = 2.0,
    ) -> None:
        """Initialize catalog reloader.

        Args:
            holder: Holder receiving new snapshots
            models_path: Model table file
            providers_path: Provider table file
            poll_interval: File poll interval in seconds
        """
        self.holder = holder
        self.models_path = Path(models_path)
        self.providers_path = Path(providers_path)
        self.poll_interval = poll_interval
        self._last_mtimes = self._mtimes()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start watching for catalog changes."""
        if self._thread is not None:
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._watch_loop, daemon=True)
        self._thread.start()
        logger.info(
            "catalog_reloader.started",
            models=str(self.models_path),
            providers=str(self.providers_path),
        )

    def stop(self) -> None:
        """Stop watching for catalog changes."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            self._thread = None
        logger.info("catalog_reloader.stopped")

    def _watch_loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            self.check_and_reload()

    def _mtimes(self) -> tuple[float | None, float | None]:
        return (self._mtime(self.models_path), self._mtime(self.providers_path))

    @staticmethod
    def _mtime(path: Path) -> float | None:
        try:
            return path.stat().st_mtime
        except OSError:
            return None

    def check_and_reload(self) -> bool:
        """Reload if either table changed since the last look.

        Returns:
            True if a new catalog was published
        """
        mtimes = self._mtimes()
        if mtimes == self._last_mtimes:
            return False

        logger.info("catalog_reloader.detected_change")
        # A broken edit is retried on the next change, not on every poll
        self._last_mtimes = mtimes
        return self.force_reload() is not None

    def force_reload(self) -> Catalog | None:
        """Load both tables now and publish them.

        Returns:
            The new catalog, or None if loading failed
        """
        with self._lock:
            try:
                catalog = load_catalog(self.models_path, self.providers_path)
            except CatalogError as e:
                logger.error("catalog_reloader.reload_failed", error=str(e))
                return None

            self.holder.swap(catalog)
            self._last_mtimes = self._mtimes()
        logger.info("catalog_reloader.reload_success")
        return catalog
