"""Rule file watcher module

Provides a thin wrapper around ``watchdog`` that monitors a single rule
file. When the file is created, modified or moved into place, the rule
tree is recompiled and published to a :class:`DeckClassifier`. A rule
file that fails to load leaves the previously active tree in place.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..classifiers.classifier import DeckClassifier
from ..rules.errors import RuleTreeError
from ..utils.file_utils import calculate_file_hash


class RuleFileWatcher(FileSystemEventHandler):
    """Watch one file and notify when its contents may have changed.

    Parameters
    ----------
    file_path: str
        Path to the rule file. Its parent directory is observed.
    callback: Callable[[str], None]
        Function called with the path of the rule file whenever it is
        created, modified or moved into place.
    """

    def __init__(self, file_path: str, callback: Callable[[str], None]) -> None:
        self._file = os.path.abspath(file_path)
        self._directory = str(Path(self._file).parent)
        self._callback = callback
        self._observer = Observer()

    def _is_target(self, path) -> bool:
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return os.path.abspath(path) == self._file

    # ------------------------------------------------------------------
    # FileSystemEventHandler methods
    # ------------------------------------------------------------------
    def on_created(self, event):  # pragma: no cover - exercised via integration test
        if not event.is_directory and self._is_target(event.src_path):
            self._callback(self._file)

    def on_modified(self, event):  # pragma: no cover - exercised via integration test
        if not event.is_directory and self._is_target(event.src_path):
            self._callback(self._file)

    def on_moved(self, event):  # pragma: no cover - editors that save via rename
        if not event.is_directory and self._is_target(event.dest_path):
            self._callback(self._file)

    # ------------------------------------------------------------------
    # Observer control methods
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start watching the rule file."""
        self._observer.schedule(self, self._directory, recursive=False)
        self._observer.start()

    def stop(self) -> None:
        """Stop watching the rule file."""
        self._observer.stop()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait until the observer thread finishes."""
        self._observer.join(timeout)


class RuleFileReloader:
    """Recompile a classifier's rule tree when its rule file changes.

    Change notifications whose file content hash equals the last loaded
    content are ignored, so the burst of events a single save produces
    triggers one recompilation. ``on_reload`` is called with ``None`` on
    success or with the :class:`RuleTreeError` that kept the previous
    tree active.
    """

    def __init__(
        self,
        classifier: DeckClassifier,
        file_path: str,
        on_reload: Optional[Callable[[Optional[RuleTreeError]], None]] = None,
    ) -> None:
        self.classifier = classifier
        self.file_path = file_path
        self.on_reload = on_reload
        self.logger = logging.getLogger(__name__)

        self._last_hash: Optional[str] = None
        self._lock = threading.Lock()
        self._watcher = RuleFileWatcher(file_path, self.reload)

    def reload(self, file_path: Optional[str] = None) -> bool:
        """Reload the rule file if its content changed. Returns True when a new tree was published."""
        path = file_path or self.file_path
        with self._lock:
            file_hash = calculate_file_hash(path)
            if file_hash is None:
                self.logger.warning(f"规则文件不可读，跳过重新加载: {path}")
                return False
            if file_hash == self._last_hash:
                return False

            try:
                self.classifier.initialize_from_file(path)
            except OSError as e:
                self.logger.warning(f"规则文件读取失败: {e}")
                return False
            except RuleTreeError as e:
                self.logger.error(f"规则文件重新加载失败，保留原规则树: {e}")
                self._last_hash = file_hash
                self._notify(e)
                return False

            self._last_hash = file_hash
            self.logger.info(f"规则文件已重新加载: {path}")
            self._notify(None)
            return True

    def _notify(self, error: Optional[RuleTreeError]) -> None:
        if self.on_reload is not None:
            self.on_reload(error)

    def start(self) -> None:
        """Load the rule file once, then start watching it."""
        self.reload()
        self._watcher.start()

    def stop(self) -> None:
        self._watcher.stop()
        self._watcher.join()
