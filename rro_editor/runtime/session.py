"""Editor session: owns the loaded document/track pair and file I/O."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import tempfile
from typing import Iterator, Optional

from PyQt5 import QtCore

from rro_core.errors import CodecError
from rro_core.gvas.codec import decode_file, encode
from rro_core.gvas.document import Document
from rro_editor.config import EditorSettings
from rro_editor.editing.edit_engine import EditEngine
from rro_editor.model.errors import TrackModelError
from rro_editor.model.invariants import InvariantError
from rro_editor.model.selection import SelectionState
from rro_editor.model.track_builder import build, write_back
from rro_editor.model.track_model import Track
from rro_editor.runtime.render_feed import CurveSample, iter_visible_curves

logger = logging.getLogger(__name__)

LOAD_ERRORS = (CodecError, TrackModelError, InvariantError, OSError)


def load_pair(path: Path, settings: EditorSettings) -> tuple[Document, Track]:
    document = decode_file(path)
    track = build(document, settings)
    return document, track


class SaveLoadSignals(QtCore.QObject):
    loaded = QtCore.pyqtSignal(int, str, object)
    failed = QtCore.pyqtSignal(int, str, str)


class SaveLoadTask(QtCore.QRunnable):
    """Decode and build a save off the main thread.

    The document and track stay private to the task until they are handed
    over through ``signals.loaded`` together with the generation number the
    load was started with.
    """

    def __init__(self, generation: int, path: Path, settings: EditorSettings) -> None:
        super().__init__()
        self.setAutoDelete(True)
        self.signals = SaveLoadSignals()
        self._generation = generation
        self._path = path
        self._settings = settings

    def run(self) -> None:
        try:
            pair = load_pair(self._path, self._settings)
        except LOAD_ERRORS as exc:
            self.signals.failed.emit(self._generation, str(self._path), str(exc))
            return
        self.signals.loaded.emit(self._generation, str(self._path), pair)


class EditorSession(QtCore.QObject):
    """Holds at most one ``(Document, Track)`` pair and its edit engine."""

    trackReplaced = QtCore.pyqtSignal(object)
    loadFailed = QtCore.pyqtSignal(str, str)
    saved = QtCore.pyqtSignal(str)

    def __init__(
        self,
        settings: Optional[EditorSettings] = None,
        *,
        thread_pool: Optional[QtCore.QThreadPool] = None,
    ) -> None:
        super().__init__()
        self._settings = settings or EditorSettings()
        self._thread_pool = thread_pool
        self._pair: Optional[tuple[Document, Track]] = None
        self._path: Optional[Path] = None
        self._engine: Optional[EditEngine] = None
        self._load_generation = 0
        self._load_tasks: set[SaveLoadTask] = set()
        self.selection = SelectionState()

    @property
    def settings(self) -> EditorSettings:
        return self._settings

    @property
    def document(self) -> Optional[Document]:
        return self._pair[0] if self._pair is not None else None

    @property
    def track(self) -> Optional[Track]:
        return self._pair[1] if self._pair is not None else None

    @property
    def engine(self) -> Optional[EditEngine]:
        return self._engine

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def load_generation(self) -> int:
        return self._load_generation

    @property
    def is_loading(self) -> bool:
        return bool(self._load_tasks)

    def _install(self, path: Path, document: Document, track: Track) -> None:
        # Both references change together; the old pair is dropped whole.
        self._pair = (document, track)
        self._path = path
        self._engine = EditEngine(track, self._settings, on_changed=self.selection.refresh)
        self.selection.reset(track, self._engine)
        logger.info("Loaded %s: %d splines", path, len(track.splines()))
        self.trackReplaced.emit(track)

    def load(self, path: Path | str) -> Track:
        """Load synchronously; on failure the current pair is kept and the error re-raised."""

        path = Path(path)
        self._load_generation += 1
        try:
            document, track = load_pair(path, self._settings)
        except LOAD_ERRORS as exc:
            logger.error("Failed to load %s: %s", path, exc)
            self.loadFailed.emit(str(path), str(exc))
            raise
        self._install(path, document, track)
        return track

    def load_async(self, path: Path | str) -> int:
        """Start a background load and return its generation number."""

        path = Path(path)
        self._load_generation += 1
        task = SaveLoadTask(self._load_generation, path, self._settings)
        task.signals.loaded.connect(
            lambda generation, path_text, pair, task=task: self._handle_loaded(
                task, generation, path_text, pair
            )
        )
        task.signals.failed.connect(
            lambda generation, path_text, message, task=task: self._handle_failed(
                task, generation, path_text, message
            )
        )
        self._load_tasks.add(task)
        pool = self._thread_pool or QtCore.QThreadPool.globalInstance()
        pool.start(task)
        logger.debug("Started background load %d of %s", self._load_generation, path)
        return self._load_generation

    def cancel_load(self) -> None:
        """Discard any in-flight load; its result will never replace the track."""

        self._load_generation += 1
        logger.info("Cancelled pending load(s)")

    def _handle_loaded(self, task: SaveLoadTask, generation: int, path_text: str, pair) -> None:
        self._load_tasks.discard(task)
        if generation != self._load_generation:
            logger.debug("Dropping stale load %d of %s", generation, path_text)
            return
        document, track = pair
        self._install(Path(path_text), document, track)

    def _handle_failed(self, task: SaveLoadTask, generation: int, path_text: str, message: str) -> None:
        self._load_tasks.discard(task)
        if generation != self._load_generation:
            return
        logger.error("Failed to load %s: %s", path_text, message)
        self.loadFailed.emit(path_text, message)

    def close(self) -> None:
        self._load_generation += 1
        self._pair = None
        self._path = None
        self._engine = None
        self.selection.reset(None)
        self.trackReplaced.emit(None)

    def save(self, path: Path | str | None = None) -> Path:
        """Write the current track into the loaded document and save atomically."""

        if self._pair is None:
            raise RuntimeError("No save file is loaded")
        target = Path(path) if path is not None else self._path
        if target is None:
            raise RuntimeError("No destination path for save")
        if self._engine is not None:
            self._engine.cancel()
        document, track = self._pair
        updated = write_back(track, document)
        data = encode(updated)
        handle, temp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
        )
        try:
            with os.fdopen(handle, "wb") as stream:
                stream.write(data)
                stream.flush()
                os.fsync(stream.fileno())
            os.replace(temp_name, target)
        except OSError:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise
        # The decoded document stays the write-back base. Undo can return the
        # track to its loaded state, which must then write the loaded bytes.
        self._path = target
        logger.info("Saved %s (%d bytes)", target, len(data))
        self.saved.emit(str(target))
        return target

    def visible_curves(self) -> Iterator[CurveSample]:
        """Sampled curves of the loaded track using the configured sampling."""

        track = self.track
        if track is None:
            return iter(())
        return iter_visible_curves(track, self.selection, self._settings)
