"""Incremental update controller.

Owns every input of the index and is the only writer of snapshots:

    idle --change--> debouncing --timer--> rebuilding --publish--> idle

Each change event restarts a trailing-edge debounce timer. A rebuild
re-reads only the touched paths and reuses cached scan results for the
rest, then assembles a new Snapshot and publishes it by replacing a single
attribute. Readers grab ``controller.snapshot`` without locking and keep a
consistent view for as long as they hold the reference.

Changes that arrive while rebuilding are queued and start a new debounce
cycle right after publication. Config and ignore-file changes trigger a
full rebuild (re-walk of the project).
"""

import hashlib
import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..config import DEFAULT_CONFIG_PATH, ProjectConfig, load_project_config
from ..exceptions import ConfigError, ConfigReloadError, SourceFetchError, StartupError, WatchError
from ..models.enums import ControllerState
from .core.markdown import ExtractedSpec, extract_rules
from .index.builder import ScannedFile, content_digest, scan_file
from .snapshot import Snapshot, assemble_snapshot, compute_fingerprint, empty_snapshot
from .sources import (
    IGNORE_FILES,
    BuildCache,
    IgnoreRules,
    Overlay,
    fetch_url,
    is_skipped,
    read_input,
    relative_path,
    select_paths,
    walk_project,
)

logger = logging.getLogger(__name__)

WATCH_POLL_S = 1.0
MAX_WATCH_ERRORS = 50


@dataclass(frozen=True)
class WatchErrorRecord:
    """A recorded watcher failure."""

    message: str
    at: datetime = field(default_factory=lambda: datetime.now(UTC))


class _ChangeHandler(FileSystemEventHandler):
    """Forwards file create/delete/modify/move events to the controller."""

    def __init__(self, controller: "UpdateController"):
        super().__init__()
        self._controller = controller

    def _forward(self, event: FileSystemEvent, *paths) -> None:
        if event.is_directory:
            return
        self._controller.notify_changed(p for p in paths if p)

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(event, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(event, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._forward(event, event.src_path, getattr(event, "dest_path", None))


class UpdateController:
    """Watches a project and publishes snapshots of its traceability index.

    Args:
        project_root: Root directory of the project
        config_path: Project config file (default .config/ruletrace/config.toml)
        debounce_ms: Trailing-edge debounce window
        scan_workers: Threads used for scanning and extraction
        watch: Start a filesystem watcher in start()
        watch_retry_initial_s: First backoff delay after a watch failure
        watch_retry_max_s: Backoff ceiling
        fetcher: Callable downloading ``rules_url`` specs

    Raises:
        StartupError: if the project root does not exist.
    """

    def __init__(
        self,
        project_root: Path | str,
        config_path: Path | str | None = None,
        *,
        debounce_ms: int = 200,
        scan_workers: int = 4,
        watch: bool = True,
        watch_retry_initial_s: float = 0.5,
        watch_retry_max_s: float = 30.0,
        fetcher: Callable[[str], str] = fetch_url,
    ):
        root = Path(project_root)
        if not root.is_dir():
            raise StartupError(f"Project root {root} does not exist or is not a directory")
        self.root = root.resolve()

        config = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self.config_path = config if config.is_absolute() else self.root / config
        self._config_rel = relative_path(self.root, self.config_path)

        self._debounce_s = debounce_ms / 1000
        self._watch_enabled = watch
        self._retry_initial_s = watch_retry_initial_s
        self._retry_max_s = watch_retry_max_s
        self._fetcher = fetcher
        self._executor = ThreadPoolExecutor(max_workers=scan_workers, thread_name_prefix="ruletrace-scan")

        self.overlay = Overlay()
        self._scan_cache: BuildCache[ScannedFile] = BuildCache()
        self._spec_cache: BuildCache[ExtractedSpec] = BuildCache()

        self._cond = threading.Condition()
        self._build_lock = threading.Lock()
        self._pending: set[str] = set()
        self._full_pending = False
        self._deadline = 0.0
        self._state = ControllerState.IDLE
        self._stopping = False
        self._stop_event = threading.Event()
        self._worker: threading.Thread | None = None
        self._watch_thread: threading.Thread | None = None
        self._observer = None

        self._config = ProjectConfig()
        self.config_error: str | None = None
        self._ignore = IgnoreRules()
        self._all_files: set[str] = set()
        self._watch_errors: deque[WatchErrorRecord] = deque(maxlen=MAX_WATCH_ERRORS)
        self._snapshot: Snapshot = empty_snapshot(str(self.root))

    # ============ READ SIDE ============

    @property
    def snapshot(self) -> Snapshot:
        """Currently published snapshot."""
        return self._snapshot

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def watch_errors(self) -> list[WatchErrorRecord]:
        return list(self._watch_errors)

    def status(self) -> dict:
        with self._cond:
            pending = len(self._pending)
        return {
            "state": self._state.value,
            "version": self._snapshot.version,
            "pending_changes": pending,
            "config_error": self.config_error,
            "watching": self._observer is not None and self._observer.is_alive(),
            "watch_errors": [
                {"message": e.message, "at": e.at.isoformat()} for e in self._watch_errors
            ],
        }

    def wait_for_version(self, version: int, timeout: float | None = None) -> bool:
        """Block until a snapshot with at least ``version`` is published."""
        with self._cond:
            return self._cond.wait_for(lambda: self._snapshot.version >= version, timeout)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no change is pending and no rebuild is running."""
        with self._cond:
            return self._cond.wait_for(
                lambda: not self._pending
                and not self._full_pending
                and self._state in (ControllerState.IDLE, ControllerState.STOPPED),
                timeout,
            )

    # ============ LIFECYCLE ============

    def start(self) -> Snapshot:
        """Build and publish the first snapshot, then start the worker and watcher."""
        snapshot = self._rebuild(set(), full=True, initial=True)
        self._worker = threading.Thread(target=self._run, name="ruletrace-controller", daemon=True)
        self._worker.start()
        if self._watch_enabled:
            self._watch_thread = threading.Thread(
                target=self._supervise_watch, name="ruletrace-watch", daemon=True
            )
            self._watch_thread.start()
        return snapshot

    def stop(self) -> None:
        self._stop_event.set()
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
        if self._worker is not None:
            self._worker.join(timeout=5.0)
        if self._watch_thread is not None:
            self._watch_thread.join(timeout=5.0)
        self._stop_observer()
        self._executor.shutdown(wait=True)
        with self._cond:
            self._state = ControllerState.STOPPED
            self._cond.notify_all()
        logger.info("Update controller stopped")

    def __enter__(self) -> "UpdateController":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    # ============ WRITE SIDE ============

    def notify_changed(self, paths: Iterable[str | Path]) -> None:
        """Queue changed paths (absolute or root-relative) for the next rebuild."""
        accepted = []
        full = False
        for path in paths:
            rel = relative_path(self.root, path)
            if rel is None or is_skipped(rel):
                continue
            if rel == self._config_rel or rel in IGNORE_FILES:
                full = True
            accepted.append(rel)
        if not accepted:
            return

        with self._cond:
            self._pending.update(accepted)
            self._full_pending = self._full_pending or full
            self._deadline = time.monotonic() + self._debounce_s
            if self._state is ControllerState.IDLE:
                self._state = ControllerState.DEBOUNCING
            self._cond.notify_all()

    def rebuild_now(self, paths: Iterable[str] | None = None, full: bool = False) -> Snapshot:
        """Rebuild synchronously, folding in any queued changes.

        Raises:
            ConfigReloadError: on a full rebuild with a malformed config; the
                previous snapshot stays published.
        """
        changed = set()
        for path in paths or ():
            rel = relative_path(self.root, path)
            if rel is not None:
                changed.add(rel)
        with self._cond:
            changed |= self._pending
            full = full or self._full_pending
            self._pending = set()
            self._full_pending = False
        return self._rebuild(changed, full=full)

    def reload(self) -> Snapshot:
        """Re-read the config, re-walk the project and rebuild everything."""
        return self.rebuild_now(full=True)

    def overlay_open(self, path: str, content: str) -> None:
        rel = relative_path(self.root, path)
        if rel is None:
            return
        self.overlay.set(rel, content)
        self.notify_changed([rel])

    def overlay_change(self, path: str, content: str) -> None:
        self.overlay_open(path, content)

    def overlay_close(self, path: str) -> None:
        rel = relative_path(self.root, path)
        if rel is not None and self.overlay.discard(rel):
            self.notify_changed([rel])

    # ============ WORKER ============

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._stopping:
                    if not self._pending and not self._full_pending:
                        self._state = ControllerState.IDLE
                        self._cond.notify_all()
                        self._cond.wait()
                        continue
                    remaining = self._deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._stopping:
                    return
                changed, self._pending = self._pending, set()
                full, self._full_pending = self._full_pending, False
                self._state = ControllerState.REBUILDING

            try:
                self._rebuild(changed, full=full)
            except ConfigReloadError as e:
                logger.warning(f"Config reload failed, keeping snapshot v{self._snapshot.version}: {e}")
            except Exception as e:
                logger.error(f"Rebuild failed: {e}", exc_info=True)

            with self._cond:
                if self._pending or self._full_pending:
                    self._deadline = time.monotonic() + self._debounce_s
                    self._state = ControllerState.DEBOUNCING
                self._cond.notify_all()

    # ============ REBUILD ============

    def _load_config(self, initial: bool) -> None:
        try:
            config = load_project_config(self.config_path)
        except ConfigError as e:
            self.config_error = str(e)
            if initial:
                logger.error(f"Starting with empty config: {e}")
                self._config = ProjectConfig()
                return
            raise ConfigReloadError(str(e)) from e
        self.config_error = None
        self._config = config

    def _apply_changes(self, changed: set[str]) -> None:
        for path in changed:
            exists = self.overlay.get(path) is not None or (self.root / path).is_file()
            if exists and not self._ignore.excludes(path):
                self._all_files.add(path)
            else:
                self._all_files.discard(path)

    def _rebuild(self, changed: set[str], full: bool = False, initial: bool = False) -> Snapshot:
        with self._build_lock:
            with self._cond:
                self._state = ControllerState.REBUILDING
            try:
                return self._build(changed, full, initial)
            finally:
                with self._cond:
                    if self._state is ControllerState.REBUILDING:
                        busy = self._pending or self._full_pending
                        self._state = ControllerState.DEBOUNCING if busy else ControllerState.IDLE
                    self._cond.notify_all()

    def _build(self, changed: set[str], full: bool, initial: bool) -> Snapshot:
        started = time.monotonic()
        if full:
            self._load_config(initial)
            self._ignore = IgnoreRules.load(self.root)
            self._all_files = set(walk_project(self.root, self._ignore))
            self._all_files.update(p for p in self.overlay.paths() if not self._ignore.excludes(p))
            touched = None
        else:
            self._apply_changes(changed)
            touched = changed

        config = self._config
        spec_documents, spec_errors, spec_parts = self._build_specs(config, touched, full)
        impl_files, impl_parts = self._build_impls(config, touched)
        fingerprint = compute_fingerprint(
            [f"config:{config.model_dump_json()}", f"config_error:{self.config_error}"]
            + spec_parts
            + impl_parts
        )

        previous = self._snapshot
        if fingerprint == previous.fingerprint:
            logger.debug(f"Rebuild produced no change, staying at v{previous.version}")
            return previous

        snapshot = assemble_snapshot(
            version=previous.version + 1,
            fingerprint=fingerprint,
            project_root=str(self.root),
            config=config,
            config_error=self.config_error,
            spec_documents=spec_documents,
            spec_errors=spec_errors,
            impl_files=impl_files,
        )
        self._publish(snapshot)

        elapsed_ms = (time.monotonic() - started) * 1000
        count = "all" if touched is None else len(touched)
        logger.info(
            f"Published snapshot v{snapshot.version} ({count} changed file(s), {elapsed_ms:.0f} ms)"
        )
        return snapshot

    def _publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        with self._cond:
            self._cond.notify_all()

    def _read_cached(self, cache: BuildCache, key, path: str, touched: set[str] | None):
        """Return ``(digest, cached value or None, data or None)`` for one input."""
        if touched is not None and path not in touched:
            entry = cache.lookup(key)
            if entry is not None:
                return entry[0], entry[1], None
        data = read_input(self.root, path, self.overlay)
        if data is None:
            return None, None, None
        digest = content_digest(data)
        return digest, cache.get(key, digest), data

    def _spec_paths(self, spec) -> list[str]:
        if spec.rules_glob:
            return select_paths(self._all_files, [spec.rules_glob])
        if spec.rules_file:
            return [spec.rules_file.removeprefix("./")]
        return []

    def _build_specs(self, config: ProjectConfig, touched: set[str] | None, full: bool):
        documents: dict[str, list[ExtractedSpec]] = {}
        errors: dict[str, str] = {}
        parts: list[str] = []
        jobs: list[tuple[str, str, str, bytes]] = []
        used: set[str] = set()

        for spec in config.specs:
            documents[spec.name] = []
            if spec.rules_url:
                extracted, digest, error = self._remote_spec(spec.rules_url, full)
                used.add(spec.rules_url)
                if error:
                    errors[spec.name] = error
                    parts.append(f"spec_error:{spec.name}:{error}")
                if extracted is not None:
                    documents[spec.name].append(extracted)
                    parts.append(f"spec:{spec.name}:{spec.rules_url}:{digest}")
                continue

            for path in self._spec_paths(spec):
                used.add(path)
                digest, cached, data = self._read_cached(self._spec_cache, path, path, touched)
                if digest is None:
                    if spec.rules_file:
                        errors[spec.name] = f"Spec file {spec.rules_file} not found"
                        parts.append(f"spec_error:{spec.name}:missing")
                    continue
                parts.append(f"spec:{spec.name}:{path}:{digest}")
                if cached is not None:
                    documents[spec.name].append(cached)
                else:
                    jobs.append((spec.name, path, digest, data))

        def extract(job):
            name, path, digest, data = job
            return name, path, digest, extract_rules(data.decode("utf-8", errors="replace"), path)

        for name, path, digest, extracted in self._executor.map(extract, jobs):
            self._spec_cache.put(path, digest, extracted)
            documents[name].append(extracted)

        if full:
            self._spec_cache.retain(used)
        return documents, errors, parts

    def _remote_spec(self, url: str, refetch: bool):
        """Fetch (on full rebuilds) or reuse a ``rules_url`` document."""
        entry = self._spec_cache.lookup(url)
        if entry is not None and not refetch:
            return entry[1], entry[0], None
        try:
            text = self._fetcher(url)
        except SourceFetchError as e:
            logger.warning(str(e))
            if entry is not None:
                return entry[1], entry[0], str(e)
            return None, None, str(e)
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        cached = self._spec_cache.get(url, digest)
        if cached is None:
            cached = extract_rules(text, url)
            self._spec_cache.put(url, digest, cached)
        return cached, digest, None

    def _build_impls(self, config: ProjectConfig, touched: set[str] | None):
        files: dict[tuple[str, str], list[ScannedFile]] = {}
        parts: list[str] = []
        jobs: list[tuple[tuple[str, str], str, str, bytes]] = []
        used: set[tuple[str, str]] = set()

        for spec in config.specs:
            for impl in spec.impls:
                key = (spec.name, impl.name)
                files[key] = []
                for path in select_paths(self._all_files, impl.include, impl.exclude):
                    cache_key = (path, impl.lang)
                    used.add(cache_key)
                    digest, cached, data = self._read_cached(self._scan_cache, cache_key, path, touched)
                    if digest is None:
                        continue
                    parts.append(f"impl:{spec.name}/{impl.name}:{path}:{digest}")
                    if cached is not None:
                        files[key].append(cached)
                    else:
                        jobs.append((key, path, impl.lang, data))

        # The same file may be scanned for several impls of one language.
        unique: dict[tuple[str, str], bytes] = {}
        for _, path, lang, data in jobs:
            unique.setdefault((path, lang), data)

        def scan(item):
            (path, lang), data = item
            return (path, lang), scan_file(path, data, lang)

        scanned = dict(self._executor.map(scan, unique.items()))
        for cache_key, result in scanned.items():
            self._scan_cache.put(cache_key, result.digest, result)
        for key, path, lang, _ in jobs:
            files[key].append(scanned[(path, lang)])

        if touched is None:
            self._scan_cache.retain(used)
        return files, parts

    # ============ WATCHER ============

    def _record_watch_error(self, message: str) -> None:
        logger.warning(message)
        self._watch_errors.append(WatchErrorRecord(message=message))

    def _start_observer(self):
        observer = Observer()
        observer.schedule(_ChangeHandler(self), str(self.root), recursive=True)
        observer.start()
        return observer

    def _stop_observer(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=2.0)

    def _supervise_watch(self) -> None:
        """Keep a watchdog observer running, restarting it with exponential backoff."""
        delay = self._retry_initial_s
        while not self._stop_event.is_set():
            healthy = self._observer is not None and self._observer.is_alive() and self.root.is_dir()
            if not healthy:
                if self._observer is not None:
                    self._record_watch_error(f"Watcher for {self.root} stopped unexpectedly")
                    self._stop_observer()
                try:
                    if not self.root.is_dir():
                        raise WatchError(f"Project root {self.root} is gone")
                    self._observer = self._start_observer()
                    logger.info(f"Watching {self.root}")
                    delay = self._retry_initial_s
                except (OSError, WatchError) as e:
                    self._record_watch_error(f"Failed to watch {self.root}: {e}")
                    self._stop_event.wait(delay)
                    delay = min(delay * 2, self._retry_max_s)
                    continue
            self._stop_event.wait(WATCH_POLL_S)
