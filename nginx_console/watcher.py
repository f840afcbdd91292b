"""Follows nginx log files and keeps the newest lines per category.

A LogTailWatcher polls one file for appended data and hands every completed
line to a callback. Watchers run in daemon threads under a WatcherSupervisor,
which restarts any watcher whose loop died. When enabled, watchdog events wake
a watcher early; polling alone is still enough for correctness.
"""

import collections
import logging
import os
import threading
import time

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from nginx_console.errors import ConsoleError, InvalidCategoryError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5


class LogTailWatcher:
    """Delivers each line appended to *path* to *on_line*, in order, once.

    Handles:
    - partial lines (held until their newline arrives)
    - truncation (rewind to the start)
    - rotation (drain the old handle, reopen the path from its start)
    - rename-then-create rotation (the path may be missing for a while)

    A path that stays missing longer than *missing_grace* (default: five poll
    intervals, at least one second), or an unreadable file, ends the loop; the
    exception propagates out of run(), or lands in ``error`` / ``on_error``
    when started as a thread.
    """

    def __init__(self, path: str, on_line, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 on_error=None, stop_event: threading.Event | None = None,
                 from_end: bool = True, missing_grace: float | None = None,
                 resume_from: tuple[int, int] | None = None):
        self.path = path
        self._on_line = on_line
        self._poll_interval = poll_interval
        self._on_error = on_error
        self._stop = stop_event or threading.Event()
        self._wake = threading.Event()
        self._from_end = from_end
        self._missing_grace = (max(5 * poll_interval, 1.0) if missing_grace is None
                               else missing_grace)
        self._missing_since: float | None = None
        self._resume_from = resume_from
        self._thread = None
        self._file = None
        self._inode = None
        self._partial = b""
        self.error: BaseException | None = None
        self.lines_delivered = 0
        self.started_at: float | None = None
        # (inode, offset) of the next unread byte, set when the file is closed
        self.position: tuple[int, int] | None = None

    def start(self):
        """Open the file now (errors raise here) and follow it in a daemon thread."""
        self._open(seek_end=self._from_end)
        self.started_at = time.time()
        self._thread = threading.Thread(
            target=self._run_guarded, name=f"tail:{self.path}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 2.0):
        self._stop.set()
        self._wake.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def wake(self):
        self._wake.set()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self):
        """Follow the file until stopped. Blocks the calling thread."""
        if self._file is None:
            self._open(seek_end=self._from_end)
        try:
            while not self._stop.is_set():
                if self._read_line():
                    continue
                self._check_file()
                self._wake.wait(self._poll_interval)
                self._wake.clear()
        finally:
            self._close()

    def _run_guarded(self):
        try:
            self.run()
        except Exception as e:
            self.error = e
            logger.exception("Watcher for %s stopped", self.path)
            if self._on_error is not None:
                self._on_error(self, e)

    def _open(self, seek_end: bool):
        self._file = open(self.path, "rb")
        st = os.fstat(self._file.fileno())
        self._inode = st.st_ino
        self._partial = b""
        resume, self._resume_from = self._resume_from, None
        if resume is not None and resume[0] == self._inode and resume[1] <= st.st_size:
            self._file.seek(resume[1])
        elif seek_end:
            self._file.seek(0, os.SEEK_END)
        logger.debug("Opened %s (inode=%d)", self.path, self._inode)

    def _close(self):
        if self._file is not None:
            self.position = (self._inode, self._file.tell() - len(self._partial))
            self._file.close()
            self._file = None

    def _read_line(self) -> bool:
        """Deliver one completed line. False means no complete line is available yet."""
        chunk = self._file.readline()
        if not chunk:
            return False
        if not chunk.endswith(b"\n"):
            self._partial += chunk
            return False
        data, self._partial = self._partial + chunk, b""
        self._on_line(data.decode("utf-8", errors="replace").rstrip("\r\n"))
        self.lines_delivered += 1
        return True

    def _check_file(self):
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            # renamed away: the old handle still holds its unread lines
            while self._read_line():
                pass
            now = time.monotonic()
            if self._missing_since is None:
                self._missing_since = now
                logger.info("%s disappeared, waiting for it to be recreated", self.path)
            if now - self._missing_since > self._missing_grace:
                raise
            return
        self._missing_since = None
        if st.st_ino != self._inode:
            logger.info("File rotation detected for %s", self.path)
            while self._read_line():
                pass
            self._close()
            self._open(seek_end=False)
        elif st.st_size < self._file.tell():
            logger.info("File truncation detected for %s", self.path)
            self._file.seek(0)
            self._partial = b""


def watch(path: str, on_line, poll_interval: float = DEFAULT_POLL_INTERVAL,
          stop_event: threading.Event | None = None):
    """Follow *path* in the calling thread until *stop_event* is set."""
    LogTailWatcher(path, on_line, poll_interval, stop_event=stop_event).run()


class RecentLines:
    """Bounded, thread-safe buffer of the newest lines with sequence numbers."""

    def __init__(self, maxlen: int = 200):
        self._lines: collections.deque[tuple[int, str]] = collections.deque(maxlen=maxlen)
        self._seq = 0
        self._lock = threading.Lock()

    def append(self, line: str):
        with self._lock:
            self._seq += 1
            self._lines.append((self._seq, line))

    def since(self, after: int = 0) -> tuple[list[str], int]:
        with self._lock:
            return [line for seq, line in self._lines if seq > after], self._seq

    @property
    def last(self) -> int:
        return self._seq


class _WakeHandler(FileSystemEventHandler):
    def __init__(self):
        super().__init__()
        self._watchers: dict[str, LogTailWatcher] = {}

    def register(self, watcher: LogTailWatcher):
        self._watchers[os.path.abspath(watcher.path)] = watcher

    def unregister(self, watcher: LogTailWatcher):
        self._watchers.pop(os.path.abspath(watcher.path), None)

    def _handle(self, event):
        if event.is_directory:
            return
        watcher = self._watchers.get(os.path.abspath(event.src_path))
        if watcher is not None:
            watcher.wake()

    def on_modified(self, event):
        self._handle(event)

    def on_created(self, event):
        self._handle(event)


class WatcherSupervisor:
    """Runs one watcher per log category and restarts the ones that die."""

    def __init__(self, resolver, categories, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 buffer_size: int = 200, use_fs_events: bool = False):
        for category in categories:
            resolver.directive_for(category)
        self._resolver = resolver
        self._categories = tuple(categories)
        self._poll_interval = poll_interval
        self._buffers = {c: RecentLines(buffer_size) for c in self._categories}
        self._watchers: dict[str, LogTailWatcher] = {}
        self._problems: dict[str, str] = {}
        self._restarts = {c: 0 for c in self._categories}
        self._ever_started: set[str] = set()
        self._positions: dict[str, tuple[int, int]] = {}
        self._lock = threading.Lock()
        self._starting = threading.Lock()
        self._stopped = False
        self._handler = _WakeHandler() if use_fs_events else None
        self._observer = None
        self._observed_dirs: set[str] = set()

    def start(self):
        if self._handler is not None:
            self._observer = Observer()
            self._observer.start()
        with self._starting:
            for category in self._categories:
                self._start_one(category)

    def check(self) -> list[str]:
        """Start every watcher that is not running. Returns the categories started."""
        with self._starting:
            pending = []
            with self._lock:
                if self._stopped:
                    return []
                for category in self._categories:
                    previous = self._watchers.get(category)
                    if previous is not None and previous.is_alive:
                        continue
                    if previous is not None:
                        self._forget(category, previous)
                    pending.append(category)
            # resolving may run nginx -V, so status() must not wait on it
            return [c for c in pending if self._start_one(c) is not None]

    def stop(self):
        with self._lock:
            self._stopped = True
            watchers = list(self._watchers.values())
            self._watchers.clear()
        for watcher in watchers:
            watcher.stop()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
        logger.info("Stopped %d log watcher(s)", len(watchers))

    def recent(self, category: str, after: int = 0) -> dict:
        buffer = self._buffers.get(category)
        if buffer is None:
            raise InvalidCategoryError(category, self._buffers)
        lines, last = buffer.since(after)
        return {"type": category, "logs": lines, "last": last}

    def status(self) -> dict:
        with self._lock:
            out = {}
            for category in self._categories:
                watcher = self._watchers.get(category)
                out[category] = {
                    "path": watcher.path if watcher else None,
                    "running": bool(watcher and watcher.is_alive),
                    "lines": watcher.lines_delivered if watcher else 0,
                    "restarts": self._restarts[category],
                    "error": self._problems.get(category),
                }
            return out

    def _start_one(self, category: str) -> LogTailWatcher | None:
        """Resolve and start a watcher for *category* without holding the lock.

        A replacement for a watcher that ran before resumes where the old one
        stopped when the file is the same, and otherwise reads the new file
        from its start, so lines written while nothing was watching are kept.
        """
        with self._lock:
            restart = category in self._ever_started
            resume = self._positions.pop(category, None)
        try:
            path = self._resolver.resolve_log_file(category)
            watcher = LogTailWatcher(path, self._buffers[category].append,
                                     self._poll_interval, from_end=not restart,
                                     resume_from=resume)
            watcher.start()
        except (ConsoleError, OSError) as e:
            with self._lock:
                if resume is not None:
                    self._positions.setdefault(category, resume)
                self._note_problem(category, getattr(e, "message", None) or str(e))
            return None

        with self._lock:
            if self._stopped:
                installed = False
            else:
                installed = True
                self._watchers[category] = watcher
                self._problems.pop(category, None)
                if restart:
                    self._restarts[category] += 1
                self._ever_started.add(category)
                if self._handler is not None:
                    self._handler.register(watcher)
                    self._observe(os.path.dirname(os.path.abspath(path)))
        if not installed:
            watcher.stop()
            return None
        logger.info("Watching %s log at %s", category, path)
        return watcher

    def _forget(self, category: str, watcher: LogTailWatcher):
        del self._watchers[category]
        if watcher.position is not None:
            self._positions[category] = watcher.position
        if self._handler is not None:
            self._handler.unregister(watcher)
        if watcher.error is not None:
            self._note_problem(category, str(watcher.error))

    def _note_problem(self, category: str, message: str):
        if self._problems.get(category) == message:
            logger.debug("Still not watching %s log: %s", category, message)
        else:
            logger.warning("Not watching %s log: %s", category, message)
        self._problems[category] = message

    def _observe(self, directory: str):
        if self._observer is None or directory in self._observed_dirs:
            return
        try:
            self._observer.schedule(self._handler, directory, recursive=False)
        except OSError as e:
            logger.warning("File events unavailable for %s, polling only: %s", directory, e)
            return
        self._observed_dirs.add(directory)
