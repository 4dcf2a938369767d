"""
Session Store

Owns the on-disk directories where the driver persists session credentials.
Each session gets its own time-derived directory so a new session never
collides with a previous one whose artifacts are still being removed.
"""

import asyncio
import logging
import os
import shutil
import stat
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session-"


class EraseResult(str, Enum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


def _clear_readonly(func, path, _exc_info) -> None:
    """Retry a failed removal after clearing the write-protect bit."""
    os.chmod(path, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
    func(path)


class SessionStore:
    """
    Filesystem-backed store for session artifacts.

    Erasure tolerates files still held open by a just-stopped driver by
    retrying with a fixed backoff, and never raises once the retry budget
    is spent.
    """

    def __init__(
        self,
        root: str = "./whatsapp-session",
        max_attempts: int = 5,
        backoff: float = 1.0,
    ):
        self.root = Path(root)
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._last_stamp = 0
        self._erasures: Dict[str, asyncio.Task] = {}

    def new_path(self) -> str:
        """Generate a fresh session directory path derived from the clock."""
        stamp = max(time.time_ns(), self._last_stamp + 1)
        self._last_stamp = stamp
        return str(self.root / f"{SESSION_PREFIX}{stamp}")

    def latest_path(self) -> Optional[str]:
        """Return the most recent existing session directory, if any."""
        if not self.root.is_dir():
            return None
        candidates = []
        for entry in self.root.iterdir():
            if not entry.is_dir() or not entry.name.startswith(SESSION_PREFIX):
                continue
            try:
                candidates.append((int(entry.name[len(SESSION_PREFIX):]), entry))
            except ValueError:
                continue
        if not candidates:
            return None
        stamp, entry = max(candidates)
        self._last_stamp = max(self._last_stamp, stamp)
        return str(entry)

    async def erase(self, path: str) -> EraseResult:
        """
        Remove all artifacts stored at path.

        Concurrent calls for the same path share a single attempt sequence.

        Returns:
            EraseResult.SUCCESS, or EraseResult.EXHAUSTED after max_attempts
        """
        task = self._erasures.get(path)
        if task is None or task.done():
            task = asyncio.create_task(self._erase_with_retries(path))
            self._erasures[path] = task
            task.add_done_callback(lambda t, p=path: self._forget(p, t))
        return await asyncio.shield(task)

    def is_erasing(self, path: str) -> bool:
        task = self._erasures.get(path)
        return task is not None and not task.done()

    def _forget(self, path: str, task: asyncio.Task) -> None:
        if self._erasures.get(path) is task:
            del self._erasures[path]

    async def _erase_with_retries(self, path: str) -> EraseResult:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await asyncio.to_thread(self._remove, path)
                logger.info(f"Session artifacts removed: {path}")
                return EraseResult.SUCCESS
            except OSError as e:
                logger.warning(
                    f"Erase attempt {attempt}/{self.max_attempts} for {path} failed: {e}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff)

        logger.error(f"Giving up erasing {path} after {self.max_attempts} attempts")
        return EraseResult.EXHAUSTED

    def _remove(self, path: str) -> None:
        """Remove path from disk. Missing paths count as removed."""
        target = Path(path)
        if not target.exists():
            return
        if target.is_file() or target.is_symlink():
            if not os.access(target, os.W_OK):
                os.chmod(target, stat.S_IWRITE | stat.S_IREAD)
            target.unlink()
            return
        if sys.version_info >= (3, 12):
            shutil.rmtree(target, onexc=_clear_readonly)
        else:
            shutil.rmtree(target, onerror=_clear_readonly)
