"""
Local filesystem and process backend for tool execution.
Every path handed to the backend is resolved against the repository root and
rejected if it escapes it; this is the only sandbox boundary tools rely on.
"""

import logging
import os
import signal
import subprocess
import tempfile
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class PathEscapeError(ValueError):
    """A tool path resolves outside the repository root."""


def validate_path(root: str, raw_path: str) -> str:
    """Resolve raw_path against root and return its canonical absolute path.

    Relative paths are joined to the root, then both sides are canonicalized
    (symlinks, '.' and '..') before comparing, so a symlink pointing outside
    the repository is rejected just like a literal '../'.
    """
    real_root = os.path.realpath(root)
    candidate = raw_path if os.path.isabs(raw_path) else os.path.join(real_root, raw_path)
    resolved = os.path.realpath(candidate)
    try:
        rel = os.path.relpath(resolved, real_root)
    except ValueError:
        # Different drive on Windows
        raise PathEscapeError(f"path {raw_path!r} escapes repository root") from None
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        raise PathEscapeError(f"path {raw_path!r} escapes repository root")
    return resolved


class LocalBackend:
    """File and command operations confined to one repository root."""

    def __init__(self, working_directory: str = "."):
        self._working_directory = os.path.realpath(working_directory)

    @property
    def working_directory(self) -> str:
        return self._working_directory

    def resolve_path(self, path: str) -> str:
        """Validated canonical absolute path; raises PathEscapeError."""
        return validate_path(self._working_directory, path)

    def relative_path(self, full: str) -> str:
        """Forward-slash path relative to the root, for echoing back to the model."""
        rel = os.path.relpath(full, self._working_directory)
        return rel.replace(os.sep, "/")

    def read_file(self, path: str, errors: str = "replace") -> str:
        """Decode a file as UTF-8.

        errors="surrogateescape" keeps undecodable bytes so write_file can put
        them back unchanged.
        """
        full = self.resolve_path(path)
        with open(full, "r", encoding="utf-8", errors=errors, newline="") as f:
            return f.read()

    def write_file(self, path: str, content: str) -> int:
        """Write content via a temp file + rename so readers never see a partial file.

        Returns the number of bytes written.
        """
        full = self.resolve_path(path)
        parent = os.path.dirname(full)
        os.makedirs(parent, exist_ok=True)
        data = content.encode("utf-8", errors="surrogateescape")
        fd, tmp_path = tempfile.mkstemp(dir=parent, prefix=f".{os.path.basename(full)}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            if os.path.exists(full):
                os.chmod(tmp_path, os.stat(full).st_mode & 0o7777)
            os.replace(tmp_path, full)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        return len(data)

    def list_dir(self, path: str) -> List[Dict[str, Any]]:
        """Immediate entries of a directory. Returns list of {name, type}."""
        full = self.resolve_path(path or ".")
        entries = []
        with os.scandir(full) as it:
            for entry in it:
                try:
                    is_dir = entry.is_dir()
                except OSError:
                    is_dir = False
                entries.append({"name": entry.name, "type": "directory" if is_dir else "file"})
        entries.sort(key=lambda e: e["name"])
        return entries

    def walk_files(self, path: str) -> Iterator[str]:
        """Yield absolute paths of regular files under path.

        Unreadable directories and files whose real path leaves the root
        (symlinks pointing outside) are skipped.
        """
        full = self.resolve_path(path or ".")
        if os.path.isfile(full):
            yield full
            return
        for dirpath, dirnames, filenames in os.walk(full, onerror=lambda e: logger.debug(f"walk skipped: {e}")):
            dirnames.sort()
            for name in sorted(filenames):
                candidate = os.path.join(dirpath, name)
                try:
                    validate_path(self._working_directory, candidate)
                except PathEscapeError:
                    logger.debug(f"walk skipped symlink outside root: {candidate}")
                    continue
                yield candidate

    def run_command(self, command: str, timeout: Optional[float] = None) -> Tuple[str, str, int]:
        """Run command through bash in the repository root. Returns (stdout, stderr, returncode).

        Raises subprocess.TimeoutExpired after killing the process group when timeout elapses.
        """
        proc = subprocess.Popen(
            ["bash", "-c", command], cwd=self._working_directory,
            stdout=subprocess.PIPE, stderr=subprocess.PIPE,
            text=True, encoding="utf-8", errors="replace",
            start_new_session=True,  # own process group for clean kill
        )
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill_process(proc)
            proc.communicate(timeout=5)
            raise
        return stdout or "", stderr or "", proc.returncode

    @staticmethod
    def _kill_process(proc: subprocess.Popen) -> None:
        """Kill a process and its entire process group."""
        try:
            os.killpg(os.getpgid(proc.pid), signal.SIGTERM)
        except (ProcessLookupError, OSError):
            pass
        try:
            proc.kill()
        except (ProcessLookupError, OSError):
            pass
