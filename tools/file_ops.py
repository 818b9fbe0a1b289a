"""File operation tools: read, write, edit."""

import logging
from typing import Any, Optional

from backend import LocalBackend, PathEscapeError
from tools._common import ToolResult

logger = logging.getLogger(__name__)


def _require_path(path: str, name: str = "path") -> Optional[ToolResult]:
    """Return an error ToolResult if path is empty/whitespace; else None."""
    if not (path or "").strip():
        return ToolResult(success=False, output="", error=f"{name} is required")
    return None


def _os_reason(e: OSError) -> str:
    return e.strerror or str(e)


def read_file(path: str, backend: Optional[LocalBackend] = None,
              working_directory: str = ".", **kw: Any) -> ToolResult:
    """Read the full contents of a file."""
    err = _require_path(path)
    if err:
        return err
    b = backend or LocalBackend(working_directory)
    try:
        return ToolResult(success=True, output=b.read_file(path))
    except PathEscapeError as e:
        return ToolResult(success=False, output="", error=str(e))
    except OSError as e:
        return ToolResult(success=False, output="", error=f"reading {path}: {_os_reason(e)}")


def write_file(path: str, content: str, backend: Optional[LocalBackend] = None,
               working_directory: str = ".", **kw: Any) -> ToolResult:
    """Create a new file or completely overwrite an existing file."""
    err = _require_path(path)
    if err:
        return err
    b = backend or LocalBackend(working_directory)
    try:
        written = b.write_file(path, content)
    except PathEscapeError as e:
        return ToolResult(success=False, output="", error=str(e))
    except OSError as e:
        return ToolResult(success=False, output="", error=f"writing {path}: {_os_reason(e)}")
    logger.debug(f"write_file: {written} bytes -> {path}")
    return ToolResult(success=True, output=f"Wrote {written} bytes to {path}")


def edit_file(path: str, old_text: str, new_text: str, backend: Optional[LocalBackend] = None,
              working_directory: str = ".", **kw: Any) -> ToolResult:
    """Replace the first occurrence of old_text in a file with new_text.

    Later occurrences are left alone, so a non-unique old_text edits whichever
    comes first in the file.
    """
    err = _require_path(path)
    if err:
        return err
    b = backend or LocalBackend(working_directory)
    try:
        # Undecodable bytes survive the round trip untouched.
        content = b.read_file(path, errors="surrogateescape")
    except PathEscapeError as e:
        return ToolResult(success=False, output="", error=str(e))
    except OSError as e:
        return ToolResult(success=False, output="", error=f"reading {path}: {_os_reason(e)}")

    if old_text not in content:
        return ToolResult(success=False, output="", error=f"old_text not found in {path}")

    new_content = content.replace(old_text, new_text, 1)
    try:
        b.write_file(path, new_content)
    except OSError as e:
        return ToolResult(success=False, output="", error=f"writing {path}: {_os_reason(e)}")
    return ToolResult(success=True, output=f"Edited {path}")
