"""Directory listing and content search tools."""

import fnmatch
import logging
import os
import re
from typing import Any, List, Optional

from backend import LocalBackend, PathEscapeError
from tools._common import ToolResult

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 200
TRUNCATED_MARKER = "... (truncated)"
NO_MATCHES = "No matches found."


def list_files(path: Optional[str] = None, pattern: Optional[str] = None,
               backend: Optional[LocalBackend] = None, working_directory: str = ".", **kw: Any) -> ToolResult:
    """List the immediate entries of a directory, optionally filtered by a glob on the name."""
    target = path or "."
    b = backend or LocalBackend(working_directory)
    try:
        entries = b.list_dir(target)
    except PathEscapeError as e:
        return ToolResult(success=False, output="", error=str(e))
    except OSError as e:
        return ToolResult(success=False, output="", error=f"listing {target}: {e.strerror or e}")

    lines = []
    for e in entries:
        name = e["name"]
        if pattern and not fnmatch.fnmatchcase(name, pattern):
            continue
        lines.append(name + "/" if e["type"] == "directory" else name)
    return ToolResult(success=True, output="\n".join(lines))


def search_files(pattern: str, path: Optional[str] = None, glob: Optional[str] = None,
                 backend: Optional[LocalBackend] = None, working_directory: str = ".", **kw: Any) -> ToolResult:
    """Regex search over every file under path. Returns 'rel/path:line: text' records."""
    target = path or "."
    b = backend or LocalBackend(working_directory)
    try:
        b.resolve_path(target)
    except PathEscapeError as e:
        return ToolResult(success=False, output="", error=str(e))

    try:
        regex = re.compile(pattern)
    except re.error as e:
        return ToolResult(success=False, output="", error=f"invalid regex {pattern!r}: {e}")

    results: List[str] = []
    truncated = False
    for full in b.walk_files(target):
        if glob and not fnmatch.fnmatchcase(os.path.basename(full), glob):
            continue
        try:
            with open(full, "r", encoding="utf-8", newline="") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError):
            continue
        rel = b.relative_path(full)
        for lineno, line in enumerate(content.split("\n"), start=1):
            if regex.search(line):
                if len(results) >= MAX_SEARCH_RESULTS:
                    truncated = True
                    break
                results.append(f"{rel}:{lineno}: {line}")
        if truncated:
            break

    if not results:
        return ToolResult(success=True, output=NO_MATCHES)
    if truncated:
        results.append(TRUNCATED_MARKER)
    return ToolResult(success=True, output="\n".join(results))
