"""Shell command tool."""

import logging
import subprocess
from typing import Any, Optional

from backend import LocalBackend
from tools._common import ToolResult

logger = logging.getLogger(__name__)


def run_command(command: str, timeout: Optional[float] = None,
                backend: Optional[LocalBackend] = None, working_directory: str = ".", **kw: Any) -> ToolResult:
    """Execute a shell command in the repository root.

    stderr follows stdout after a newline. On a non-zero exit the combined
    output is kept in `output` and repeated in the error message.
    """
    if not (command or "").strip():
        return ToolResult(success=False, output="", error="command is required")
    b = backend or LocalBackend(working_directory)
    try:
        stdout, stderr, rc = b.run_command(command, timeout=timeout)
    except subprocess.TimeoutExpired:
        return ToolResult(success=False, output="", error=f"command timed out after {timeout}s: {command}")
    except OSError as e:
        return ToolResult(success=False, output="", error=f"running {command!r}: {e.strerror or e}")

    output = stdout
    if stderr:
        output += "\n" + stderr
    if rc != 0:
        logger.debug(f"command exited {rc}: {command}")
        return ToolResult(success=False, output=output, error=f"command {command!r} failed: exit status {rc}\n{output}")
    return ToolResult(success=True, output=output)
