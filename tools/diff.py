"""Line diff rendering for approval previews."""

from typing import List


def compute_unified_diff(path: str, old_content: str, new_content: str) -> str:
    """Render a unified-diff-style preview of old_content -> new_content.

    Greedy two-cursor walk: equal lines become context, otherwise old lines are
    deleted first and new lines added after. This is not a minimal diff;
    reordered content produces long runs of -/+ lines.
    """
    old_lines = old_content.split("\n")
    new_lines = new_content.split("\n")

    out: List[str] = [f"--- a/{path}\n", f"+++ b/{path}\n"]
    i, j = 0, 0
    while i < len(old_lines) or j < len(new_lines):
        if i < len(old_lines) and j < len(new_lines) and old_lines[i] == new_lines[j]:
            out.append(f" {old_lines[i]}\n")
            i += 1
            j += 1
        elif i < len(old_lines):
            out.append(f"-{old_lines[i]}\n")
            i += 1
        else:
            out.append(f"+{new_lines[j]}\n")
            j += 1
    return "".join(out)
