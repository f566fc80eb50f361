# External text editor round trip used by the :editor and :modify commands.

from __future__ import annotations

import os
import pathlib
import shlex
import subprocess
import sys
import tempfile
from typing import List, Optional, Sequence

from .chain import Message
from .config import SHORT_ID_LEN
from .errors import EditorError

COMMENT_PREFIX = "#"
SCRATCH_FOOTER = "# Save and close editor to continue"


def editor_command() -> List[str]:
    """The user's $VISUAL / $EDITOR split into argv; VS Code gets --wait so it blocks."""
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or ""
    argv = shlex.split(editor) if editor.strip() else []
    if not argv:
        argv = ["notepad.exe"] if sys.platform.startswith("win") else ["vim"]
    if "code" in pathlib.Path(argv[0]).name and "--wait" not in argv and "-w" not in argv:
        argv.append("--wait")
    return argv


def build_scratch_document(path: Sequence[Message], seed: str = "") -> str:
    """
    Scratch buffer: optional seed text, then the active path newest-first as comments.

    Each message is rendered as `# <id> -> <parent> [role] Head` followed by its
    content lines, all prefixed with '#' so they are stripped on read-back.
    """
    lines = [seed, "", SCRATCH_FOOTER]
    for msg in reversed(path):
        head = " Head" if msg.is_head else ""
        lines.append(COMMENT_PREFIX)
        lines.append(f"# {msg.id[:SHORT_ID_LEN]} -> {msg.parent_id[:SHORT_ID_LEN]} [{msg.role}]{head}")
        for content_line in msg.content.split("\n"):
            lines.append(f"#   {content_line}")
    return "\n".join(lines) + "\n"


def strip_comments(text: str) -> str:
    """Drop every line starting with '#', then trim surrounding whitespace."""
    kept = [line for line in text.splitlines() if not line.startswith(COMMENT_PREFIX)]
    return "\n".join(kept).strip()


def open_editor(content: str, directory: Optional[pathlib.Path] = None) -> str:
    """
    Let the user edit content in an external editor and return the result without comments.

    The temporary file is removed on every exit path. Returns "" when nothing
    but comments and whitespace remain.

    Raises:
        EditorError: the temp file could not be written / read or the editor failed.
    """
    try:
        fd, name = tempfile.mkstemp(prefix="tangent-editor-", suffix=".md", dir=str(directory) if directory else None)
    except OSError as e:
        raise EditorError(f"failed to create a temp file: {e}") from e
    tmp_path = pathlib.Path(name)
    try:
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise EditorError(f"failed to write to the temp file: {e}") from e
        try:
            subprocess.run([*editor_command(), str(tmp_path)], check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise EditorError(f"failed to open editor: {e}") from e
        try:
            edited = tmp_path.read_text(encoding="utf-8")
        except OSError as e:
            raise EditorError(f"failed to read the edited content: {e}") from e
    finally:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
    return strip_comments(edited)
