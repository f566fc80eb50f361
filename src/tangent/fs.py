# Filesystem, time and hashing helpers shared by storage, settings and file ingestion.

import hashlib
import os
import pathlib
import time
from typing import Iterable


def timestamp_name(suffix: str = ".yaml") -> str:
    """Return a local-time file name such as 20240131-235959.yaml."""
    return time.strftime("%Y%m%d-%H%M%S", time.localtime()) + suffix


def normalize_path(p: str) -> str:
    """Normalize a filesystem path to POSIX-style string (forward slashes)."""
    return str(pathlib.Path(p).as_posix())


def sha1_hex(parts: Iterable[str]) -> str:
    """Hex SHA-1 digest of the concatenation of parts (UTF-8)."""
    h = hashlib.sha1()
    h.update("".join(parts).encode("utf-8"))
    return h.hexdigest()


def write_text_atomic(path: pathlib.Path, text: str, mode: int = 0o600) -> None:
    """Atomically write text to path via a temp file replace, creating parents."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        f.write(text)
    os.chmod(tmp, mode)
    tmp.replace(path)


def read_text(path: pathlib.Path) -> str:
    """Read a UTF-8 text file; raises UnicodeDecodeError on binary content."""
    with path.open("r", encoding="utf-8") as f:
        return f.read()


def count_lines(s: str) -> int:
    """Return the number of lines in a string, handling trailing newline gracefully."""
    if not s:
        return 0
    return s.count("\n") + (0 if s.endswith("\n") else 1)
