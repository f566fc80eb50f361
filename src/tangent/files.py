# Glob-based file ingestion for the --file flag.

import glob
import pathlib
from dataclasses import dataclass
from typing import Iterable, List

from .context import Context
from .fs import count_lines, normalize_path, read_text


@dataclass
class FileContent:
    name: str
    path: str
    contents: str


def split_patterns(values: Iterable[str]) -> List[str]:
    """Flatten repeated and comma-separated --file values."""
    patterns: List[str] = []
    for value in values:
        patterns.extend(p.strip() for p in value.split(",") if p.strip())
    return patterns


def find_files(ctx: Context, patterns: Iterable[str]) -> List[pathlib.Path]:
    """Expand glob patterns to files, keeping first-seen order and dropping duplicates."""
    seen = set()
    found: List[pathlib.Path] = []
    for pattern in patterns:
        matches = sorted(glob.glob(str(pathlib.Path(pattern).expanduser()), recursive=True))
        if not matches:
            ctx.warn(f"no files match {pattern}")
        for match in matches:
            path = pathlib.Path(match)
            key = path.resolve()
            if key in seen or not path.is_file():
                continue
            seen.add(key)
            found.append(path)
    return found


def read_files(ctx: Context, patterns: Iterable[str]) -> List[FileContent]:
    """
    Read every file matched by patterns as UTF-8 text.

    Binary (NUL bytes or undecodable) and unreadable files are skipped with a
    warning.
    """
    contents: List[FileContent] = []
    for path in find_files(ctx, split_patterns(patterns)):
        try:
            text = read_text(path)
        except UnicodeDecodeError:
            ctx.warn(f"skipping binary file {path}")
            continue
        except OSError as e:
            ctx.warn(f"skipping unreadable file {path}: {e}")
            continue
        if "\x00" in text:
            ctx.warn(f"skipping binary file {path}")
            continue
        ctx.debug(f"attached {path} ({count_lines(text)} lines)")
        contents.append(FileContent(name=path.name, path=normalize_path(str(path)), contents=text))
    return contents


def file_message(fc: FileContent) -> str:
    """User message body carrying one attached file."""
    return f"Path: `{fc.path}`\n ```\n{fc.contents}```"
