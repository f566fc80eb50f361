# Conversation persistence: one conversation per YAML file under the history directory.

from __future__ import annotations

import pathlib
from typing import List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .chain import Conversation, Message
from .errors import ConversationFormatError, StorageError
from .fs import timestamp_name, write_text_atomic
from .models import ConversationDocument, StoredMessage


class LiteralString(str):
    """Marker type emitted in YAML literal block style (|)."""


class _ConversationDumper(yaml.SafeDumper):
    pass


def _represent_literal(dumper: yaml.SafeDumper, data: LiteralString) -> yaml.ScalarNode:
    # PyYAML falls back to a quoted style when the text cannot be a block scalar
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style="|")


_ConversationDumper.add_representer(LiteralString, _represent_literal)


def conversation_to_yaml(conv: Conversation) -> str:
    """Serialize profile, system prompt and every stored message (all branches)."""
    doc = {
        "profile": conv.profile.model_dump(mode="json"),
        "system": LiteralString(conv.system),
        "messages": [
            {
                "id": m.id,
                "parentId": m.parent_id,
                "role": m.role,
                "content": LiteralString(m.content),
                "authorName": m.author_name,
                "isHead": m.is_head,
            }
            for m in conv.messages
        ],
    }
    return yaml.dump(doc, Dumper=_ConversationDumper, sort_keys=False, allow_unicode=True)


def conversation_from_yaml(data: bytes | str, filename: str = "") -> Conversation:
    """
    Parse a persisted conversation.

    Tab escape sequences (a literal backslash followed by t) in message content
    are decoded to tab characters.

    Raises:
        ConversationFormatError: the YAML is invalid or does not match the document shape.
    """
    try:
        raw = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise ConversationFormatError(f"invalid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConversationFormatError("conversation document must be a mapping")
    try:
        doc = ConversationDocument.model_validate(raw)
    except ValidationError as e:
        raise ConversationFormatError(f"invalid conversation document: {e}") from e
    return Conversation.from_messages(
        (_to_message(m) for m in doc.messages),
        profile=doc.profile,
        system=doc.system,
        filename=filename,
    )


def _to_message(m: StoredMessage) -> Message:
    return Message(
        id=m.id,
        parent_id=m.parent_id,
        role=m.role,
        content=m.content.replace("\\t", "\t"),
        author_name=m.author_name,
        is_head=m.is_head,
    )


class Storage:
    """
    Reads and writes conversations in a history directory.

    Saved files are named after the local time of the first save; a restored
    conversation keeps its file name so later saves overwrite it.
    """

    def __init__(self, history_dir: pathlib.Path, search_dirs: Optional[List[pathlib.Path]] = None) -> None:
        self.history_dir = history_dir
        # Directories searched by resolve() before the history directory
        self.search_dirs = list(search_dirs) if search_dirs is not None else [pathlib.Path.cwd()]

    def save(self, conv: Conversation) -> Optional[str]:
        """
        Write the conversation and return its file name; None when there is nothing to save.

        Raises:
            StorageError: the file could not be written.
        """
        if len(conv) == 0:
            return None
        if not conv.filename:
            conv.filename = timestamp_name()
        path = self.history_dir / conv.filename
        try:
            write_text_atomic(path, conversation_to_yaml(conv))
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"error saving conversation to {path}: {e}") from e
        return conv.filename

    def load(self, path: pathlib.Path) -> Conversation:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise StorageError(f"error reading {path}: {e}") from e
        return conversation_from_yaml(data, path.name)

    def resolve(self, name: str) -> pathlib.Path:
        """
        Find a conversation file by path, name or prefix.

        An existing path wins; otherwise the search directories and then the
        history directory are scanned for <name>.yaml and finally for the first
        .yaml file (sorted by name) starting with name.

        Raises:
            StorageError: nothing matches.
        """
        direct = pathlib.Path(name).expanduser()
        if direct.is_file():
            return direct
        for folder in [*self.search_dirs, self.history_dir]:
            if not folder.is_dir():
                continue
            exact = folder / (name if name.endswith(".yaml") else f"{name}.yaml")
            if exact.is_file():
                return exact
            candidates = sorted(p for p in folder.glob("*.yaml") if p.name.startswith(name) and p.is_file())
            if candidates:
                return candidates[0]
        raise StorageError(f"no conversation file matches: {name}")

    def restore(self, name: str) -> Tuple[Conversation, pathlib.Path]:
        path = self.resolve(name)
        return self.load(path), path

    def list_saved(self) -> List[pathlib.Path]:
        """Saved conversation files, most recently modified first."""
        if not self.history_dir.is_dir():
            return []
        files = [p for p in self.history_dir.iterdir() if p.is_file() and p.suffix == ".yaml"]
        return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)
