"""
Content-addressed message chain with a movable head.

Messages are stored in insertion order and never deleted. Each message points
at its parent by id, so the store forms a tree rooted at the ROOT sentinel;
the head selects which root-to-tip path is active and sent to the provider.
"""

from __future__ import annotations

import dataclasses
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import ChainCorruptedError, ConversationFormatError, InvalidIdPrefixError, MessageNotFoundError
from .fs import sha1_hex
from .models import Profile, parse_dice

ROOT = "ROOT"

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT)

def message_id(role: str, content: str, parent_id: str) -> str:
    """Deterministic content address of a message created under parent_id."""
    return sha1_hex([role, content, parent_id])


def roll_dice(expr: str) -> int:
    """Roll an NdM[+K] expression such as 2d6 or d20+3."""
    count, sides, bonus = parse_dice(expr)
    return sum(random.randint(1, sides) for _ in range(count)) + bonus


def is_root(ref: str) -> bool:
    return ref.strip().upper() == ROOT


@dataclass(frozen=True)
class Message:
    id: str
    parent_id: str
    role: str
    content: str
    author_name: str = ""
    is_head: bool = False


class Conversation:
    """
    A system prompt, a profile and an append-only list of messages.

    The head is tracked as an index into the message list; the per-message
    is_head flag mirrors it so at most one stored message carries the flag.
    Lookups by id resolve collisions to the first message in insertion order.
    """

    def __init__(self, profile: Optional[Profile] = None, system: str = "", filename: str = "") -> None:
        self.profile = profile or Profile()
        self.system = system
        self.filename = filename
        self._messages: List[Message] = []
        self._index: Dict[str, int] = {}
        self._head: Optional[int] = None

    @classmethod
    def from_messages(
        cls,
        messages: Iterable[Message],
        profile: Optional[Profile] = None,
        system: str = "",
        filename: str = "",
    ) -> "Conversation":
        """Rebuild a conversation from persisted messages, keeping their order and head flag."""
        conv = cls(profile=profile, system=system, filename=filename)
        for msg in messages:
            if msg.role not in ROLES:
                raise ConversationFormatError(f"unknown role: {msg.role}")
            if msg.is_head:
                if conv._head is not None:
                    raise ConversationFormatError("more than one message is marked as head")
                conv._head = len(conv._messages)
            conv._store(msg)
        try:
            conv.path_from_head()
        except ChainCorruptedError as e:
            raise ConversationFormatError(f"head does not lead back to ROOT: {e}") from e
        return conv

    # ---------- read-only projection ----------

    @property
    def messages(self) -> List[Message]:
        """All stored messages (every branch) in insertion order."""
        return list(self._messages)

    @property
    def head(self) -> Optional[Message]:
        """The current tip, or None when the head is at ROOT."""
        if self._head is None:
            return None
        return self._messages[self._head]

    def __len__(self) -> int:
        return len(self._messages)

    def system_message(self) -> Message:
        """Synthetic system-role message standing in for the ROOT position."""
        return Message(id=sha1_hex([self.system]), parent_id=ROOT, role=ROLE_SYSTEM, content=self.system)

    def root_message(self) -> Optional[Message]:
        """First stored message attached directly below the system prompt."""
        for msg in self._messages:
            if msg.parent_id == ROOT:
                return msg
        return None

    def find_by_id_prefix(self, prefix: str) -> Optional[Message]:
        """First message in insertion order whose id starts with prefix."""
        idx = self._find_index(prefix)
        return None if idx is None else self._messages[idx]

    def path_from_head(self) -> List[Message]:
        """Messages from ROOT to the head, root first. Empty when the head is at ROOT."""
        if self._head is None:
            return []
        path: List[Message] = []
        visited = set()
        idx = self._head
        while True:
            if idx in visited:
                raise ChainCorruptedError(f"cycle detected at message {self._messages[idx].id}")
            visited.add(idx)
            msg = self._messages[idx]
            path.append(msg)
            if msg.parent_id == ROOT:
                break
            parent_idx = self._index.get(msg.parent_id)
            if parent_idx is None:
                raise ChainCorruptedError(f"message {msg.id} has unknown parent {msg.parent_id}")
            idx = parent_idx
        path.reverse()
        return path

    # ---------- mutations ----------

    def append(self, role: str, content: str) -> Message:
        """
        Add a message below the current head and make it the new head.

        With a dice_roll profile the roll result is appended to the content
        after the id has been computed.
        """
        if role not in ROLES:
            raise ValueError(f"unknown role: {role}")
        parent = ROOT if self._head is None else self._messages[self._head].id
        msg_id = message_id(role, content, parent)
        if self.profile.dice_roll:
            content = f"{content}\n DiceRoll {self.profile.dice_roll}: {roll_dice(self.profile.dice_roll)}"
        msg = Message(
            id=msg_id,
            parent_id=parent,
            role=role,
            content=content,
            author_name=self.profile.user_name if role == ROLE_USER else "",
            is_head=True,
        )
        self._clear_head()
        self._store(msg)
        self._head = len(self._messages) - 1
        return msg

    def change_head(self, ref: str) -> Message:
        """
        Move the head to the first message whose id starts with ref.

        ref may be the ROOT sentinel, in which case the head is cleared and the
        synthetic system message is returned. The head is left unchanged when
        ref is empty or matches nothing.
        """
        if is_root(ref):
            self._clear_head()
            return self.system_message()
        idx = self._find_index(ref)
        if idx is None:
            raise MessageNotFoundError(f"no message found with id prefix: {ref}")
        self._clear_head()
        self._messages[idx] = dataclasses.replace(self._messages[idx], is_head=True)
        self._head = idx
        return self._messages[idx]

    def modify_content(self, msg_id: str, new_content: str) -> Message:
        """
        Replace the content of the message with exactly msg_id.

        The id is not recomputed: children and earlier references keep pointing
        at the same message. The head does not move.
        """
        idx = self._index.get(msg_id)
        if idx is None:
            raise MessageNotFoundError(f"no message found with id: {msg_id}")
        self._messages[idx] = dataclasses.replace(self._messages[idx], content=new_content)
        return self._messages[idx]

    def set_profile(self, profile: Profile) -> None:
        self.profile = profile

    # ---------- internals ----------

    def _store(self, msg: Message) -> None:
        self._index.setdefault(msg.id, len(self._messages))
        self._messages.append(msg)

    def _clear_head(self) -> None:
        if self._head is not None:
            self._messages[self._head] = dataclasses.replace(self._messages[self._head], is_head=False)
            self._head = None

    def _find_index(self, prefix: str) -> Optional[int]:
        prefix = prefix.strip().lower()
        if not prefix:
            raise InvalidIdPrefixError("no id prefix provided")
        for i, msg in enumerate(self._messages):
            if msg.id.startswith(prefix):
                return i
        return None
