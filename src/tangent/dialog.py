"""
Interactive dialog loop.

The dialog reads a line, either dispatches it to the command interpreter or
appends it as a user turn, and retrieves the reply. Interpretation and
provider errors are reported and the loop continues; a cancelled retrieval
rolls the head back to where it was before the user turn. On exit the
conversation is auto-saved when the profile asks for it.
"""

from __future__ import annotations

import enum
from typing import Callable, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory

from . import render
from .chain import ROLE_ASSISTANT, ROLE_USER, ROOT, Conversation, Message
from .chat import ChatProvider
from .commands import interpret, is_command
from .config import COMMAND_PREFIX
from .context import Context
from .errors import ProviderError, RetrievalCancelled, ShouldExit, TangentError
from .storage import Storage

ReadLine = Callable[[str], str]


class DialogState(enum.Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    DISPATCHING_COMMAND = "dispatching_command"
    APPENDING_USER_TURN = "appending_user_turn"
    RETRIEVING_REPLY = "retrieving_reply"
    EXITING = "exiting"


class Dialog:
    def __init__(
        self,
        ctx: Context,
        conversation: Conversation,
        provider: ChatProvider,
        storage: Storage,
        use_rest: bool = False,
        read_line: Optional[ReadLine] = None,
    ) -> None:
        self.ctx = ctx
        self.conversation = conversation
        self.provider = provider
        self.storage = storage
        self.use_rest = use_rest
        self.state = DialogState.IDLE
        # Created on first interactive read
        self._session: Optional[PromptSession] = None
        self._read_line = read_line or self._prompt

    def prompt_text(self) -> str:
        head = self.conversation.head
        ref = render.short_id(head.id) if head is not None else ROOT
        return f"{self.conversation.profile.user_name} [{ref}]> "

    def _prompt(self, text: str) -> str:
        if self._session is None:
            self._session = PromptSession(history=InMemoryHistory())
        return self._session.prompt(text)

    def run(self) -> Optional[str]:
        """Run until exit; returns the saved file name, if any."""
        self.ctx.send_to_user(f"Type {COMMAND_PREFIX}help for commands, {COMMAND_PREFIX}exit to quit.")
        try:
            while self.state is not DialogState.EXITING:
                self.step()
        finally:
            self.state = DialogState.EXITING
            filename = self.finish()
        return filename

    def step(self) -> None:
        """Handle one input line, including the retrieval it triggers."""
        self.state = DialogState.AWAITING_INPUT
        try:
            line = self._read_line(self.prompt_text()).strip()
        except (EOFError, KeyboardInterrupt):
            self.state = DialogState.EXITING
            return
        if not line:
            self.state = DialogState.IDLE
            return

        if is_command(line):
            self.state = DialogState.DISPATCHING_COMMAND
            try:
                result = interpret(self.ctx, line, self.conversation)
            except ShouldExit:
                self.state = DialogState.EXITING
                return
            except TangentError as e:
                self.ctx.error_message(str(e))
                self.state = DialogState.IDLE
                return
            self.conversation = result.conversation
            if not result.cont:
                self.state = DialogState.IDLE
                return
            head = self.conversation.head
            if head is not None and head.role == ROLE_USER:
                render.print_turn_header(self.ctx, head)
        else:
            self.state = DialogState.APPENDING_USER_TURN
            self.conversation.append(ROLE_USER, line)

        self.retrieve_reply()

    def retrieve_reply(self) -> Optional[Message]:
        """
        Retrieve the reply to the active path and append it as the new head.

        Returns None when the call was cancelled (head rolled back to the
        parent of the pending user turn) or failed (user turn stays head).
        """
        self.state = DialogState.RETRIEVING_REPLY
        pending = self.conversation.head
        if pending is not None:
            render.print_pending_reply_header(self.ctx, pending)
        try:
            text = self.provider.retrieve(self.conversation, self.use_rest)
        except RetrievalCancelled:
            self.ctx.send_to_user("\nCancelled.")
            if pending is not None:
                self.conversation.change_head(pending.parent_id)
            self.state = DialogState.IDLE
            return None
        except ProviderError as e:
            self.ctx.write("\n")
            self.ctx.error_message(str(e))
            self.state = DialogState.IDLE
            return None
        reply = self.conversation.append(ROLE_ASSISTANT, text)
        self.ctx.write("\n")
        render.print_reply_footer(self.ctx, reply)
        self.state = DialogState.IDLE
        return reply

    def finish(self) -> Optional[str]:
        """Auto-save the conversation if the profile enables it."""
        if not self.conversation.profile.auto_save:
            return None
        filename = self.storage.save(self.conversation)
        if filename:
            self.ctx.send_to_user(f"Conversation saved to {self.storage.history_dir / filename}")
        return filename


def one_shot(
    ctx: Context,
    conversation: Conversation,
    provider: ChatProvider,
    storage: Storage,
    use_rest: bool = False,
) -> Optional[Message]:
    """Retrieve a single reply for a conversation whose head is a user turn, then auto-save."""
    head = conversation.head
    if head is None or head.role != ROLE_USER:
        raise ValueError("one-shot retrieval needs a user message at the head")
    dialog = Dialog(ctx, conversation, provider, storage, use_rest)
    try:
        return dialog.retrieve_reply()
    finally:
        dialog.finish()
