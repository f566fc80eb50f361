# Terminal rendering of messages and conversations (rich markdown + coloured headers).

from typing import Optional

from rich.markdown import Markdown
from rich.text import Text

from .chain import Conversation, Message
from .config import SHORT_ID_LEN
from .context import Context

HEADER_STYLE = "bright_yellow"
HEAD_STYLE = "bright_blue"


def short_id(msg_id: str) -> str:
    """First SHORT_ID_LEN characters of an id; ROOT is kept as-is."""
    return msg_id[:SHORT_ID_LEN]


def message_header(msg: Message) -> Text:
    """`[abc123] user -> [def456] Head` header used by history listings."""
    text = Text(f"[{short_id(msg.id)}] {msg.role} -> [{short_id(msg.parent_id)}]", style=HEADER_STYLE)
    if msg.is_head:
        text.append(" Head", style=HEAD_STYLE)
    return text


def render_markdown(ctx: Context, content: str) -> None:
    ctx.console.print(Markdown(content, code_theme="monokai"), width=min(ctx.console.width, 100))


def print_conversation(ctx: Context, conv: Conversation) -> None:
    """Render the system prompt and every stored message, all branches included."""
    if conv.system:
        ctx.console.print(Text("[System]", style=HEADER_STYLE))
        render_markdown(ctx, conv.system)
        ctx.console.print()
    for msg in conv.messages:
        ctx.console.print(message_header(msg))
        render_markdown(ctx, msg.content)
        ctx.console.print()


def print_head_change(ctx: Context, old: Optional[Message], new: Message) -> None:
    """Report a head move: previous tip, new tip and the new tip's content."""
    old_ref = short_id(old.id) if old is not None else "ROOT"
    ctx.console.print(Text(f"{old_ref} -> {short_id(new.id)} [{new.role}]", style=HEADER_STYLE), Text("Head", style=HEAD_STYLE))
    for line in new.content.split("\n"):
        ctx.send_to_user(f"  {line}")


def print_turn_header(ctx: Context, msg: Message) -> None:
    """Echo a just-appended message before the reply is retrieved."""
    ctx.console.print(Text(f"\n{msg.role} -> [{short_id(msg.parent_id)}]", style=HEADER_STYLE))
    ctx.send_to_user(msg.content)
    ctx.console.print(Text(f"[{short_id(msg.id)}]", style=HEADER_STYLE))


def print_pending_reply_header(ctx: Context, parent: Message) -> None:
    ctx.console.print(Text(f"\nassistant -> [{short_id(parent.id)}]", style=HEADER_STYLE))


def print_reply_footer(ctx: Context, msg: Message) -> None:
    ctx.console.print(Text(f" [{short_id(msg.id)}]", style=HEADER_STYLE))
