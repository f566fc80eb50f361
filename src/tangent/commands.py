"""
Interactive command interpreter.

A command line starts with COMMAND_PREFIX and is split on whitespace. The
command token is matched against a fixed table: exact names and aliases win,
otherwise a strict prefix of exactly one command name selects it. Every
command returns a CommandResult telling the dialog loop whether to submit the
conversation to the provider next; failures are raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from pydantic import ValidationError

from . import render, settings
from .chain import ROLE_USER, Conversation, Message
from .config import COMMAND_PREFIX
from .context import Context
from .editor import build_scratch_document, open_editor
from .errors import (
    AmbiguousCommandError,
    CommandError,
    MessageNotFoundError,
    ParameterError,
    ShouldExit,
    UnknownCommandError,
)
from .models import GenerationParameters


class CommandResult(NamedTuple):
    conversation: Conversation
    # True when the dialog should retrieve a reply right away
    cont: bool


Handler = Callable[[Context, List[str], Conversation], CommandResult]


@dataclass
class Command:
    name: str
    description: str
    handler: Handler
    aliases: List[str] = field(default_factory=list)

    @property
    def token(self) -> str:
        return f"{COMMAND_PREFIX}{self.name}"

    @property
    def alias_tokens(self) -> List[str]:
        return [f"{COMMAND_PREFIX}{a}" for a in self.aliases]


def is_command(line: str) -> bool:
    return line.startswith(COMMAND_PREFIX)


def prefix_candidates(token: str, names: Sequence[str]) -> List[str]:
    """Names equal to token, else every name token is a strict prefix of."""
    if token in names:
        return [token]
    return [n for n in names if len(token) < len(n) and n.startswith(token)]


# -----------------------------
# Commands
# -----------------------------

def cmd_history(ctx: Context, args: List[str], conv: Conversation) -> CommandResult:
    render.print_conversation(ctx, conv)
    return CommandResult(conv, False)


def cmd_move(ctx: Context, args: List[str], conv: Conversation) -> CommandResult:
    if not args:
        raise CommandError("no id prefix provided")
    old = conv.head
    new = conv.change_head(args[0])
    render.print_head_change(ctx, old, new)
    return CommandResult(conv, False)


def cmd_config(ctx: Context, args: List[str], conv: Conversation) -> CommandResult:
    path = settings.open_config_dir()
    ctx.send_to_user(f"Configuration directory: {path}")
    return CommandResult(conv, False)


def cmd_editor(ctx: Context, args: List[str], conv: Conversation) -> CommandResult:
    target = args[0].strip() if args else ""
    if not target:
        return compose_message(ctx, conv)
    return edit_own_message(ctx, conv, target)


def cmd_modify(ctx: Context, args: List[str], conv: Conversation) -> CommandResult:
    if not args or not args[0].strip():
        raise CommandError("no id provided")
    return modify_message(ctx, conv, args[0].strip())


def cmd_param(ctx: Context, args: List[str], conv: Conversation) -> CommandResult:
    if not args:
        ctx.send_to_user(PARAMETERS_USAGE)
        return CommandResult(conv, False)
    name = match_parameter(args[0])
    if len(args) == 1:
        ctx.send_to_user(describe_parameter(conv.profile.custom_parameters, name))
        return CommandResult(conv, False)
    set_parameter(conv, name, " ".join(args[1:]))
    ctx.send_to_user(describe_parameter(conv.profile.custom_parameters, name))
    return CommandResult(conv, False)


def cmd_help(ctx: Context, args: List[str], conv: Conversation) -> CommandResult:
    ctx.send_to_user(command_table())
    return CommandResult(conv, False)


def cmd_exit(ctx: Context, args: List[str], conv: Conversation) -> CommandResult:
    raise ShouldExit()


COMMANDS: List[Command] = [
    Command("history", "Show conversation history (all branches).", cmd_history),
    Command("move", "Change HEAD to another message (id prefix or ROOT).", cmd_move),
    Command("config", "Open configuration directory.", cmd_config),
    Command(
        "editor",
        "Open an external text editor to add a new message.\n"
        "    :editor <id>    - Edit the given own message and continue from it.\n"
        "    :editor latest  - Edit the nearest own message from HEAD.",
        cmd_editor,
    ),
    Command(
        "modify",
        "Modify a past message in place. HEAD does not move;\n"
        "    the change applies from the next retrieval on that branch.",
        cmd_modify,
    ),
    Command("param", "Show or update generation parameters of the profile.", cmd_param),
    Command("help", "Show this list of commands.", cmd_help),
    Command("exit", "Exit the program.", cmd_exit, aliases=["q", "quit"]),
]


def command_table() -> str:
    lines = []
    for c in COMMANDS:
        names = ", ".join([c.token, *c.alias_tokens])
        lines.append(f"  {names:<18} - {c.description}")
    return "\n".join(lines)


def match_command(token: str) -> Command:
    """
    Resolve a command token such as ':ed'.

    Raises:
        UnknownCommandError: nothing matches.
        AmbiguousCommandError: token is a strict prefix of several command names.
    """
    for c in COMMANDS:
        if token == c.token or token in c.alias_tokens:
            return c
    matches = prefix_candidates(token, [c.token for c in COMMANDS])
    if len(matches) > 1:
        raise AmbiguousCommandError(f"ambiguous command {token}: {', '.join(matches)}")
    if not matches:
        raise UnknownCommandError(f"unknown command.\n\n{command_table()}")
    return next(c for c in COMMANDS if c.token == matches[0])


def interpret(ctx: Context, line: str, conv: Conversation) -> CommandResult:
    """Parse and run one command line against conv."""
    tokens = line.strip().split()
    if not tokens:
        raise UnknownCommandError(f"unknown command.\n\n{command_table()}")
    command = match_command(tokens[0])
    return command.handler(ctx, tokens[1:], conv)


# -----------------------------
# Editor-backed commands
# -----------------------------

def compose_message(ctx: Context, conv: Conversation) -> CommandResult:
    """Write a new user message in the editor and submit it."""
    result = open_editor(build_scratch_document(conv.path_from_head()))
    if not result:
        ctx.send_to_user("Empty message, nothing sent.")
        return CommandResult(conv, False)
    conv.append(ROLE_USER, result)
    return CommandResult(conv, True)


def latest_user_message(conv: Conversation) -> Optional[Message]:
    for msg in reversed(conv.path_from_head()):
        if msg.role == ROLE_USER:
            return msg
    return None


def edit_own_message(ctx: Context, conv: Conversation, ref: str) -> CommandResult:
    """
    Rewrite one of the user's own turns as a new branch.

    The head moves to the parent of the edited message and the new text is
    appended there, leaving the original turn and its replies untouched.
    """
    if ref.lower() == "latest":
        target = latest_user_message(conv)
        if target is None:
            raise CommandError("no latest user message found")
    else:
        target = conv.find_by_id_prefix(ref)
        if target is None:
            raise MessageNotFoundError(f"no message found with id prefix: {ref}")
        if target.role != ROLE_USER:
            raise CommandError("cannot edit non-user message")

    result = open_editor(build_scratch_document(conv.path_from_head(), seed=target.content))
    if not result or result.strip() == target.content.strip():
        ctx.send_to_user("No changes.")
        return CommandResult(conv, False)

    conv.change_head(target.parent_id)
    conv.append(ROLE_USER, result)
    return CommandResult(conv, True)


def modify_message(ctx: Context, conv: Conversation, ref: str) -> CommandResult:
    """Replace a past message's content in place; id and head stay where they are."""
    target = conv.find_by_id_prefix(ref)
    if target is None:
        raise MessageNotFoundError(f"no message found with id prefix: {ref}")

    result = open_editor(build_scratch_document(conv.path_from_head(), seed=target.content))
    if not result or result.strip() == target.content.strip():
        ctx.send_to_user("No changes.")
        return CommandResult(conv, False)

    conv.modify_content(target.id, result)
    ctx.send_to_user(f"[{render.short_id(target.id)}] Modified.")
    return CommandResult(conv, False)


# -----------------------------
# Generation parameters
# -----------------------------

PARAMETER_NAMES = [
    "temperature",
    "top_p",
    "stop",
    "max_tokens",
    "presence_penalty",
    "frequency_penalty",
    "logit_bias",
]

# Cleared stop list; whitespace splitting cannot deliver an empty argument
EMPTY_VALUES = ('""', "''")

PARAMETERS_USAGE = f"""Usage: {COMMAND_PREFIX}param <parameter_name> [parameter_value]

Available parameters:
  temperature       - What sampling temperature to use (0 to 2)
  top_p             - Nucleus sampling (tokens with top_p probability mass)
  stop              - Up to 4 sequences where the API will stop (comma-separated, "" to clear)
  max_tokens        - Maximum number of tokens to generate
  presence_penalty  - Penalize new tokens based on existing text (-2 to 2)
  frequency_penalty - Penalize new tokens based on frequency in text (-2 to 2)
  logit_bias        - Token biases (read-only here, set it in the profile)

Without a value the current value is displayed. Use 0 for the API default."""


def match_parameter(name: str) -> str:
    matches = prefix_candidates(name, PARAMETER_NAMES)
    if len(matches) > 1:
        raise ParameterError(f"ambiguous parameter name: {name}")
    if not matches:
        raise ParameterError(f"unknown custom parameter: {name}")
    return matches[0]


def parse_parameter_value(name: str, raw: str) -> Any:
    if name == "logit_bias":
        raise ParameterError("logit_bias can only be set via the profile")
    if name == "stop":
        if raw in EMPTY_VALUES or not raw:
            return []
        return raw.split(",")
    try:
        if name == "max_tokens":
            return int(raw)
        return float(raw)
    except ValueError:
        raise ParameterError(f"invalid value for {name}: {raw}")


def set_parameter(conv: Conversation, name: str, raw: str) -> GenerationParameters:
    """
    Validate and store one generation parameter on the conversation's profile.

    The profile is replaced only after the full parameter set validates.
    """
    value = parse_parameter_value(name, raw)
    data: Dict[str, Any] = conv.profile.custom_parameters.model_dump()
    data[name] = value
    try:
        params = GenerationParameters.model_validate(data)
    except ValidationError as e:
        reasons = "; ".join(err.get("msg", "") for err in e.errors())
        raise ParameterError(f"validation error: {reasons}") from e
    conv.set_profile(conv.profile.model_copy(update={"custom_parameters": params}))
    return params


def describe_parameter(params: GenerationParameters, name: str) -> str:
    value = getattr(params, name)
    label = "values" if name in ("stop", "logit_bias") else "value"
    if not value:
        return f"Current {name} {label}: API Default"
    if isinstance(value, float):
        return f"Current {name} {label}: {value:.2f}"
    return f"Current {name} {label}: {value}"
