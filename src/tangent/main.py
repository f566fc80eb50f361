"""
Command-line entry point.

    tangent [message ...]      chat (one-shot when a message or piped input is given)
    tangent history [name]     list saved conversations or print one
    tangent profile [name]     select the current profile
"""

import argparse
import sys
from typing import List, Optional

from prompt_toolkit import prompt

from . import render, settings
from .chain import ROLE_USER, Conversation
from .chat import provide_chat
from .context import Context
from .dialog import Dialog, one_shot
from .errors import ConfigError, ConversationFormatError, StorageError
from .files import file_message, read_files
from .models import AppConfig
from .storage import Storage

# Width of the root message excerpt in the history listing
EXCERPT_LEN = 50


def build_chat_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tangent",
        description="Branching chat client for large language models.",
        epilog="Subcommands: 'tangent history [name]', 'tangent profile [name]'.",
    )
    parser.add_argument("message", nargs="*", help="Send this message and exit (one-shot mode)")
    parser.add_argument("--profile", "-p", help="Profile file to use instead of the current one")
    parser.add_argument("--model", "-m", help="Override the profile model")
    parser.add_argument(
        "--file", "-f", dest="files", action="append", default=[],
        help="Attach files matching a glob (repeatable, comma-separated)",
    )
    parser.add_argument("--restore", "-r", help="Restore a saved conversation by name or prefix")
    parser.add_argument("--rest", action="store_true", help="Use a blocking REST call instead of streaming")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print debug output")
    return parser


def build_history_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tangent history", description="List or show saved conversations.")
    parser.add_argument("name", nargs="?", help="Conversation file name or prefix to print")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print debug output")
    return parser


def build_profile_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tangent profile", description="Select the current profile.")
    parser.add_argument("name", nargs="?", help="Profile file to select; prompts when omitted")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print debug output")
    return parser


def read_piped_stdin() -> str:
    if sys.stdin is None or sys.stdin.isatty():
        return ""
    return sys.stdin.read().strip()


def new_conversation(ctx: Context, cfg: AppConfig, profile_name: Optional[str], file_patterns: List[str]) -> Conversation:
    """Start a conversation: attached files first, then the profile's seed turns."""
    profile = settings.load_profile(cfg, profile_name)
    conv = Conversation(profile=profile, system=profile.system_context)
    for fc in read_files(ctx, file_patterns):
        conv.append(ROLE_USER, file_message(fc))
    for seed in profile.messages:
        conv.append(seed.role, seed.content)
    return conv


def cmd_chat(ctx: Context, args: argparse.Namespace) -> int:
    cfg = settings.load_config()
    storage = Storage(settings.history_dir())

    if args.restore:
        if args.files:
            ctx.warn("--file is ignored when restoring a conversation")
        if args.profile:
            ctx.warn("--profile is ignored when restoring a conversation")
        conv, path = storage.restore(args.restore)
        ctx.log(f"Restored {path}")
    else:
        conv = new_conversation(ctx, cfg, args.profile, args.files)

    if args.model:
        conv.set_profile(conv.profile.model_copy(update={"model": args.model}))
    ctx.debug(f"profile={conv.profile.profile_name} vendor={conv.profile.vendor} model={conv.profile.model}")

    message = " ".join(args.message).strip()
    piped = read_piped_stdin()
    if piped:
        message = f"{message}\n\n{piped}" if message else piped

    provider = provide_chat(ctx, conv.profile, cfg)

    if message:
        conv.append(ROLE_USER, message)
        reply = one_shot(ctx, conv, provider, storage, use_rest=args.rest)
        return 0 if reply is not None else 1

    if conv.head is not None:
        render.print_conversation(ctx, conv)
    Dialog(ctx, conv, provider, storage, use_rest=args.rest).run()
    return 0


def cmd_history(ctx: Context, args: argparse.Namespace) -> int:
    """List saved conversations (newest first) or print one."""
    settings.ensure_tangent_dir()
    storage = Storage(settings.history_dir(), search_dirs=[])
    if args.name:
        conv, _ = storage.restore(args.name)
        render.print_conversation(ctx, conv)
        return 0

    files = storage.list_saved()
    if not files:
        ctx.send_to_user("No saved conversations.")
        return 0
    for path in files:
        try:
            root = storage.load(path).root_message()
        except (StorageError, ConversationFormatError) as e:
            ctx.warn(f"{path.name}: {e}")
            continue
        excerpt = " ".join(root.content.split()) if root is not None else ""
        if len(excerpt) > EXCERPT_LEN:
            excerpt = excerpt[:EXCERPT_LEN] + "..."
        ctx.send_to_user(f"{path.stem:<16} {excerpt}")
    return 0


def cmd_profile(ctx: Context, args: argparse.Namespace) -> int:
    """Make a profile file the current one."""
    cfg = settings.load_config()
    profiles = settings.list_profiles()
    if not profiles:
        raise ConfigError("no profiles found")

    name = args.name
    if not name:
        for i, p in enumerate(profiles, 1):
            marker = "*" if p == cfg.current_profile else " "
            ctx.send_to_user(f"{marker} {i:2}. {p}")
        try:
            choice = prompt("Select profile: ").strip()
        except (EOFError, KeyboardInterrupt):
            return 1
        if choice.isdigit() and 1 <= int(choice) <= len(profiles):
            name = profiles[int(choice) - 1]
        else:
            name = choice

    if name not in profiles and f"{name}.yaml" in profiles:
        name = f"{name}.yaml"
    if name not in profiles:
        raise ConfigError(f"profile not found: {name}")
    # Fails on an invalid profile before it becomes current
    settings.load_profile(cfg, name)
    cfg.current_profile = name
    settings.save_config(cfg)
    ctx.send_to_user(f"Current profile: {name}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    if argv and argv[0] == "history":
        args = build_history_parser().parse_args(argv[1:])
        handler = cmd_history
    elif argv and argv[0] == "profile":
        args = build_profile_parser().parse_args(argv[1:])
        handler = cmd_profile
    else:
        args = build_chat_parser().parse_args(argv)
        handler = cmd_chat

    ctx = Context(verbose=args.verbose)
    try:
        return handler(ctx, args)
    except (ConfigError, StorageError, ConversationFormatError) as e:
        ctx.error_message(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
