#!/usr/bin/env python3
"""Chat Memory Assistant CLI."""

import argparse
import base64
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from config.settings import Settings
from llm.base_client import Attachment
from orchestrator import ChatOrchestrator


def load_attachment(path: str) -> Attachment:
    """Read a file into an Attachment (images become base64 data URLs)."""
    file_path = Path(path)
    mime_type = mimetypes.guess_type(file_path.name)[0] or "text/plain"

    if mime_type.startswith("image/"):
        encoded = base64.b64encode(file_path.read_bytes()).decode("ascii")
        content = f"data:{mime_type};base64,{encoded}"
    else:
        content = file_path.read_text(encoding="utf-8", errors="replace")

    return Attachment(name=file_path.name, mime_type=mime_type, content=content)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Chat Memory Assistant - LLM chat with tiered conversation memory"
    )
    parser.add_argument(
        "--chat-id",
        type=str,
        help="Chat to continue (a new chat is started if omitted)"
    )
    parser.add_argument(
        "--message",
        "-m",
        type=str,
        help="Message to send"
    )
    parser.add_argument(
        "--file",
        action="append",
        default=[],
        help="Attach a file (repeatable)"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show memory status for --chat-id"
    )
    parser.add_argument(
        "--show-context",
        action="store_true",
        help="Print the memory context for --chat-id"
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Clear memory for --chat-id"
    )
    parser.add_argument(
        "--cleanup",
        type=int,
        nargs="?",
        const=-1,
        metavar="DAYS",
        help="Remove memories older than DAYS (default: retention setting)"
    )
    parser.add_argument(
        "--list-chats",
        action="store_true",
        help="List stored chats"
    )
    parser.add_argument(
        "--rename",
        type=str,
        metavar="TITLE",
        help="Rename the chat given by --chat-id"
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List models offered by the provider"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=["openai", "anthropic"],
        default="openai",
        help="LLM provider (default: openai)"
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Model override"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default="data/chat_memory.db",
        help="SQLite database path (default: data/chat_memory.db)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )
    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    settings = Settings(
        llm_provider=args.provider,
        llm_model=args.model,
        db_path=args.db_path,
        verbose=args.verbose,
    )
    orchestrator = ChatOrchestrator(settings=settings)

    needs_chat = args.status or args.show_context or args.clear or args.rename is not None
    if needs_chat and not args.chat_id:
        parser.error("--status, --show-context, --clear and --rename require --chat-id")

    if args.list_chats:
        for chat in orchestrator.list_chats():
            print(f"{chat.chat_id}  {chat.updated_at:%Y-%m-%d %H:%M}  "
                  f"({chat.message_count} messages)  {chat.title}")

    if args.list_models:
        models = orchestrator.list_models()
        print("\n".join(models) if models else "No models available")

    if args.rename is not None:
        if orchestrator.rename_chat(args.chat_id, args.rename):
            print(f"Renamed {args.chat_id}")
        else:
            print(f"No chat found: {args.chat_id}", file=sys.stderr)
            sys.exit(1)

    if args.cleanup is not None:
        days = None if args.cleanup < 0 else args.cleanup
        removed = orchestrator.cleanup(days)
        print(f"Removed {removed} stale memory records")

    if args.clear:
        orchestrator.memory.clear_memory(args.chat_id)
        print(f"Cleared memory for {args.chat_id}")

    if args.message or args.file:
        chat_id = args.chat_id or orchestrator.new_chat()
        try:
            attachments = [load_attachment(path) for path in args.file]
            for delta in orchestrator.stream_message(chat_id, args.message or "", attachments):
                print(delta, end="", flush=True)
            print()
            print(f"\n[chat: {chat_id}]")
        except Exception as e:
            print(f"Error processing message: {e}", file=sys.stderr)
            if args.verbose:
                import traceback
                traceback.print_exc()
            sys.exit(1)

    if args.status:
        status = orchestrator.memory_status(args.chat_id)
        if status.has_memory:
            print(f"Memory active - {status.message_count} messages remembered "
                  f"(updated {status.last_updated:%Y-%m-%d %H:%M})")
        else:
            print("No memory stored")

    if args.show_context:
        print(orchestrator.memory.load_context(args.chat_id) or "(no memory context)")


if __name__ == "__main__":
    main()
