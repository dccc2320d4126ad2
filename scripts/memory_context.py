#!/usr/bin/env python3
"""Inspect the cross-session memory a user would get.

Usage examples:
    # Ranked background messages for a user
    uv run python scripts/memory_context.py --user alice

    # Same, excluding the session currently in progress
    uv run python scripts/memory_context.py --user alice --session 5f2c... --limit 10

    # Full assembled context for a session (background + its own messages)
    uv run python scripts/memory_context.py --user alice --session 5f2c... --assemble

    # Force a backend regardless of STORAGE_BACKEND
    uv run python scripts/memory_context.py --user alice --backend embedded
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from crossmem.config import settings
from crossmem.identity import User
from crossmem.memory import MemoryAssembler, create_message_store

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)


def format_message(message, width: int = 100) -> str:
    """Format a single message for display."""
    content = message.content.replace("\n", " ")
    if len(content) > width:
        content = content[: width - 3] + "..."
    sent = message.sent_at.strftime("%Y-%m-%d %H:%M:%S")
    return f"{sent} {message.role.value:9s} [{message.session_id[:8]}] {content}"


async def run(args: argparse.Namespace) -> int:
    if args.backend:
        settings.storage_backend = args.backend
    store = create_message_store(settings)

    if args.assemble:
        if not args.session:
            print("ERROR: --assemble requires --session", file=sys.stderr)
            return 1
        current = await store.get_messages_by_session(args.session)
        assembler = MemoryAssembler(store)
        messages = await assembler.build_conversation_with_memory(
            current, args.session, User(uid=args.user)
        )
    else:
        messages = await store.get_recent_messages_for_user(args.user, args.limit, args.session)

    if not messages:
        print("No messages found.")
        return 0

    print(f"--- {len(messages)} messages ---\n")
    for message in messages:
        print(format_message(message))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect cross-session memory")
    parser.add_argument("--user", "-u", required=True, help="User ID to look up")
    parser.add_argument("--session", "-s", help="Current session ID (excluded from background)")
    parser.add_argument("--limit", "-n", type=int, default=50, help="Max background messages")
    parser.add_argument(
        "--assemble", action="store_true", help="Show the full assembled context for --session"
    )
    parser.add_argument("--backend", choices=["cloud", "embedded"], help="Override the backend")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
