#!/usr/bin/env python3
"""
Stream Co-Host - Command Line Interface

Commands:
    run     - Listen to the stream and chat, reply as the co-host
    facts   - Inspect or edit the remembered facts
    check   - Validate configuration

Usage:
    cohost run --stream-url https://example.com/live.m3u8
    cohost facts list
    cohost facts add "Streamer lives in Moscow"
    cohost facts remove 2 3
    cohost check

For help on a specific command:
    cohost <command> --help
"""

import argparse
import asyncio
import sys
from typing import Optional

from cohost.config import settings
from cohost.errors import CoHostError, ConfigError
from cohost.logger import init_logging, get_logger

logger = get_logger(__name__)


def _fact_store(args: argparse.Namespace):
    from cohost.realtime.facts import FactStore

    return FactStore(args.file) if args.file else FactStore()


def cmd_run(args: argparse.Namespace) -> int:
    """Run the co-host until interrupted."""
    from cohost.realtime.engine import CoHostEngine

    try:
        settings.validate_all()
        engine = CoHostEngine.from_settings(stream_url=args.stream_url)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}")
        return 1

    print("\n" + "=" * 60)
    print(f"🎙️  Stream Co-Host for #{settings.twitch.channel}")
    print("=" * 60)
    print("Press Ctrl+C to stop")
    print("-" * 60)

    try:
        asyncio.run(engine.run())
    except KeyboardInterrupt:
        pass

    logger.info(f"Final stats: {engine.stats}")
    return 0


def cmd_facts_list(args: argparse.Namespace) -> int:
    """Print the numbered fact listing."""
    store = _fact_store(args)
    print(f"\n🧠 Facts ({len(store)}) in {store.path}")
    print("-" * 50)
    print(store.format().rstrip("\n"))
    return 0


def cmd_facts_add(args: argparse.Namespace) -> int:
    """Add facts, skipping ones already stored."""
    store = _fact_store(args)
    try:
        added = store.add(args.facts)
    except CoHostError as e:
        print(f"❌ Failed to add facts: {e}")
        return 1

    if not added:
        print("Nothing new to add.")
    for fact in added:
        print(f"✅ Added: {fact}")
    return 0


def cmd_facts_remove(args: argparse.Namespace) -> int:
    """Remove facts by their listing numbers."""
    store = _fact_store(args)
    try:
        removed = store.remove_by_index(args.numbers)
    except CoHostError as e:
        print(f"❌ Failed to remove facts: {e}")
        return 1

    for fact in removed:
        print(f"🗑️  Removed: {fact}")
    return 0


def cmd_facts_clear(args: argparse.Namespace) -> int:
    """Forget every fact."""
    store = _fact_store(args)

    if not args.force:
        confirm = input(f"⚠️  This will delete all {len(store)} facts. Continue? [y/N]: ")
        if confirm.lower() != "y":
            print("Cancelled.")
            return 0

    try:
        store.clear()
    except CoHostError as e:
        print(f"❌ Failed to clear facts: {e}")
        return 1

    print("✅ Cleared all facts.")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Validate configuration and show the effective settings."""
    print("\n🔧 Configuration Check")
    print("-" * 50)

    ok = True
    checks = [
        ("Azure Speech", settings.speech.validate),
        ("Decision model", lambda: settings.decision.validate("DECISION")),
        ("Reply model", lambda: settings.reply.validate("REPLY")),
        ("Twitch", settings.twitch.validate),
        ("Conversation", settings.conversation.validate),
    ]
    for name, check in checks:
        try:
            check()
            print(f"  ✅ {name}")
        except ConfigError as e:
            ok = False
            print(f"  ❌ {name}: {e}")

    print(f"\nSettings:")
    print(f"  Channel:         {settings.twitch.channel or '-'}")
    print(f"  Language:        {settings.speech.language}")
    print(f"  Stream URL:      {settings.engine.stream_url or '-'}")
    print(f"  Decision model:  {settings.decision.model}")
    print(f"  Reply model:     {settings.reply.model}")
    print(f"  Reply cooldown:  {settings.conversation.reply_cooldown_s:.0f}s")
    print(f"  Facts file:      {settings.storage.facts_path}")
    print(f"  Environment:     {settings.app_env}")

    return 0 if ok else 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog="cohost",
        description="AI co-host for live stream chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Start the co-host:
    cohost run
    cohost run --stream-url https://example.com/live.m3u8

  Manage memory:
    cohost facts list
    cohost facts add "Streamer plays CS on Fridays"
    cohost facts remove 1
        """
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        help="Start the co-host"
    )
    run_parser.add_argument(
        "--stream-url", "-u",
        type=str,
        help="Media URL of the broadcast (default: STREAM_URL)"
    )
    run_parser.set_defaults(func=cmd_run)

    # Facts command
    facts_parser = subparsers.add_parser(
        "facts",
        help="Inspect or edit remembered facts"
    )
    facts_parser.add_argument(
        "--file",
        type=str,
        help=f"Facts file (default: {settings.storage.facts_file})"
    )
    facts_sub = facts_parser.add_subparsers(dest="facts_command")

    list_parser = facts_sub.add_parser("list", help="Show all facts")
    list_parser.set_defaults(func=cmd_facts_list)

    add_parser = facts_sub.add_parser("add", help="Add facts")
    add_parser.add_argument("facts", nargs="+", help="Fact text")
    add_parser.set_defaults(func=cmd_facts_add)

    remove_parser = facts_sub.add_parser("remove", help="Remove facts by number")
    remove_parser.add_argument("numbers", nargs="+", type=int, help="Fact numbers from 'facts list'")
    remove_parser.set_defaults(func=cmd_facts_remove)

    clear_parser = facts_sub.add_parser("clear", help="Remove all facts")
    clear_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Skip confirmation prompt"
    )
    clear_parser.set_defaults(func=cmd_facts_clear)

    # Check command
    check_parser = subparsers.add_parser(
        "check",
        help="Validate configuration"
    )
    check_parser.set_defaults(func=cmd_check)

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    init_logging("DEBUG" if args.verbose else None)

    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
