#!/usr/bin/env python3
"""
Command-line entry point for the Pinterest cache client.

Prints boards, board pins, all of a user's pins, or bulk pin metadata as JSON.
Responses are served from the on-disk cache while fresh.

Examples:
    pinterest-cache --username someone --per-page 10 boards --paginate
    pinterest-cache --username someone board-pins my-board
    pinterest-cache --username someone pin-data 1234 5678
"""

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from client import PinterestClient
from config import config, get_logger
from errors import PinClientError
from pagination import PaginatedResponse

logger = get_logger("main")


def _page_size(value: str) -> Optional[int]:
    if value.strip().lower() in ("all", "none"):
        return None
    size = int(value)
    if size < 1:
        raise argparse.ArgumentTypeError("page size must be a positive integer or 'all'")
    return size


def _page_number(value: str) -> int:
    page = int(value)
    if page < 1:
        raise argparse.ArgumentTypeError("page must be >= 1")
    return page


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Pinterest boards and pins with an on-disk response cache')
    parser.add_argument('--username', default=config.PINTEREST_USERNAME,
                        help='Pinterest username (defaults to PINTEREST_USERNAME)')
    parser.add_argument('--per-page', type=_page_size, default=config.ITEMS_PER_PAGE,
                        help="Items per page, or 'all' for a single page")
    parser.add_argument('--page', type=_page_number, default=1,
                        help='Page to return (1-based)')

    subparsers = parser.add_subparsers(dest='command', required=True)
    boards = subparsers.add_parser('boards', help="List the user's boards")
    boards.add_argument('--paginate', action='store_true', help='Wrap the result in a page envelope')

    board_pins = subparsers.add_parser('board-pins', help='List the pins on one board')
    board_pins.add_argument('board', help='Board handle, e.g. my-board')
    board_pins.add_argument('--paginate', action='store_true', help='Wrap the result in a page envelope')

    subparsers.add_parser('pins', help='List pins from every board the user owns')

    pin_data = subparsers.add_parser('pin-data', help='Fetch metadata for pin ids')
    pin_data.add_argument('pin_ids', nargs='+', help='Pin ids')
    return parser


async def run_command(args: argparse.Namespace, client: PinterestClient) -> Any:
    """Run the selected command against ``client`` and return its result."""
    client.set_items_per_page(args.per_page)
    client.set_current_page(args.page)
    if args.command == 'boards':
        return await client.get_boards(paginate=args.paginate)
    if args.command == 'board-pins':
        return await client.get_pins_from_board(args.board, paginate=args.paginate)
    if args.command == 'pins':
        return await client.get_pins()
    if args.command == 'pin-data':
        return await client.get_data_for_pins(args.pin_ids)
    raise ValueError(f"Unknown command: {args.command}")


async def _run(args: argparse.Namespace) -> Any:
    async with PinterestClient(args.username) as client:
        return await run_command(args, client)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.username:
        parser.error('a username is required (use --username or set PINTEREST_USERNAME)')

    try:
        result = asyncio.run(_run(args))
    except PinClientError as e:
        logger.error(f"Request failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130

    if isinstance(result, PaginatedResponse):
        result = result.to_dict()
    json.dump(result, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
