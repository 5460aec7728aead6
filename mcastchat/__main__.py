#!/usr/bin/env python3
"""``python -m mcastchat {chat,generate,interfaces}``"""

from __future__ import annotations

import argparse
import sys

from colorama import Fore, Style

from . import client, generator
from .interfaces import list_multicast_interfaces


def list_interfaces() -> int:
    found = list_multicast_interfaces()
    if not found:
        print("No available network interfaces for multicast")
        return 1
    for iface in found:
        print(f"{Fore.GREEN}{iface.name:<12}{Style.RESET_ALL} index={iface.index:<4} {iface.address or '-'}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(prog="mcastchat", description="Multicast text chat")
    sub = parser.add_subparsers(dest="mode", required=True)

    client.build_parser(sub.add_parser("chat", help="interactive console chat"))
    generator.build_parser(sub.add_parser("generate", help="send a numbered message stream"))
    sub.add_parser("interfaces", help="list multicast-capable interfaces")

    args = parser.parse_args()

    if args.mode == "chat":
        sys.exit(client.run(args))
    elif args.mode == "generate":
        sys.exit(generator.run(args))
    elif args.mode == "interfaces":
        sys.exit(list_interfaces())


if __name__ == "__main__":
    main()
