"""Load a P2P blocklist from stdin and look up addresses in it."""

from __future__ import annotations

import argparse
import ipaddress
import sys

from torrentkit.iplist.iplist import BlocklistParseError, new_from_reader


def main(argv=None) -> int:
    """Run the tool; returns the exit status."""
    parser = argparse.ArgumentParser(prog="iplist", description="Look up IPs in a blocklist read from stdin.")
    parser.add_argument("ips", nargs="*", type=ipaddress.ip_address)
    args = parser.parse_args(argv)
    stdin = getattr(sys.stdin, "buffer", sys.stdin)
    try:
        il = new_from_reader(stdin)
    except (BlocklistParseError, OSError) as exc:
        print(f"error loading ip list: {exc}", file=sys.stderr)
        return 1
    print(f"loaded {il.num_ranges()} ranges", file=sys.stderr)
    for ip in args.ips:
        r = il.lookup(ip)
        if r is not None:
            print(f"{ip} is in {r}")
        else:
            print(f"{ip} not found")
    return 0


if __name__ == "__main__":
    sys.exit(main())