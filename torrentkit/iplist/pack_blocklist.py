"""Read a P2P blocklist from stdin and write its packed form to stdout."""

from __future__ import annotations

import argparse
import sys

from torrentkit.iplist.iplist import BlocklistParseError, new_from_reader
from torrentkit.iplist.packed import write_packed


def main(argv=None) -> int:
    """Run the tool; returns the exit status."""
    parser = argparse.ArgumentParser(
        prog="pack-blocklist",
        description="Convert a P2P plaintext blocklist on stdin to the packed format on stdout.",
    )
    parser.parse_args(argv)
    stdin = getattr(sys.stdin, "buffer", sys.stdin)
    try:
        ip_list = new_from_reader(stdin)
        out = sys.stdout.buffer
        write_packed(ip_list, out)
        out.flush()
    except (BlocklistParseError, OSError, ValueError) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())