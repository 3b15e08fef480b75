"""
Process entry point.

    python -m twitterclone                                   # HTTP
    python -m twitterclone --cert-file c.pem --key-file k.pem  # HTTPS

Exits with status 1 when the listener could not start.
"""

import argparse
import sys
from typing import List, Optional

from twitterclone import __version__
from twitterclone.config import settings
from twitterclone.main import build_server, setup_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="twitterclone", description="Twitter clone API server")
    parser.add_argument("--cert-file", help="TLS certificate (PEM); enables HTTPS with --key-file")
    parser.add_argument("--key-file", help="TLS private key (PEM)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)
    if bool(args.cert_file) != bool(args.key_file):
        parser.error("--cert-file and --key-file must be given together")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(settings)

    server = build_server(settings=settings)
    if args.cert_file:
        ok = server.listen_tls(args.cert_file, args.key_file)
    else:
        ok = server.listen()
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
