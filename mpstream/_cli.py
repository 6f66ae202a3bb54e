"""mpstream command-line interface.

Usage:
    echo '{"a":"b"}' | mpstream encode [--sort-keys] [--intern] [--format hex|base64|raw]
    mpstream encode --input file.json --output file.msgpack --format raw
    echo 81a161a162 | mpstream decode --format hex
    mpstream decode --input file.msgpack --format raw
    mpstream version
"""

from __future__ import annotations

import argparse
import base64
import binascii
import json
import logging
import sys
from datetime import datetime
from typing import Any, List, Optional

from . import Decoder, Encoder, ExtType, MsgpackError, __version__

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mpstream",
        description="mpstream — convert between JSON and MessagePack",
    )
    parser.add_argument("--debug", action="store_true",
                        help="Log codec internals to stdout")
    sub = parser.add_subparsers(dest="command")

    # ── encode ──
    enc_p = sub.add_parser("encode", help="JSON -> MessagePack")
    enc_p.add_argument("--input", "-i", metavar="FILE",
                       help="Read JSON from FILE instead of stdin")
    enc_p.add_argument("--output", "-o", metavar="FILE",
                       help="Write to FILE instead of stdout")
    enc_p.add_argument("--format", "-f", choices=("hex", "base64", "raw"),
                       default="hex", help="Output encoding (default: hex)")
    enc_p.add_argument("--sort-keys", action="store_true",
                       help="Emit map keys in byte-lexicographic order")
    enc_p.add_argument("--intern", action="store_true",
                       help="Intern repeated strings (ext -128)")

    # ── decode ──
    dec_p = sub.add_parser("decode", help="MessagePack -> JSON")
    dec_p.add_argument("--input", "-i", metavar="FILE",
                       help="Read MessagePack from FILE instead of stdin")
    dec_p.add_argument("--format", "-f", choices=("hex", "base64", "raw"),
                       default="raw", help="Input encoding (default: raw)")
    dec_p.add_argument("--intern", action="store_true",
                       help="Input was encoded with interned strings")
    dec_p.add_argument("--all", action="store_true",
                       help="Decode every value in the input, one JSON line each")

    # ── version ──
    sub.add_parser("version", help="Print version and exit")

    return parser


def _read_input(filepath: Optional[str]) -> bytes:
    """Read bytes from a file or stdin."""
    if filepath:
        with open(filepath, "rb") as f:
            return f.read()
    if sys.stdin.isatty():
        print("mpstream: reading from stdin (Ctrl-D to end)...", file=sys.stderr)
    return sys.stdin.buffer.read()


def _unwrap(raw: bytes, fmt: str) -> bytes:
    if fmt == "hex":
        return bytes.fromhex(raw.decode("ascii"))
    if fmt == "base64":
        return base64.b64decode(raw, validate=False)
    return raw


def _to_json(v: Any) -> Any:
    """Map decoded values onto what json.dumps accepts."""
    if isinstance(v, dict):
        return {k if isinstance(k, str) else json.dumps(_to_json(k)): _to_json(x)
                for k, x in v.items()}
    if isinstance(v, (list, tuple)) and not isinstance(v, ExtType):
        return [_to_json(x) for x in v]
    if isinstance(v, (bytes, bytearray)):
        return {"$bin": base64.b64encode(bytes(v)).decode("ascii")}
    if isinstance(v, ExtType):
        return {"$ext": v.code, "data": base64.b64encode(v.data).decode("ascii")}
    if isinstance(v, datetime):
        return v.isoformat()
    return v


def _cmd_encode(args: argparse.Namespace) -> None:
    value = json.loads(_read_input(args.input))
    enc = Encoder(sort_map_keys=args.sort_keys, use_interned_strings=args.intern)
    enc.encode(value)
    data = enc.getvalue()
    logger.debug("encoded %d bytes", len(data))

    if args.format == "hex":
        out = (data.hex() + "\n").encode("ascii")
    elif args.format == "base64":
        out = base64.b64encode(data) + b"\n"
    else:
        out = data

    if args.output:
        with open(args.output, "wb") as f:
            f.write(out)
    else:
        sys.stdout.buffer.write(out)
        sys.stdout.flush()


def _cmd_decode(args: argparse.Namespace) -> None:
    raw = _read_input(args.input)
    if args.format != "raw":
        raw = raw.strip()
    data = _unwrap(raw, args.format)
    dec = Decoder(data, use_interned_strings=args.intern)
    while True:
        print(json.dumps(_to_json(dec.decode()), ensure_ascii=False))
        if not args.all:
            return
        try:
            dec.peek_code()
        except EOFError:
            return


def main(argv: Optional[List[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT, stream=sys.stdout)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "version":
        print(f"mpstream {__version__}")
        return

    try:
        if args.command == "encode":
            _cmd_encode(args)
        elif args.command == "decode":
            _cmd_decode(args)
    except MsgpackError as e:
        print(f"mpstream: error [{e.err}]: {e}", file=sys.stderr)
        sys.exit(2)
    except EOFError as e:
        print(f"mpstream: truncated input: {e}", file=sys.stderr)
        sys.exit(2)
    except (json.JSONDecodeError, ValueError, binascii.Error) as e:
        print(f"mpstream: bad input: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
