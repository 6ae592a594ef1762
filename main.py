from __future__ import annotations
import argparse
import base64
import logging
import sys
from getpass import getpass

from pbkdf2_mod import algorithms
from pbkdf2_mod.kdf import (
    DEFAULT_FORMAT,
    DEFAULT_HASH_ALGORITHM,
    DEFAULT_ITERATIONS,
    DEFAULT_SALT_LENGTH,
)
from pbkdf2_mod.key_resource import KeyResource


def write_result(text: str) -> None:
    # Results may carry raw bytes (e.g. from `bin`) as surrogate escapes.
    sys.stdout.flush()
    sys.stdout.buffer.write(text.encode("utf-8", "surrogateescape") + b"\n")
    sys.stdout.flush()


def read_password(from_stdin: bool) -> str:
    if from_stdin:
        return sys.stdin.readline().rstrip("\r\n")
    password = getpass("Password: ")
    if password != getpass("Confirm password: "):
        raise ValueError("passwords do not match.")
    return password


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pbkdf2-key",
        description="Derive a PBKDF2 key from a password with a fresh random salt and format the result.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    der = sub.add_parser("derive", help="Derive a key and print the formatted result")
    der.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS,
                     help=f"PBKDF2 iterations (default: {DEFAULT_ITERATIONS})")
    der.add_argument("--salt-length", type=int, default=DEFAULT_SALT_LENGTH,
                     help=f"Salt length in bytes (default: {DEFAULT_SALT_LENGTH})")
    der.add_argument("--hash-algorithm", choices=algorithms.names(), default=DEFAULT_HASH_ALGORITHM,
                     help=f"Hash function (default: {DEFAULT_HASH_ALGORITHM})")
    der.add_argument("--format", default=DEFAULT_FORMAT,
                     help="Output template (default: base64 salt and key joined by ':')")
    der.add_argument("--password-stdin", action="store_true",
                     help="Read the password from the first line of stdin instead of prompting")
    der.add_argument("--show", choices=("result", "salt", "key", "all"), default="result",
                     help="What to print; salt and key are base64 encoded")

    sub.add_parser("algorithms", help="List supported hash algorithms")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "algorithms":
        for name in algorithms.names():
            length, _ = algorithms.lookup(name)
            print(f"{name}\t{length}")
        return 0

    try:
        password = read_password(args.password_stdin)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    resource = KeyResource()
    resp = resource.create({
        "password": password,
        "iterations": args.iterations,
        "salt_length": args.salt_length,
        "hash_algorithm": args.hash_algorithm,
        "format": args.format,
    })
    if resp.has_error:
        for diag in resp.diagnostics:
            print(f"Error: {diag.summary}: {diag.detail}", file=sys.stderr)
        return 1

    state = resp.state
    salt = base64.b64encode(state.salt).decode("ascii")
    key = base64.b64encode(state.key).decode("ascii")
    if args.show == "salt":
        print(salt)
    elif args.show == "key":
        print(key)
    elif args.show == "all":
        print(f"salt\t{salt}")
        print(f"key\t{key}")
        write_result(f"result\t{state.result}")
    else:
        write_result(state.result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
