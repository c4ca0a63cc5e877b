"""Manage API keys for the broker's HTTP API.

Usage:
    python scripts/api_keys.py create [--name NAME] [--prefix sk-]
    python scripts/api_keys.py deactivate KEY_PREFIX

The raw key is printed once on creation; only its hash is stored.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
from typing import Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from approval_broker.auth import create_api_key  # noqa: E402
from approval_broker.config import get_settings  # noqa: E402
from approval_broker.db import Store  # noqa: E402
from approval_broker.storage import ApiKeyRepository  # noqa: E402


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--database-url", help="Defaults to DATABASE_URL from the environment.")
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Generate and store a new key.")
    create.add_argument("--name", help="Label to remember the key by.")
    create.add_argument("--prefix", default="sk-", help="Literal prefix for the generated key.")

    deactivate = commands.add_parser("deactivate", help="Disable keys by their display prefix.")
    deactivate.add_argument("key_prefix")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    store = Store(args.database_url or get_settings().database_url)
    store.create_all()
    repository = ApiKeyRepository(store)

    try:
        if args.command == "create":
            generated = create_api_key(prefix=args.prefix)
            repository.create(key_hash=generated.key_hash, key_prefix=generated.key_prefix, name=args.name)
            print(generated.key)
            print(f"Stored key with prefix {generated.key_prefix}. It will not be shown again.", file=sys.stderr)
            return 0

        count = repository.deactivate(args.key_prefix)
        if not count:
            print(f"No active key with prefix {args.key_prefix}.", file=sys.stderr)
            return 1
        print(f"Deactivated {count} key(s).")
        return 0
    finally:
        store.dispose()


if __name__ == "__main__":
    sys.exit(main())
