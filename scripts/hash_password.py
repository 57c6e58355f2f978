from __future__ import annotations

import argparse
import getpass
import json
from uuid import uuid4

from pydantic import SecretStr

from newsletter.services.auth.passwords import hash_password


def _build_parser() -> argparse.ArgumentParser:
    # Produce an API_USERS_JSON entry so plaintext passwords never land in config.
    parser = argparse.ArgumentParser(description="Hash a publisher password for API_USERS_JSON")
    parser.add_argument("--username", required=True, help="Login name used with HTTP Basic auth")
    parser.add_argument("--user-id", default=None, help="Stable owner id; generated when omitted")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    password = SecretStr(getpass.getpass("Password: "))
    entry = {
        args.username: {
            "user_id": args.user_id or uuid4().hex,
            "password_hash": hash_password(password),
        }
    }
    print(json.dumps(entry))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
