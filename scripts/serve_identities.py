#!/usr/bin/env python3
"""CLI for serving the identity store and ad listings over HTTP."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

import uvicorn

from signage.io_utils import setup_logging
from signage.server.app import create_app
from signage.store.identity_store import JsonFileIdentityStore

LOGGER = logging.getLogger("scripts.serve_identities")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve /users.json, /register_new, /save and /ads")
    parser.add_argument(
        "--users-file",
        type=Path,
        default=Path("data/users.json"),
        help="Identity JSON file (created if missing)",
    )
    parser.add_argument(
        "--ads-root",
        type=Path,
        default=Path("asset/ads"),
        help="Directory with one sub-folder of creatives per category",
    )
    parser.add_argument("--host", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3001")))
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    setup_logging()
    app = create_app(JsonFileIdentityStore(args.users_file), ads_root=args.ads_root)
    LOGGER.info("Server running on http://%s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
