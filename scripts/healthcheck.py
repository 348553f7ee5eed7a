"""Container healthcheck: verify HTTP /health endpoint.

Uses stdlib only. Exit code 0 indicates the context engine is READY.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Final
from urllib.request import Request, urlopen

URL: Final[str] = os.getenv("NL2SQL_CONTEXT_HEALTH_URL", "http://127.0.0.1:8000/health")


def main() -> int:
    try:
        req = Request(URL, headers={"User-Agent": "nl2sql-context/healthcheck"})  # noqa: S310
        with urlopen(req, timeout=4) as resp:  # noqa: S310 - fixed host/http
            if resp.status != 200:
                print(f"unexpected status: {resp.status}", file=sys.stderr)
                return 1
            data = json.loads(resp.read().decode("utf-8"))
            if data.get("status") != "healthy":
                print(f"engine not ready: {data}", file=sys.stderr)
                return 1
            if not data.get("snapshot_version"):
                print("no metadata snapshot published", file=sys.stderr)
                return 1
            return 0
    except Exception as exc:
        print(f"healthcheck error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - used by Docker
    raise SystemExit(main())
