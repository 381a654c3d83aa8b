#!/usr/bin/env python3
"""Launch the workflow API under uvicorn on the port given by PORT (default 8000)."""

import os
import subprocess
import sys


def resolve_port(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        print(f"Warning: Invalid PORT value '{raw}', using default 8000", file=sys.stderr)
        return 8000


def main() -> int:
    port = resolve_port(os.environ.get("PORT", "8000"))
    # Single worker: workflows live in process memory
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "routeflow.main:app",
        "--host",
        "0.0.0.0",
        "--port",
        str(port),
        "--proxy-headers",
        "--forwarded-allow-ips",
        "*",
    ]
    print(f"Starting server on port {port}...", file=sys.stderr)
    try:
        return subprocess.call(cmd)
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
