#!/usr/bin/env python3
"""
Dev runner for the flashcards API.
Usage: python scripts/dev.py [--no-reload]
"""

import os
import socket
import sys
from pathlib import Path

import uvicorn

ROOT = Path(__file__).resolve().parent.parent
BACKEND_HOST = os.environ.get("BACKEND_HOST", "127.0.0.1")
BACKEND_PORT = int(os.environ.get("BACKEND_PORT", "8000"))


def port_in_use(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(("127.0.0.1", port)) == 0


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    os.chdir(ROOT)
    if str(ROOT) not in sys.path:
        sys.path.insert(0, str(ROOT))

    if port_in_use(BACKEND_PORT):
        print(f"Port {BACKEND_PORT} is in use. Stop the process or set BACKEND_PORT=<port>")
        sys.exit(1)

    print()
    print(f"  API docs: http://{BACKEND_HOST}:{BACKEND_PORT}/docs")
    print(f"  Database: {os.environ.get('DATABASE_URL', 'sqlite:///./flashcards.db')}")
    print()

    uvicorn.run(
        "server.app:app",
        host=BACKEND_HOST,
        port=BACKEND_PORT,
        reload="--no-reload" not in argv,
        reload_dirs=[str(ROOT / "flashcards"), str(ROOT / "server")],
    )


if __name__ == "__main__":
    main()
