"""Entry point for running the server as a module

Usage:
    disease-extractor-server
    disease-extractor-server --port 8080
    python -m server --port 8080
"""

import logging
import sys

import uvicorn

from .app import app
from .settings import get_settings


def main():
    """Run the server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    port = get_settings().port
    for i, arg in enumerate(sys.argv[1:], 1):
        if arg == "--port" and i + 1 < len(sys.argv):
            port = int(sys.argv[i + 1])

    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
