"""Serve the API with ``python -m chorebank.webapp``."""
from __future__ import annotations

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "chorebank.webapp.application:app",
        host=os.environ.get("CHOREBANK_HOST", "127.0.0.1"),
        port=int(os.environ.get("CHOREBANK_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
