"""Run the marketplace server with uvicorn using the ``listen`` block of the server config."""

from __future__ import annotations

import uvicorn

from .config import get_server_config


def main() -> None:
    listen = get_server_config().listen
    uvicorn.run(
        "farmbid.main:app",
        host=str(listen.get("host", "127.0.0.1")),
        port=int(listen.get("port", 8080)),
    )


if __name__ == "__main__":
    main()
