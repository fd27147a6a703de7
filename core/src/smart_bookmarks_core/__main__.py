from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

import uvicorn

from smart_bookmarks_core.app import create_app
from smart_bookmarks_core.config import load_core_config
from smart_bookmarks_core.home import ensure_app_layout, resolve_app_home


def main() -> None:
    home = resolve_app_home()
    paths = ensure_app_layout(home)
    config = load_core_config(paths)

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            RotatingFileHandler(
                paths.log_path,
                maxBytes=config.logging.max_size_mb * 1024 * 1024,
                backupCount=config.logging.backup_count,
            ),
            logging.StreamHandler(),
        ],
    )

    host = os.environ.get("SMART_BOOKMARKS_BIND") or config.network.bind_host

    env_port = os.environ.get("SMART_BOOKMARKS_PORT")
    port = int(env_port) if env_port else config.network.port

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
