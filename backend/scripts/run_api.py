from __future__ import annotations

import logging
import os
import sys


def _bootstrap_path() -> None:
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if base_dir not in sys.path:
        sys.path.insert(0, base_dir)


def main() -> None:
    _bootstrap_path()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    import uvicorn

    from api.server import create_app

    uvicorn.run(create_app(), host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
