"""Launch the roomchat server: ``python -m roomchat``."""
import argparse

import uvicorn

from roomchat.config import load_config
from roomchat.main import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the roomchat server.")
    parser.add_argument(
        "--settings",
        type=str,
        default=None,
        help="Path to roomchat.settings.yaml (default: $ROOMCHAT_SETTINGS or ./roomchat.settings.yaml)",
    )
    parser.add_argument("--host", type=str, default=None, help="Override server.host")
    parser.add_argument("--port", type=int, default=None, help="Override server.port")
    args = parser.parse_args()

    settings = load_config(args.settings)
    app = create_app(settings)

    uvicorn.run(
        app,
        host=args.host or settings.server.host,
        port=args.port or settings.server.port,
        log_level=settings.logging.level,
    )


if __name__ == "__main__":
    main()
