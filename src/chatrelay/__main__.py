"""ChatRelay entry point."""

import argparse
import logging

from chatrelay import __version__
from chatrelay.config import get_settings
from chatrelay.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="ChatRelay - streaming chat relay API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  chatrelay serve                    Start the API server
  chatrelay serve --port 9000        Start on another port
  chatrelay serve --dev              Start with auto-reload (dev mode)
""",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind (default: CHATRELAY_HOST or 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=None,
        help="Port to bind (default: CHATRELAY_PORT or 8890)",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Development mode with auto-reload",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve"],
        help="Subcommand: 'serve' starts the API server (default)",
    )

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(level=settings.log_level)

    host = args.host if args.host is not None else settings.host
    port = args.port if args.port is not None else settings.port

    try:
        if args.command == "serve":
            from chatrelay.api.serve import run_api_server

            run_api_server(host=host, port=port, dev=args.dev)
    except KeyboardInterrupt:
        logger.info("ChatRelay stopped.")


if __name__ == "__main__":
    main()
