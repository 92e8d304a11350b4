"""``pairchat-server`` entry point."""
import argparse

import uvicorn

from .constants import HOST, LOG_FILE, LOG_LEVEL, PORT
from .logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Run the pairchat matching and signaling server.")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--log-level", default=LOG_LEVEL)
    args = parser.parse_args(argv)

    setup_logging(log_level=args.log_level, log_file=LOG_FILE)
    logger.info(f"Signaling server running on http://{args.host}:{args.port}")
    # One worker: pairing state lives in this process.
    uvicorn.run("pairchat.app:app", host=args.host, port=args.port, log_level=args.log_level.lower(), workers=1)


if __name__ == "__main__":
    main()
