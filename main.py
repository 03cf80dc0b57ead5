"""Run the Telegram bot in polling mode."""

from __future__ import annotations

import logging
import signal

from chatstack.bot_app import create_app


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> None:
    engine = create_app()

    def stop(signum, frame):
        engine.stop()

    signal.signal(signal.SIGINT, stop)
    signal.signal(signal.SIGTERM, stop)
    engine.run()


if __name__ == "__main__":
    main()
