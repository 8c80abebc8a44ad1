import asyncio

from .logging_config import get_logger
from .server import main

logger = get_logger(__name__)


def run():
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        logger.info("Media bridge has shut down.")


if __name__ == "__main__":
    run()
