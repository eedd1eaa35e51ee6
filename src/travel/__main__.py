"""Run pending migrations, then serve the API with uvicorn."""

import logging

import uvicorn

from .config import settings
from .migrate import upgrade

logger = logging.getLogger("travel.main")


def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        upgrade()
    except Exception as exc:
        logger.exception("migrations failed, refusing to start")
        raise SystemExit(1) from exc
    logger.info("serving on %s:%s", settings.host, settings.port)
    uvicorn.run("travel.api:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
