import logging

import uvicorn

from . import config


def main() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run("trafficroute.main:app", host=config.APP_HOST, port=config.APP_PORT)


if __name__ == "__main__":
    main()
