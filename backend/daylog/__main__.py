"""Run the Daylog API with uvicorn: `python -m daylog`."""

import uvicorn

from daylog.config import settings


def main() -> None:
    uvicorn.run(
        "daylog.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
