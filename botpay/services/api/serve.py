"""Run the API under uvicorn."""

import uvicorn

from botpay.common.config import settings


def main() -> None:
    uvicorn.run(
        "botpay.services.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
