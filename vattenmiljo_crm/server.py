import logging
import os

import uvicorn

from vattenmiljo_crm.config import get_settings
from vattenmiljo_crm.main import create_app
from vattenmiljo_crm.monitoring import init_sentry


def main(run_server: bool = True) -> int:
    """Run the API server or exit successfully for CLI usage."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if run_server:
        init_sentry(settings)  # pragma: no cover
        host = os.environ.get("HOST", "127.0.0.1")  # pragma: no cover
        port = int(os.environ.get("PORT", "8000"))  # pragma: no cover
        uvicorn.run(create_app(settings), host=host, port=port)  # pragma: no cover

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
