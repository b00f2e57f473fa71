"""observ entrypoint.

Run with:
  python -m observ
"""

import logging
import os

import uvicorn

from observ.core.audit import configure_audit_log
from observ.infra.db import configure


def main() -> None:
    logging.basicConfig(
        level=os.getenv("OBSERV_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    configure_audit_log()
    configure()

    host = os.getenv("OBSERV_HOST", "0.0.0.0")
    port = int(os.getenv("OBSERV_PORT", "8000"))
    reload = os.getenv("OBSERV_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    uvicorn.run("observ.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
