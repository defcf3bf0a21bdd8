"""Application entry point for the reconciliation API server."""

import uvicorn

from carrier_recon.api.app import app
from carrier_recon.utils.config import load_config
from carrier_recon.utils.logger import setup_logging


def main() -> None:
    """Start the FastAPI application server."""
    config = load_config()
    setup_logging(config.log_level)
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
