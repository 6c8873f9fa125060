"""Main entry point for the escalation service API server."""

import logging
import os

from dotenv import load_dotenv

# Load environment variables from .env file BEFORE importing service modules
load_dotenv()

# Now import service modules (config placeholders are expanded from env vars)
from escalation_api import create_app  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Load config path from environment or use default
config_path = os.getenv("ESCALATION_CONFIG_PATH", "configs/escalation.yaml")

app = create_app(config_path=config_path)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
