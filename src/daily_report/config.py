"""Shared configuration for the daily-report transform pipeline."""

import os
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent.parent.parent.resolve()
load_dotenv(ROOT / ".env")

# Sampling temperature for the extraction request (low = stable column layout)
TEMPERATURE = float(os.getenv("REPORT_TEMPERATURE", "0.1"))

# Seconds a caller must wait before retrying after a failed run
RATE_LIMIT_COOLDOWN_SECONDS = int(os.getenv("RATE_LIMIT_COOLDOWN_SECONDS", "60"))
TRANSIENT_COOLDOWN_SECONDS = int(os.getenv("TRANSIENT_COOLDOWN_SECONDS", "3"))

WEB_PORT = int(os.getenv("REPORT_WEB_PORT", "8000"))


def llm_settings() -> dict[str, str]:
    """Return the backend endpoint, API key and deployment name from the environment.

    Read at call time so a missing credential surfaces on the run that needs it
    rather than at import.
    """
    return {
        "endpoint": os.getenv("AZURE_OPENAI_ENDPOINT", "").rstrip("/"),
        "api_key": os.getenv("AZURE_OPENAI_API_KEY", ""),
        "deployment": os.getenv("AZURE_OPENAI_DEPLOYMENT_NAME", ""),
    }
