# config.py

import os

from dotenv import load_dotenv

load_dotenv()

# ------------------ Provider keys ------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "").strip()

# ------------------ Models ------------------
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash").strip() or "gemini-2.0-flash"
MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", "4096"))
REQUEST_TIMEOUT_S = float(os.getenv("REQUEST_TIMEOUT_S", "30"))

# ------------------ Storage ------------------
DB_PATH = os.getenv("PROMPTSMITH_DB", "promptsmith.db")
XLSX_PATH = os.getenv("PROMPTSMITH_XLSX", "promptsmith_experiments.xlsx")

# ------------------ UI ------------------
ADMIN_KEY = os.getenv("ADMIN_KEY", "").strip()


def env_api_keys() -> dict:
    """API keys from the environment, shaped like the keys dict llm_client expects."""
    return {
        "gemini": GEMINI_API_KEY or None,
        "openai": OPENAI_API_KEY or None,
        "anthropic": ANTHROPIC_API_KEY or None,
    }
