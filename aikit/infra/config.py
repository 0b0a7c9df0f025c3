"""Configuration management loaded from environment and .env."""

import os
from typing import List, Optional
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from project root
project_root = Path(__file__).parent.parent.parent
env_file = project_root / ".env"

# override=False means existing environment variables take precedence
load_dotenv(dotenv_path=env_file, override=False)


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant that can control the browser using available tools. "
    "When the user asks you to perform an action, use the appropriate tools to accomplish it. "
    "Be concise and helpful."
)


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Application configuration."""
    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Key/value store: JSON file when set, in-memory otherwise
    AIKIT_STORE_PATH: Optional[str] = os.getenv("AIKIT_STORE_PATH") or None

    # Timeouts (seconds)
    PERMISSION_REQUEST_TIMEOUT: float = float(os.getenv("PERMISSION_REQUEST_TIMEOUT", "60"))
    PERMISSION_SWEEP_INTERVAL: float = float(os.getenv("PERMISSION_SWEEP_INTERVAL", "30"))
    LLM_CALL_TIMEOUT: float = float(os.getenv("LLM_CALL_TIMEOUT", "120"))
    TOOL_EXECUTION_TIMEOUT: float = float(os.getenv("TOOL_EXECUTION_TIMEOUT", "30"))

    # Tools whose name starts with one of these prefixes are checked per site
    DOMAIN_AWARE_TOOL_PREFIXES: List[str] = _split_csv(
        os.getenv("DOMAIN_AWARE_TOOL_PREFIXES", "nav.,page.,tab.,dom.")
    )

    SYSTEM_PROMPT: str = os.getenv("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)


config = Config()
