"""Configuration management for UniLink."""
import logging
import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""

    # Supabase (remote store, realtime, auth)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")

    # Career roadmap generation
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY") or None
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # Remote call behaviour
    REMOTE_CALL_TIMEOUT: float = float(os.getenv("REMOTE_CALL_TIMEOUT", "15"))
    READ_RETRY_ATTEMPTS: int = int(os.getenv("READ_RETRY_ATTEMPTS", "3"))

    # Seconds within which a pushed record may replace a local placeholder
    PLACEHOLDER_MATCH_WINDOW: float = float(os.getenv("PLACEHOLDER_MATCH_WINDOW", "60"))

    # Verification override
    ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "admin@unilink.ng")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> bool:
        """Validate that required configuration is present."""
        if not cls.SUPABASE_URL or not cls.SUPABASE_ANON_KEY:
            raise ValueError("Supabase credentials not found. Set SUPABASE_URL and SUPABASE_ANON_KEY in .env")
        return True


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging once for the process."""
    logging.basicConfig(
        level=(level or Config.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
