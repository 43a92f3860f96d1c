"""
Connector core settings loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    debug: bool = False
    log_level: str = "INFO"

    # ── Outbound HTTP ────────────────────────────────────────────────────
    http_timeout: Optional[float] = None   # seconds; None = no timeout enforced
    http_user_agent: str = "connector-core/1.0"

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }


config = Settings()
