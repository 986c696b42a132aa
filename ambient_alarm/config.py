"""
Configuration model for the ambient alarm engine
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

# Use BASE_DIR for all file paths
BASE_DIR = os.getenv("BASE_DIR", os.path.join(os.path.expanduser("~"), ".ambient_alarm"))
DATA_DIR = os.path.join(BASE_DIR, "data")


def default_database_url() -> str:
    """SQLite database under DATA_DIR"""
    return f"sqlite:///{os.path.join(DATA_DIR, 'ambient_alarm.db')}"


class AmbientAlarmConfig(BaseModel):
    """Main configuration for the scheduling and playback engine"""
    database_url: str = Field(default_factory=default_database_url, description="SQLAlchemy database URL")
    poll_interval_s: int = Field(
        default=10, ge=1, lt=60,
        description="Scheduler poll period; must stay below 60s so no fire minute is skipped"
    )
    default_volume: int = Field(default=50, ge=0, le=100, description="Volume used when a request omits one")
    audio_backend: Literal["headless"] = Field(default="headless", description="Playback device backend")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (json|text|simple)")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    host: str = Field(default="127.0.0.1", description="HTTP bind address")
    port: int = Field(default=8765, ge=1, le=65535, description="HTTP port")

    @classmethod
    def from_env(cls) -> "AmbientAlarmConfig":
        """Create configuration from environment variables"""
        database_url = os.getenv("AMBIENT_ALARM_DB_URL", "")
        if not database_url:
            os.makedirs(DATA_DIR, exist_ok=True)
            database_url = default_database_url()

        return cls(
            database_url=database_url,
            poll_interval_s=int(os.getenv("POLL_INTERVAL_S", "10")),
            default_volume=int(os.getenv("DEFAULT_VOLUME", "50")),
            audio_backend=os.getenv("AUDIO_BACKEND", "headless"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
            log_file=os.getenv("LOG_FILE") or None,
            host=os.getenv("AMBIENT_ALARM_HOST", "127.0.0.1"),
            port=int(os.getenv("AMBIENT_ALARM_PORT", "8765")),
        )
