"""Application configuration."""
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Azure Communication Services
    acs_connection_string: str

    # Public base URL the provider can reach (dev tunnel, ingress, ...)
    callback_base_url: str

    # Database
    database_url: str

    # Prompts
    audio_path: str = "/audio"
    audio_dir: Optional[str] = None

    # Menus
    menu_file: Optional[str] = None
    agent_transfer_target: Optional[str] = None

    # DTMF recognition
    max_recognize_retries: int = 2
    initial_silence_timeout_seconds: int = 5
    inter_tone_timeout_seconds: int = 2
    stop_tones: List[str] = ["asterisk"]

    # Session housekeeping
    session_idle_timeout_seconds: int = 900
    session_reap_interval_seconds: int = 60

    # Logging
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def prompt_uri(self, name: str) -> str:
        """Absolute URI of a prompt served under the audio path."""
        base = self.callback_base_url.rstrip("/")
        path = "/" + self.audio_path.strip("/")
        return f"{base}{path}/{name}.wav"


settings = Settings()
