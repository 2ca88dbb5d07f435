from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./profilesync.db"

    # Firebase Admin service account. Leave empty to use Application Default Credentials.
    firebase_project_id: str = ""
    firebase_client_email: str = ""
    firebase_private_key: str = ""
    firebase_credentials_file: Optional[str] = None
    profiles_collection: str = "profiles"

    # Real-time trigger defaults (seconds)
    enable_auth_sync: bool = True
    enable_profile_sync: bool = True
    enable_batch_sync: bool = False
    batch_sync_interval: float = 300.0
    debounce_delay: float = 1.0
    max_retries: int = 3
    retry_delay: float = 2.0

    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
