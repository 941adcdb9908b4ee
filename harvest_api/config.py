"""Application configuration via environment variables."""

from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: List[str] = ["*"]

    # Artifact storage (written by the crawler, read by the data API)
    data_dir: str = "tweets-data"

    # External crawler (tweet-harvest CLI)
    crawler_command: str = "npx"
    crawler_package: str = "tweet-harvest@2.6.1"
    crawler_progress_pattern: str = r"(?:Total tweets saved|tweets saved)\D*(\d+)"

    # Submission defaults
    default_target_count: int = 10
    default_delay_each_tweet: int = 3
    default_delay_every_100: int = 10

    # Live update stream
    sse_keepalive_seconds: float = 15.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "HARVEST_"}


settings = Settings()
