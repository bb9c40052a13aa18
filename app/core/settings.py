from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(default="sqlite+pysqlite:///./dev.db", validation_alias="DATABASE_URL")
    db_auto_create: bool = Field(default=True, validation_alias="DB_AUTO_CREATE")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    kie_api_key: str | None = Field(default=None, validation_alias="KIE_API_KEY")
    kie_base_url: str = Field(default="https://api.kie.ai/api/v1", validation_alias="KIE_BASE_URL")
    kie_upload_url: str = Field(
        default="https://kieai.redpandaai.co/api/file-stream-upload",
        validation_alias="KIE_UPLOAD_URL",
    )
    http_timeout_seconds: float = Field(default=60.0, validation_alias="HTTP_TIMEOUT_SECONDS")

    # Poll budgets are per engine.
    engine_poll_interval_seconds: float = Field(default=3.0, validation_alias="ENGINE_POLL_INTERVAL_SECONDS")
    nanobanana_max_poll_attempts: int = Field(default=40, validation_alias="NANOBANANA_MAX_POLL_ATTEMPTS")
    seeddream_max_poll_attempts: int = Field(default=30, validation_alias="SEEDDREAM_MAX_POLL_ATTEMPTS")
    nanobanana_pro_max_poll_attempts: int = Field(
        default=60,
        validation_alias="NANOBANANA_PRO_MAX_POLL_ATTEMPTS",
    )

    reference_image_root: str = Field(default="./reference-images", validation_alias="REFERENCE_IMAGE_ROOT")

    task_progress_interval_seconds: float = Field(
        default=0.5,
        validation_alias="TASK_PROGRESS_INTERVAL_SECONDS",
    )
    task_progress_ceiling: float = Field(default=90.0, validation_alias="TASK_PROGRESS_CEILING")


settings = Settings()
