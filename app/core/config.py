from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 3000

    database_url: str = "sqlite+pysqlite:///./data/scheduler.db"

    grid_columns: int = 10
    slot_interval_minutes: int = 5

    handwriting_dir: str = "./data/png"
    handwriting_max_bytes: int = 5 * 1024 * 1024
    handwriting_orphan_grace_minutes: int = 24 * 60
    cleanup_backend: str = "inline"

    ws_sweep_interval_seconds: int = 5 * 60
    ws_idle_timeout_seconds: int = 30 * 60

    bcrypt_rounds: int = 12
    bootstrap_admin_username: str = "admin"
    bootstrap_staff_username: str = "staff"
    bootstrap_password: str = "password"

    celery_purge_interval_minutes: int = 60
    auth_rate_limit_window_seconds: int = 60
    auth_max_failed_attempts: int = 20
    rate_limit_backend: str = "memory"
    rate_limit_redis_url: str = "redis://redis:6379/2"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
