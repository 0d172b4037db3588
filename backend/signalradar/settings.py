from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SIGNALRADAR_", extra="ignore")

    db_url: str = "sqlite:///./signalradar.db"
    app_name: str = "SignalRadar"
    log_level: str = "INFO"

    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Digest emails: SMTP
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_starttls: bool = True
    smtp_from_email: str = ""
    smtp_from_name: str = "SignalRadar"

    # Scheduler trigger: if cron_secret is empty, the x-cron-secret check is disabled.
    cron_secret: str = ""

    # Digest shape
    digest_top_n: int = 10
    digest_window_days: int = 7
    digest_signals_per_account: int = 5

    # Radar views
    drilldown_limit: int = 5
    breakdown_limit: int = 10


settings = Settings()
