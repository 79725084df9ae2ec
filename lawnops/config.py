"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    app_secret_key: str
    log_level: str = "INFO"
    allowed_origins: str = ""  # Comma-separated CORS origins

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_messaging_service_sid: str = ""
    allow_unsigned_webhooks: bool = False

    # Operator API auth
    dashboard_jwt_secret: str = ""
    dashboard_jwt_expiry_hours: int = 24

    # SMS intake
    sms_default_template_id: str = "lawncare_v1"
    sms_max_field_attempts: int = 2
    click_to_call_ttl_minutes: int = 10
    session_lock_ttl_seconds: int = 30
    session_lock_wait_seconds: float = 5.0

    # Dispatch / decisions
    allow_crew_lead_approve: bool = False
    simulation_date_range_days: int = 7
    simulation_persist_top_n: int = 10
    simulation_return_top_n: int = 3
    skill_match_min_pct: float = 100.0
    equipment_match_min_pct: float = 100.0
    travel_average_speed_mph: float = 30.0
    travel_unknown_minutes: float = 30.0
    labor_cost_per_hour_usd: float = 30.0

    # Jobber write-back
    jobber_api_key: str = ""
    writeback_poll_interval_seconds: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
