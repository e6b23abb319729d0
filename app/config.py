from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://localhost:5432/fbagoals"
    api_key: str | None = None
    log_level: str = "INFO"

    # Goal lifecycle
    goals_default_period: str = "30d"  # Used when a create request omits period
    goals_delete_on_settle: bool = False  # Settled goals are archived (is_active=false) unless set

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
