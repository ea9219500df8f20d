from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./academia.db"
    environment: str = "development"
    log_level: str = "INFO"
    sql_echo: bool = False
    # "warn" lets soft restriction violations through with a warning, "block" rejects them
    soft_restriction_policy: str = "warn"
    reviewer_roles: list[str] = ["registrar", "advisor", "department_chair", "admin"]

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
