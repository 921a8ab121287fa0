from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_secret_key: str = "change-me-in-production"

    # Database
    database_path: str = "./data/tracejudge.db"

    # Logging
    log_level: str = "info"

    # CORS
    cors_origins: str = "http://localhost:5173"

    # Fallback vendor keys, used when a prompt carries no key of its own
    openai_api_key: str = ""
    groq_api_key: str = ""
    gemini_api_key: str = ""

    # LLM calls
    llm_timeout_seconds: float = 60.0

    # Job processing
    eval_max_concurrency: int = 1
    progress_update_interval: int = 5
    summary_pass_threshold: float = 3.0

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
