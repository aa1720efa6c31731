from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "ConvoProbe"
    debug: bool = False
    log_format: str = "console"  # "console" | "json"

    # PostgreSQL (run storage)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "convoprobe"
    postgres_password: str = "convoprobe"
    postgres_db: str = "convoprobe"
    # Full override, e.g. "sqlite+aiosqlite:///./convoprobe.db"
    database_url_override: str = ""

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # LLM Provider (model-agnostic via LiteLLM)
    # Provider: "ollama", "anthropic", "openai"
    llm_provider: str = "openai"
    ollama_base_url: str = "http://localhost:11434"
    # API keys (optional, only needed for cloud providers)
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    # Model names (LiteLLM format)
    persona_model: str = "gpt-4o-mini"
    judge_model: str = "gpt-4o-mini"
    persona_temperature: float = 0.8
    judge_temperature: float = 0.1

    # Connectors
    connector_timeout_seconds: float = 60.0

    # Conversation loop
    default_max_messages: int = 10
    max_turns_ceiling: int = 50

    # Run processor
    processor_poll_interval_ms: int = 5000
    processor_max_concurrent: int = 3
    processor_recover_stuck_runs: bool = False

    # Dotted module paths exposing EVALUATORS
    evaluator_modules: list[str] = []

    model_config = {"env_prefix": "CONVOPROBE_", "env_file": ".env"}


settings = Settings()
