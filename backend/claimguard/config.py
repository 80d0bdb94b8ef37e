from pydantic import model_validator
from pydantic_settings import BaseSettings

NARRATIVE_PROVIDERS = ("template", "ollama")
LOG_FORMATS = ("text", "json")


class Settings(BaseSettings):
    # App
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "text"
    host: str = "0.0.0.0"
    port: int = 8000

    # Security
    allowed_origins: str = "http://localhost:3000,http://localhost:80,http://localhost"

    # Reference data (empty = built-in tables)
    reference_data_path: str = ""

    # Narrative generation
    narrative_provider: str = "template"
    ollama_url: str = "http://localhost:11434"
    llm_model: str = "qwen3:8b"
    narrative_timeout_seconds: float = 20.0

    model_config = {"env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _validate(self):
        if self.narrative_provider not in NARRATIVE_PROVIDERS:
            raise ValueError(
                f"narrative_provider must be one of {NARRATIVE_PROVIDERS}, got {self.narrative_provider!r}"
            )
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {self.log_format!r}")
        if self.narrative_timeout_seconds <= 0:
            raise ValueError("narrative_timeout_seconds must be positive")
        if self.environment == "production":
            if "*" in self.allowed_origins.split(","):
                raise ValueError("Production must not allow wildcard CORS origins")
        return self

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


settings = Settings()
