"""Runtime settings, read from the environment (and `.env` via python-dotenv at the CLI)."""
import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    openai_api_key: str | None = None
    llm_model: str = "gpt-4o-mini"
    quiz_model: str = "gpt-4o"
    db_path: str = "mirror_lens.db"
    llm_timeout_seconds: float = 30.0
    store_timeout_seconds: float = 10.0
    config_version: str = "cfg_mvp_1"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            llm_model=os.getenv("LLM_MODEL", cls.llm_model),
            quiz_model=os.getenv("QUIZ_MODEL", cls.quiz_model),
            db_path=os.getenv("DB_PATH", cls.db_path),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", cls.llm_timeout_seconds),
            store_timeout_seconds=_env_float("STORE_TIMEOUT_SECONDS", cls.store_timeout_seconds),
            config_version=os.getenv("CONFIG_VERSION", cls.config_version),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )
