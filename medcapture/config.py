import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup and passed down."""

    # Generative model providers
    gemini_api_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    llm_provider: str = "auto"
    llm_model: str = ""
    llm_temperature: float = 0.1
    llm_max_output_tokens: int = 4096

    # Record store (git-hosted file store)
    record_store: str = ""
    github_token: str = ""
    records_repo_owner: str = ""
    records_repo_name: str = "hhdata"
    records_branch: str = "main"
    record_store_timeout: float = 30.0
    github_api_url: str = "https://api.github.com"

    # Input policy enforced by the HTTP layer
    min_text_length: int = 10
    max_text_length: int = 50_000
    max_upload_bytes: int = 10 * 1024 * 1024

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            llm_provider=os.getenv("LLM_PROVIDER", "auto"),
            llm_model=os.getenv("LLM_MODEL", ""),
            llm_temperature=_env_float("LLM_TEMPERATURE", 0.1),
            llm_max_output_tokens=_env_int("LLM_MAX_OUTPUT_TOKENS", 4096),
            record_store=os.getenv("RECORD_STORE", ""),
            github_token=os.getenv("GITHUB_TOKEN", ""),
            records_repo_owner=os.getenv("RECORDS_REPO_OWNER", ""),
            records_repo_name=os.getenv("RECORDS_REPO_NAME", "hhdata"),
            records_branch=os.getenv("RECORDS_BRANCH", "main"),
            record_store_timeout=_env_float("RECORD_STORE_TIMEOUT", 30.0),
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            min_text_length=_env_int("MIN_TEXT_LENGTH", 10),
            max_text_length=_env_int("MAX_TEXT_LENGTH", 50_000),
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def store_backend(self) -> str:
        backend = (self.record_store or "").lower()
        if backend:
            return backend
        return "github" if self.github_token else "memory"
