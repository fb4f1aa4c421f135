"""
Configuration management with schema validation.
Single source of truth for Mangrat configuration.

Settings are read from a YAML file (config/settings.yaml by default, or the
path in MANGRAT_CONFIG). String values of the form ${VAR} or ${VAR:default}
are substituted from the environment, and a .env file is loaded first.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator

from .exceptions import ConfigError

load_dotenv()

DEFAULT_SETTINGS_FILE = Path("config") / "settings.yaml"

DEFAULT_PREAMBLE = (
    "You are Mangrat, a friendly and helpful assistant. "
    "Answer clearly and concisely, and use the conversation so far as context."
)


class AppSettings(BaseModel):
    name: str = "Mangrat"
    version: str = "1.0.0"
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000


class AuthSettings(BaseModel):
    session_ttl_hours: int = Field(default=24, gt=0)
    cookie_name: str = "session_token"
    cookie_samesite: Literal["lax", "strict", "none"] = "strict"
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)


class PlanTier(BaseModel):
    """Generation parameters for one plan"""
    max_tokens: int = Field(gt=0)
    temperature: float = Field(ge=0.0, le=2.0)
    memory_window: int = Field(gt=0)


class ChatSettings(BaseModel):
    preamble: str = DEFAULT_PREAMBLE
    require_auth_for_chat: bool = False
    max_message_length: int = Field(default=4000, gt=0)
    lock_timeout_seconds: float = Field(default=200.0, gt=0)
    basic: PlanTier = Field(
        default_factory=lambda: PlanTier(max_tokens=200, temperature=0.2, memory_window=10)
    )
    premium: PlanTier = Field(
        default_factory=lambda: PlanTier(max_tokens=512, temperature=0.1, memory_window=20)
    )

    @model_validator(mode="after")
    def _premium_outranks_basic(self) -> "ChatSettings":
        if self.premium.max_tokens <= self.basic.max_tokens:
            raise ValueError("premium.max_tokens must be larger than basic.max_tokens")
        if self.premium.temperature > self.basic.temperature:
            raise ValueError("premium.temperature must not exceed basic.temperature")
        return self


class LLMSettings(BaseModel):
    provider: Literal["huggingface", "openai-compatible"] = "huggingface"
    api_base: str = "https://api-inference.huggingface.co/models"
    model: str = "mistralai/Mistral-7B-Instruct-v0.2"
    api_token: str = ""
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    read_timeout_seconds: float = Field(default=60.0, gt=0)
    total_timeout_seconds: float = Field(default=120.0, gt=0)
    max_attempts: int = Field(default=2, ge=1)


class StorageSettings(BaseModel):
    backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: str = "data/mangrat.db"
    pool_size: int = Field(default=10, gt=0)
    pool_timeout_seconds: float = Field(default=5.0, ge=0)


class CorsSettings(BaseModel):
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://127.0.0.1:5500"])


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: Literal["json", "console"] = "console"
    file_path: Optional[str] = None
    max_bytes: int = 10485760
    backup_count: int = 5


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cors: CorsSettings = Field(default_factory=CorsSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def _chat_lock_outlasts_upstream_call(self) -> "Settings":
        # Longest upstream call: the total budget plus one connect and one stalled read
        upstream_bound = (
            self.llm.total_timeout_seconds
            + self.llm.connect_timeout_seconds
            + self.llm.read_timeout_seconds
        )
        if self.chat.lock_timeout_seconds <= upstream_bound:
            raise ValueError(
                "chat.lock_timeout_seconds must be larger than llm total + connect + read timeouts "
                f"({upstream_bound}s)"
            )
        return self


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR} / ${VAR:default} expressions"""
    if isinstance(value, str):
        if value.startswith("${") and value.endswith("}"):
            var_expr = value[2:-1]
            if ":" in var_expr:
                var_name, default = var_expr.split(":", 1)
                return os.getenv(var_name.strip(), default.strip())
            return os.getenv(var_expr, "")
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load and validate settings.

    An explicitly named file (argument or MANGRAT_CONFIG) must exist; the
    default file is optional and built-in defaults apply without it.
    """
    explicit = path or os.getenv("MANGRAT_CONFIG")
    settings_path = Path(explicit) if explicit else DEFAULT_SETTINGS_FILE

    raw_data: Dict[str, Any] = {}
    if settings_path.exists():
        try:
            with open(settings_path, "r", encoding="utf-8") as f:
                raw_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Could not read settings file {settings_path}: {e}") from e
    elif explicit:
        raise ConfigError(f"Settings file not found: {settings_path}")

    try:
        return Settings(**_substitute_env_vars(raw_data))
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid settings in {settings_path}: {e}") from e
