"""Service configuration loaded from environment variables."""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .domain.errors import ConfigurationError

REQUIRED_VARIABLES = {
    "assistant_api_endpoint": "ASSISTANT_API_ENDPOINT",
    "assistant_api_key": "ASSISTANT_API_KEY",
    "assistant_id": "ASSISTANT_ID",
    "summary_model": "SUMMARY_MODEL",
    "mongodb_url": "MONGODB_URL",
}

OPTIONAL_VARIABLES = {
    "assistant_api_version": "ASSISTANT_API_VERSION",
    "mongodb_database": "MONGODB_DATABASE",
    "max_tool_rounds": "MAX_TOOL_ROUNDS",
    "max_concurrent_turns": "MAX_CONCURRENT_TURNS",
    "log_level": "LOG_LEVEL",
    "log_json": "LOG_JSON",
    "host": "HOST",
    "port": "PORT",
}


class Settings(BaseModel):
    """Everything the service needs at startup.

    The backend endpoint and key, the assistant id, the summarization model and
    the store URL are required. ``assistant_api_version`` switches the backend
    client to Azure OpenAI.
    """

    assistant_api_endpoint: str
    assistant_api_key: str
    assistant_id: str
    summary_model: str
    mongodb_url: str
    assistant_api_version: Optional[str] = None
    mongodb_database: str = "assistant-chat"
    max_tool_rounds: int = Field(default=10, ge=1)
    max_concurrent_turns: int = Field(default=10, ge=1)
    log_level: str = "INFO"
    log_json: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read settings from the environment.

        Raises:
            ConfigurationError: if any required variable is unset or blank,
                or a value fails validation.
        """
        environ = os.environ if environ is None else environ

        missing = [
            variable for variable in REQUIRED_VARIABLES.values()
            if not environ.get(variable, "").strip()
        ]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        values = {
            field_name: environ[variable].strip()
            for field_name, variable in REQUIRED_VARIABLES.items()
        }
        for field_name, variable in OPTIONAL_VARIABLES.items():
            value = environ.get(variable, "").strip()
            if value:
                values[field_name] = value

        try:
            return cls.model_validate(values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
