"""Generation parameters, validated with pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from gateway_openapi.errors import ConfigError

DEFAULT_OUTPUT_FILE = "openapi-gateway.yaml"
DEFAULT_DESCRIPTION = "Unified gateway for all services."
DEFAULT_RATE_LIMIT = 10000

VERSION_PATTERN = r"^\d+\.\d+\.\d+(-[a-zA-Z0-9-]+)?$"

# Field -> (environment variable, example value), used in error reports
CONFIG_SOURCES = {
    "output_file": ("OPENAPI_OUTPUT_FILE", "openapi-gateway.yaml"),
    "title": ("GATEWAY_TITLE", '"My API Gateway"'),
    "description": ("GATEWAY_DESCRIPTION", '"Gateway description"'),
    "version": ("GATEWAY_VERSION", "1.0.0"),
    "protocol": ("BACKEND_PROTOCOL", "https"),
    "project_id": ("GOOGLE_CLOUD_PROJECT", "my-project-id"),
    "rate_limit": ("GATEWAY_RATE_LIMIT", "10000"),
    "firebase_auth": ("GATEWAY_FIREBASE_AUTH", "true"),
}


class GatewayConfig(BaseModel):
    """Settings for one generation run."""

    output_file: Path = Path(DEFAULT_OUTPUT_FILE)
    title: str = Field(min_length=1)
    description: str = Field(default=DEFAULT_DESCRIPTION, min_length=1)
    version: str = Field(pattern=VERSION_PATTERN)
    protocol: Literal["http", "https"] = "https"
    project_id: str = Field(min_length=1)
    rate_limit: int = Field(default=DEFAULT_RATE_LIMIT, gt=0)
    firebase_auth: bool = False

    @property
    def backend_protocol(self) -> str:
        """Protocol token for x-google-backend."""
        return "h2" if self.protocol == "https" else "http/1.1"


def build_config(**values) -> GatewayConfig:
    """Build a config from raw values; ``None`` means "not provided".

    Raises ConfigError listing every offending key with an example value.
    """
    provided = {k: v for k, v in values.items() if v is not None}
    try:
        return GatewayConfig(**provided)
    except ValidationError as e:
        lines = ["Invalid configuration:"]
        for error in e.errors():
            field = str(error["loc"][0]) if error["loc"] else "?"
            env_var, example = CONFIG_SOURCES.get(field, (field.upper(), "..."))
            problem = "is required" if error["type"] == "missing" else error["msg"]
            lines.append(f"  - {env_var} ({field}) {problem}; e.g. export {env_var}={example}")
        lines.append("Check your environment variables or CLI options.")
        raise ConfigError("\n".join(lines)) from e
