"""Configuration management for the egressgate forwarding gateway."""

from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class GatewayConfig(BaseSettings):
    """Configuration for the outbound forwarding gateway.

    Read once at process start and frozen afterwards. The pipeline and the
    app factory receive an instance explicitly; nothing reads the environment
    ad hoc while a request is being forwarded.
    """

    model_config = SettingsConfigDict(
        env_prefix="FORWARDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Outbound policy. Empty means open mode (any host may be reached).
    allowed_hosts: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated hostnames; subdomains of an entry are allowed too",
    )

    # Inbound policy. Empty means every caller is accepted.
    allowed_clients: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated caller IP addresses",
    )
    trust_forwarded_for: bool = Field(
        default=True,
        description="Take the caller address from the first X-Forwarded-For entry",
    )

    # Resource Limits
    upstream_timeout_ms: int = Field(
        default=30000,
        description="Default timeout for upstream requests in milliseconds",
        ge=100,
        le=120000,
    )
    max_response_bytes: int = Field(
        default=5 * 1024 * 1024,  # 5MB
        description="Default maximum upstream response size in bytes",
        ge=1024,
    )

    # Server Configuration
    host: str = Field(
        default="0.0.0.0",
        description="Host to bind the gateway to",
    )
    port: int = Field(
        default=3000,
        description="Port to bind the gateway to",
        ge=1,
        le=65535,
    )

    # Logging Configuration
    logging_mode: str = Field(
        default="metadata",
        description="Logging mode: off, metadata, or debug"
    )

    @field_validator("allowed_hosts", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, v: Any) -> Any:
        """Split the comma-separated host list and lower-case every entry."""
        v = _split_csv(v)
        if isinstance(v, list):
            return [str(host).strip().lower() for host in v if str(host).strip()]
        return v

    @field_validator("allowed_clients", mode="before")
    @classmethod
    def parse_allowed_clients(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("logging_mode")
    @classmethod
    def validate_logging_mode(cls, v: str) -> str:
        """Validate logging mode is one of the allowed values."""
        allowed = {"off", "metadata", "debug"}
        if v not in allowed:
            raise ValueError(f"logging_mode must be one of: {allowed}")
        return v

    @property
    def logs_metadata(self) -> bool:
        return self.logging_mode in ("metadata", "debug")

    @property
    def logs_debug(self) -> bool:
        return self.logging_mode == "debug"
