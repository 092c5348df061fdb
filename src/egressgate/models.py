"""Pydantic models for the forwarding payload and response envelope."""

from typing import Any, Literal, Optional

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from egressgate.encoding import is_form_encoded

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

_SCALARS = (str, int, float, bool, type(None))


def _is_form_value(value: Any) -> bool:
    if isinstance(value, list):
        return all(isinstance(item, _SCALARS) for item in value)
    return isinstance(value, _SCALARS)


class ForwardRequest(BaseModel):
    """Description of one outbound HTTP call."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str = Field(..., description="Absolute http(s) URL of the upstream request")
    method: HttpMethod = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    params: dict[str, Any] | list[tuple[str, Any]] | str | None = None

    timeout_ms: int | None = Field(default=None, alias="timeoutMs", ge=100, le=120000, strict=True)
    # Legacy name for timeoutMs, still sent by older callers.
    timeout: int | None = Field(default=None, ge=100, le=120000, strict=True)
    max_body_length: int | None = Field(default=None, alias="maxBodyLength", gt=0, strict=True)

    reject_unauthorized: bool | None = Field(default=None, alias="rejectUnauthorized", strict=True)
    client_cert: str | None = Field(
        default=None, validation_alias=AliasChoices("clientCert", "cert")
    )
    client_key: str | None = Field(
        default=None, validation_alias=AliasChoices("clientKey", "key")
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http or https URL with a host."""
        try:
            parsed = httpx.URL(v)
        except httpx.InvalidURL as e:
            raise ValueError(f"url is not a valid URL: {e}")
        if parsed.scheme not in ("http", "https"):
            raise ValueError("url must use the http or https scheme")
        if not parsed.host:
            raise ValueError("url must include a host")
        return v

    @model_validator(mode="after")
    def validate_form_body(self) -> "ForwardRequest":
        """Reject form-encoded bodies holding nested objects."""
        if not is_form_encoded(self.headers):
            return self
        values: list[Any] = []
        if isinstance(self.body, dict):
            values = list(self.body.values())
        elif isinstance(self.body, list) and all(
            isinstance(item, (list, tuple)) and len(item) == 2 for item in self.body
        ):
            values = [item[1] for item in self.body]
        if not all(_is_form_value(value) for value in values):
            raise ValueError("Form-encoded body values must be scalars or lists of scalars")
        return self


class ForwarderResponseMeta(BaseModel):
    """Upstream status line and headers."""

    status: int
    status_text: str = Field(default="", serialization_alias="statusText")
    headers: dict[str, str | list[str]] = Field(default_factory=dict)


class ForwarderResponse(BaseModel):
    """Envelope for every successfully executed forward.

    ``ok`` is true whatever the upstream status was; callers read
    ``meta.status``. Exactly one body variant is set.
    """

    ok: bool = True
    meta: ForwarderResponseMeta
    body_json: Any = Field(default=None, serialization_alias="bodyJson")
    body_base64: Optional[str] = Field(default=None, serialization_alias="bodyBase64")
    body_encoding: Optional[Literal["base64"]] = Field(
        default=None, serialization_alias="bodyEncoding"
    )

    @model_validator(mode="after")
    def validate_single_body(self) -> "ForwarderResponse":
        has_json = "body_json" in self.model_fields_set
        has_base64 = "body_base64" in self.model_fields_set
        if has_json == has_base64:
            raise ValueError("Exactly one of body_json or body_base64 must be set")
        if has_base64 and self.body_encoding != "base64":
            raise ValueError("body_base64 requires body_encoding='base64'")
        return self

    def to_payload(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting the unused body variant."""
        if "body_json" in self.model_fields_set:
            exclude = {"body_base64", "body_encoding"}
        else:
            exclude = {"body_json"}
        return self.model_dump(by_alias=True, exclude=exclude)


class ErrorResponse(BaseModel):
    """Standardized error response format."""

    ok: Literal[False] = False
    error: str
    details: str
