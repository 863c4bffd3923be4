"""
Pydantic models for configuration, the session record and wire messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AuthMethod(str, Enum):
    VISUAL_CODE = "visual-code"
    SHORT_CODE = "short-code"


class Identity(BaseModel):
    id: str
    name: str | None = None
    phone: str | None = None


class KeyMaterial(BaseModel):
    private_key: bytes
    public_key: bytes
    enc_key: bytes | None = None
    mac_key: bytes | None = None


class Session(BaseModel):
    client_id: str
    server_token: str
    client_token: str
    key_material: KeyMaterial
    identity: Identity


class ClientConfig(BaseModel):
    """Client options; every field also accepts its camelCase name."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    max_reconnects: int | None = Field(default=None, alias="maxReconnects", ge=0)
    reconnect_delay_ms: int | None = Field(
        default=None, alias="reconnectDelay", ge=0
    )
    auto_reconnect: bool | None = Field(default=None, alias="autoReconnect")
    qr_max_retries: int | None = Field(default=None, alias="qrMaxRetries", gt=0)
    qr_timeout_ms: int | None = Field(default=None, alias="qrTimeout", gt=0)
    auth_method: AuthMethod | None = Field(default=None, alias="authMethod")
    request_timeout_ms: int | None = Field(
        default=None, alias="requestTimeout", gt=0
    )
    ready_delay_ms: int | None = Field(default=None, alias="readyDelay", ge=0)
    logout_timeout_ms: int | None = Field(default=None, alias="logoutTimeout", gt=0)
    phone: str | None = None
    ws_url: str | None = Field(default=None, alias="wsUrl")
    user_agent: str | None = Field(default=None, alias="userAgent")
    log_level: int | str | None = Field(default=None, alias="logLevel")


class WireModel(BaseModel):
    """Base for structured messages; serialised with camelCase wire names."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Version(BaseModel):
    primary: int
    secondary: int
    tertiary: int


class UserAgent(WireModel):
    platform: str = "DESKTOP"
    app_version: Version = Field(alias="appVersion")
    os_version: Version = Field(alias="osVersion")


class InitMessage(WireModel):
    client_token: str = Field(alias="clientToken")
    connect_type: str = Field(default="WIFI_UNKNOWN", alias="connectType")
    connect_reason: str = Field(default="USER_ACTIVATED", alias="connectReason")
    user_agent: UserAgent = Field(alias="userAgent")
    web_info: dict[str, str] = Field(
        default_factory=lambda: {"webSubPlatform": "WEB_BROWSER"}, alias="webInfo"
    )
    passive: bool | None = None
    session: str | None = None


class PairRequest(WireModel):
    type: Literal["request_pair"] = "request_pair"
    ref: str
    public_key: str = Field(alias="publicKey")
    phone: str


class SuccessMessage(WireModel):
    type: Literal["success"] = "success"
    session: str
    client_token: str = Field(alias="clientToken")
    wid: str
    pushname: str | None = None
    phone: str | None = None
    secret: str | None = None


class PairResult(WireModel):
    type: Literal["pair_success", "pair_error"]
    code: str | None = None
    reason: str | None = None


class LinkRequest(BaseModel):
    """Body of the test-double service's ``/link`` endpoint."""

    payload: str | None = None
    code: str | None = None
    phone: str
    name: str | None = None
