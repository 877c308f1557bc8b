"""Application settings and configuration.

This module provides Pydantic settings classes for application configuration,
loaded from environment variables with support for nested configuration.
"""

import logging
from enum import StrEnum

import pydantic_settings
from pydantic import BaseModel, Field, field_validator


class DBConnectionSettings(BaseModel):
    host: str
    port: int
    user: str
    password: str
    database: str
    echo: bool = False


class AppHTTPSettings(BaseModel):
    url: str = Field("")
    host: str = Field("0.0.0.0")
    port: int = Field(8000)
    log_level: str = Field("INFO")
    log_json: bool | None = Field(
        None, description="Override log format: True=JSON, False=console, None=auto"
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v):
        v_upper = v.upper()
        if v_upper not in logging._nameToLevel:
            raise ValueError(f'invalid value "{v}"')
        return v_upper


class OpenTelemetrySettings(BaseModel):
    host: str = Field("")
    port: int = Field(4317)
    enabled: bool = Field(True)
    excluded_urls: str = Field("metrics,health,info")


class BugsnagSettings(BaseModel):
    api_key: str
    release_stage: str = Field("development")

    @field_validator("release_stage")
    @classmethod
    def _validate_bugsnag_release_stage(cls, v):
        if v not in ["development", "production", "local"]:
            raise ValueError(f'invalid bugsnag release stage "{v}"')
        return v


class RegistrySettings(BaseModel):
    """Registry-wide payment and catalog configuration.

    Attributes:
        wallet: Address every payment demand asks to be paid to
        fee_bps: Platform fee in basis points (1000 = 10%)
        seed: Insert the built-in agents and endpoints at startup when absent
        public_base_url: Base URL used in links handed out to callers
        network: Chain the registry settles on
    """

    wallet: str = Field("SP2QXPFF4M72QYZWXE7S5321XJDJ2DD32DGEMN5QA")
    fee_bps: int = Field(1000, ge=0, le=10_000)
    seed: bool = Field(True)
    public_base_url: str = Field("https://x402.registry")
    network: str = Field("stacks-mainnet")
    version: str = Field("1.0.0")


class ExecutionMode(StrEnum):
    SIMULATED = "simulated"
    HTTP = "http"


class ExecutionSettings(BaseModel):
    """Agent invocation configuration. Durations are in seconds."""

    mode: ExecutionMode = Field(ExecutionMode.SIMULATED)
    call_timeout: float = Field(10.0, gt=0)
    overall_timeout: float = Field(30.0, gt=0)
    retry_attempts: int = Field(3, ge=1)
    retry_backoff: float = Field(0.2, ge=0)
    retry_max_backoff: float = Field(2.0, ge=0)


class PaymentVerificationMode(StrEnum):
    TRUST = "trust"
    STACKS = "stacks"


class PaymentSettings(BaseModel):
    verification: PaymentVerificationMode = Field(PaymentVerificationMode.TRUST)
    stacks_api_url: str = Field("https://api.mainnet.hiro.so")
    timeout: float = Field(10.0, gt=0)
    probe_timeout: float = Field(5.0, gt=0)


class Settings(pydantic_settings.BaseSettings):
    model_config = pydantic_settings.SettingsConfigDict(env_nested_delimiter="__")

    app_http: AppHTTPSettings
    opentelemetry: OpenTelemetrySettings
    bugsnag: BugsnagSettings

    # Database configuration; agents and endpoints live in memory without it
    primary_db: DBConnectionSettings | None = None

    registry: RegistrySettings = RegistrySettings()
    execution: ExecutionSettings = ExecutionSettings()
    payments: PaymentSettings = PaymentSettings()
