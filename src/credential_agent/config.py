"""AgentConfig — process configuration read from the environment.

All settings are read once at startup. Missing required variables are
reported together in a single :class:`~credential_agent.errors.ConfigurationError`
so an operator can fix them in one pass.

Environment variables
---------------------
==========================  ========  ==============================================
Name                        Required  Default
==========================  ========  ==============================================
``ISSUER_ID``               yes
``ISSUER_ALIAS``            no        ``demo``
``CHEQD_NETWORK``           no        network segment of ``ISSUER_ID``
``NETWORK_RPC_URL``         yes
``COSMOS_PAYER_MNEMONIC``   yes
``RESOLVER_URL``            no        ``https://resolver.cheqd.net/1.0/identifiers/``
``UNIVERSAL_RESOLVER_URL``  no        ``https://dev.uniresolver.io/1.0/identifiers/``
``VERIDA_ENVIRONMENT``      no        ``testnet``
``VERIDA_APP_NAME``         yes
``VERIDA_ACCOUNT_KEY``      yes
``VERIDA_CHAIN_KEY``        yes
``HTTP_TIMEOUT``            no        ``10`` (seconds)
``RESOLUTION_CACHE_TTL``    no        ``300`` (seconds, ``0`` disables the cache)
``AUDIT_LOG_PATH``          no        unset (in-memory audit buffer)
==========================  ========  ==============================================
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from credential_agent.did.cheqd import DEFAULT_CHEQD_RESOLVER_URL
from credential_agent.did.network import NetworkType, network_from_did, validate_network
from credential_agent.did.resolution import DEFAULT_UNIVERSAL_RESOLVER_URL
from credential_agent.errors import ConfigurationError, InvalidNetworkError
from credential_agent.messaging.gateway import VeridaEnvironment

REQUIRED_VARIABLES: tuple[str, ...] = (
    "ISSUER_ID",
    "NETWORK_RPC_URL",
    "COSMOS_PAYER_MNEMONIC",
    "VERIDA_APP_NAME",
    "VERIDA_ACCOUNT_KEY",
    "VERIDA_CHAIN_KEY",
)


class AgentConfig(BaseModel):
    """Validated agent settings.

    Secrets are :class:`pydantic.SecretStr`; their values never appear in
    ``repr`` or logs.
    """

    model_config = ConfigDict(frozen=True)

    issuer_id: str
    issuer_alias: str = "demo"
    cheqd_network: NetworkType
    network_rpc_url: str
    cosmos_payer_mnemonic: SecretStr
    resolver_url: str = DEFAULT_CHEQD_RESOLVER_URL
    universal_resolver_url: str = DEFAULT_UNIVERSAL_RESOLVER_URL
    verida_environment: VeridaEnvironment = VeridaEnvironment.TESTNET
    verida_app_name: str
    verida_account_key: SecretStr
    verida_chain_key: SecretStr
    http_timeout: float = Field(default=10.0, gt=0)
    resolution_cache_ttl: float = Field(default=300.0, ge=0)
    audit_log_path: Path | None = None

    @field_validator("issuer_id")
    @classmethod
    def issuer_id_is_did(cls, value: str) -> str:
        if not value.startswith("did:"):
            raise ValueError(f"ISSUER_ID must be a DID, got {value!r}")
        return value

    @field_validator("network_rpc_url", "resolver_url", "universal_resolver_url")
    @classmethod
    def is_http_url(cls, value: str) -> str:
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ValueError(f"Not a valid URL: {value!r} ({exc})") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"Expected an http(s) URL, got {value!r}")
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AgentConfig":
        """Build the configuration from *environ* (``os.environ`` by default).

        Raises
        ------
        ConfigurationError
            If required variables are missing or any value is invalid.
        """
        env = os.environ if environ is None else environ
        missing = [name for name in REQUIRED_VARIABLES if not env.get(name, "").strip()]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing=missing,
            )

        issuer_id = env["ISSUER_ID"].strip()
        try:
            network_name = env.get("CHEQD_NETWORK", "").strip()
            network = validate_network(network_name) if network_name else network_from_did(issuer_id)
        except InvalidNetworkError as exc:
            raise ConfigurationError(f"Invalid cheqd network: {exc}") from exc

        values: dict[str, object] = {
            "issuer_id": issuer_id,
            "cheqd_network": network,
            "network_rpc_url": env["NETWORK_RPC_URL"].strip(),
            "cosmos_payer_mnemonic": env["COSMOS_PAYER_MNEMONIC"],
            "verida_app_name": env["VERIDA_APP_NAME"].strip(),
            "verida_account_key": env["VERIDA_ACCOUNT_KEY"].strip(),
            "verida_chain_key": env["VERIDA_CHAIN_KEY"].strip(),
        }
        optional = {
            "issuer_alias": "ISSUER_ALIAS",
            "resolver_url": "RESOLVER_URL",
            "universal_resolver_url": "UNIVERSAL_RESOLVER_URL",
            "verida_environment": "VERIDA_ENVIRONMENT",
            "http_timeout": "HTTP_TIMEOUT",
            "resolution_cache_ttl": "RESOLUTION_CACHE_TTL",
            "audit_log_path": "AUDIT_LOG_PATH",
        }
        for field_name, variable in optional.items():
            value = env.get(variable, "").strip()
            if value:
                values[field_name] = value

        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc


__all__ = ["AgentConfig", "REQUIRED_VARIABLES"]
