"""Deployment configuration for custody staking."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, PrivateAttr, field_validator, model_validator

from .identity import is_zero_address, normalize_address

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400

_ENV_OVERRIDES: Dict[str, str] = {
    "CUSTODY_CHAIN_ID": "chain_id",
    "CUSTODY_UNBONDING_PERIOD_SECONDS": "unbonding_period_seconds",
    "CUSTODY_MINIMUM_STAKE_TOKENS": "minimum_stake_tokens",
    "CUSTODY_ADMIN_ADDRESS": "admin_address",
}


class DeploymentConfig(BaseModel):
    chain_id: int = Field(..., gt=0, description="Chain the fulfillment proofs are bound to")
    contract_address: str = Field(..., description="Identity of the staking state machine")
    pool_address: str = Field(..., description="Identity of the custody pool")
    token_address: str = Field(..., description="Fungible token held in custody")
    admin_address: str = Field(..., description="Initial administrator")
    token_decimals: int = Field(18, ge=0, le=36)
    minimum_stake_tokens: int = Field(1, gt=0)
    unbonding_period_seconds: int = Field(7 * SECONDS_PER_DAY, ge=0)
    start_paused: bool = True
    attestors: List[str] = Field(default_factory=list)
    threshold: Optional[int] = Field(None, gt=0, lt=2**16)
    log_file: Optional[str] = None
    metrics_namespace: str = "custody"

    _base_path: Path = PrivateAttr(default=Path("."))

    @field_validator("contract_address", "pool_address", "token_address", "admin_address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        address = normalize_address(value)
        if is_zero_address(address):
            raise ValueError("address must not be the zero address")
        return address

    @field_validator("attestors")
    @classmethod
    def _checksum_attestors(cls, value: List[str]) -> List[str]:
        return [normalize_address(member) for member in value]

    @model_validator(mode="after")
    def _check_consistency(self) -> "DeploymentConfig":
        if self.attestors and self.threshold is None:
            raise ValueError("threshold is required when attestors are configured")
        if self.threshold is not None and not self.attestors:
            raise ValueError("attestors are required when a threshold is configured")
        if self.contract_address == self.pool_address:
            raise ValueError("contract_address and pool_address must differ")
        return self

    @property
    def minimum_stake(self) -> int:
        """Staking floor in the token's smallest unit."""

        return self.minimum_stake_tokens * 10**self.token_decimals

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, env: Mapping[str, str] | None = None) -> "DeploymentConfig":
        merged = dict(data)
        for variable, key in _ENV_OVERRIDES.items():
            raw = (env if env is not None else os.environ).get(variable)
            if raw:
                logger.info("Applying environment override", extra={"event": "config_override", "data": {"key": key}})
                merged[key] = raw
        return cls.model_validate(merged)

    @classmethod
    def load(cls, path: Path | str, *, env: Mapping[str, str] | None = None) -> "DeploymentConfig":
        file_path = Path(path)
        data = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError("deployment configuration must be a mapping")
        instance = cls.from_mapping(data, env=env)
        instance._base_path = file_path.parent.resolve()
        return instance

    def resolved_log_file(self) -> Optional[Path]:
        if not self.log_file:
            return None
        return (self._base_path / self.log_file).resolve()


def load_config(path: Path | str) -> DeploymentConfig:
    """Load deployment configuration from disk."""

    return DeploymentConfig.load(path)


__all__ = ["DeploymentConfig", "load_config"]
