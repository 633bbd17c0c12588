from __future__ import annotations
import os
from eth_utils import is_address
from loguru import logger
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from ..domain.errors import ConfigError
from ..domain.models import PoolInfo
from ..domain.value_types import Address


class _PoolEntry(BaseModel):
    address: str
    name: str = ""
    points_multiplier: int = Field(ge=0, validation_alias=AliasChoices("pointsMultiplier", "pillsMultiplier"))

    @field_validator("address")
    @classmethod
    def _check_address(cls, v: str) -> str:
        if not is_address(v.lower()):
            raise ValueError(f"invalid pool address {v!r}")
        return v.lower()

    @field_validator("points_multiplier", mode="before")
    @classmethod
    def _decimal_string(cls, v: object) -> object:
        if isinstance(v, str):
            s = v.strip()
            if not s.isdigit():
                raise ValueError(f"multiplier must be an unsigned decimal integer, got {v!r}")
            return int(s)
        return v


class _PoolFile(BaseModel):
    dataSources: list[_PoolEntry] = Field(default_factory=list)


def parse_pools(raw: str | bytes) -> dict[Address, PoolInfo]:
    """Parse a `{"dataSources": [...]}` document into a table keyed by lowercase address."""
    try:
        doc = _PoolFile.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid pool table: {e}") from e
    out: dict[Address, PoolInfo] = {}
    for p in doc.dataSources:
        addr = Address(p.address)
        if addr in out:
            logger.warning(f"Pool {addr} listed twice; keeping the last entry")
        out[addr] = PoolInfo(address=addr, name=p.name, points_multiplier=p.points_multiplier)
    return out


def load_pools(path: str) -> dict[Address, PoolInfo]:
    if not os.path.isfile(path):
        raise ConfigError(f"pool table not found: {path}")
    with open(path, "rb") as f:
        pools = parse_pools(f.read())
    logger.info(f"Loaded {len(pools)} pools from {path}")
    return pools

