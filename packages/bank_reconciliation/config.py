"""Engine configuration.

The club's current account and the scoring weights are explicit values
handed to the engine; nothing reads a process-wide constant. Entry points
build an :class:`EngineConfig` with :meth:`EngineConfig.from_env` (after
loading ``.env``), library callers may construct one directly.

Environment variables
---------------------
- ``RECON_CURRENT_ACCOUNT``: the account whose movements count toward totals.
- ``RECON_GROUP_TOLERANCE``: amount tolerance for grouping candidates (default 1).
- ``RECON_WEIGHT_AMOUNT`` / ``RECON_WEIGHT_NAME`` / ``RECON_WEIGHT_DATE``:
  relative weights of the relevance sub-scores.
- ``RECON_SIGN_BONUS``: points added when a candidate's direction matches the mode.
- ``RECON_AUTO_THRESHOLD`` / ``RECON_SUGGEST_THRESHOLD``: confidence bands.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .normalizers import normalize_account


class ScoringWeights(BaseModel):
    """Weights of the relevance sub-scores.

    The combined score is the weighted mean of the sub-scores that apply to a
    context. In modes with an expected direction that mean is scaled to
    ``100 - sign_bonus`` and ``sign_bonus`` points are added when the
    candidate flows the expected way.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    amount: float = Field(default=0.4, ge=0)
    name: float = Field(default=0.4, ge=0)
    date: float = Field(default=0.2, ge=0)
    sign_bonus: float = Field(default=10.0, ge=0, lt=100)

    @model_validator(mode="after")
    def _some_weight(self) -> ScoringWeights:
        if self.amount + self.name + self.date <= 0:
            raise ValueError("at least one of amount/name/date weights must be positive")
        return self


_WEIGHT_ENV: dict[str, str] = {
    "amount": "RECON_WEIGHT_AMOUNT",
    "name": "RECON_WEIGHT_NAME",
    "date": "RECON_WEIGHT_DATE",
    "sign_bonus": "RECON_SIGN_BONUS",
}


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {raw!r}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class EngineConfig:
    current_account: str | None = None
    group_tolerance: Decimal = Decimal("1")
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    auto_threshold: float = 80.0
    suggest_threshold: float = 50.0

    def __post_init__(self) -> None:
        if self.current_account is not None:
            object.__setattr__(
                self, "current_account", normalize_account(self.current_account) or None
            )
        if self.suggest_threshold > self.auto_threshold:
            raise ValueError("suggest_threshold must not exceed auto_threshold")

    @classmethod
    def from_env(cls) -> EngineConfig:
        defaults = ScoringWeights()
        raw = {
            field_name: _env_float(var, getattr(defaults, field_name))
            for field_name, var in _WEIGHT_ENV.items()
        }
        try:
            weights = ScoringWeights(**raw)
        except ValidationError as exc:
            fields = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
            names = [var for field_name, var in _WEIGHT_ENV.items() if field_name in fields]
            if not names:
                names = [_WEIGHT_ENV[f] for f in ("amount", "name", "date")]
            detail = exc.errors()[0]["msg"]
            raise ValueError(f"{', '.join(names)}: {detail}") from exc
        return cls(
            current_account=os.getenv("RECON_CURRENT_ACCOUNT") or None,
            group_tolerance=_env_decimal("RECON_GROUP_TOLERANCE", Decimal("1")),
            weights=weights,
            auto_threshold=_env_float("RECON_AUTO_THRESHOLD", 80.0),
            suggest_threshold=_env_float("RECON_SUGGEST_THRESHOLD", 50.0),
        )


__all__ = ["ScoringWeights", "EngineConfig"]
