"""Limiter option models.

Options are immutable once a limiter is built. Overrides passed to a limiter
constructor are merged over the strategy defaults and validated in one step,
so a partial set of overrides is checked against the same constraints as a
full one.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hitguard.app.exceptions import LimiterConfigError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ONE_MS = timedelta(milliseconds=1)


class _LimiterOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Maximum amount of hits in the window (or tokens in the bucket)
    limit: int = Field(default=1, gt=0, strict=True)


class _AnchoredWindowOptions(_LimiterOptions):
    # Window size in ms
    window_size_ms: int = Field(default=60_000, gt=0, strict=True)
    # First window start, e.g. start of the day
    start_date: datetime = Field(default=EPOCH, strict=True)

    @field_validator("start_date")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Interpret naive datetimes as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def start_ms(self) -> int:
        """``start_date`` as integer epoch milliseconds."""
        return (self.start_date - EPOCH) // _ONE_MS


class FixedWindowOptions(_AnchoredWindowOptions):
    limit: int = Field(default=1, gt=0, strict=True)
    key_prefix: str = Field(default="fixed_window_limiter", strict=True)


class FloatingWindowOptions(_AnchoredWindowOptions):
    limit: int = Field(default=1, gt=0, strict=True)
    key_prefix: str = Field(default="floating_window_limiter", strict=True)


class SlidingWindowOptions(_LimiterOptions):
    limit: int = Field(default=20, gt=0, strict=True)
    window_size_ms: int = Field(default=60_000, gt=0, strict=True)
    key_prefix: str = Field(default="sliding_window_limiter", strict=True)


class TokenBucketOptions(_LimiterOptions):
    limit: int = Field(default=5, gt=0, strict=True)
    # Interval in ms at which ``refill_rate`` tokens are added
    refill_interval_ms: int = Field(default=10_000, gt=0, strict=True)
    # Tokens added per interval, may be fractional
    refill_rate: float = Field(default=1.0, gt=0, strict=True)
    key_prefix: str = Field(default="token_bucket_limiter", strict=True)


class InMemoryWindowOptions(_AnchoredWindowOptions):
    limit: int = Field(default=20, gt=0, strict=True)


OptionsT = TypeVar("OptionsT", bound=_LimiterOptions)


def build_options(
    options_cls: Type[OptionsT], owner: str, overrides: Mapping[str, Any]
) -> OptionsT:
    """Validate ``overrides`` and merge them over the defaults of ``options_cls``.

    Raises:
        LimiterConfigError: If any override is of the wrong type, non-positive
            where a positive number is required, or unknown.
    """
    try:
        return options_cls(**overrides)
    except ValidationError as e:
        raise LimiterConfigError(owner, e.errors(include_url=False)) from e
