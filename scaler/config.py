from __future__ import annotations

import enum
import logging
import math
import re
import threading
from dataclasses import dataclass, replace

LOGGER = logging.getLogger("prombench_scaler.config")

STEP_COUNT = 10

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class ScalerError(Exception):
    """Base class for every error raised by the scaler."""


class ConfigError(ScalerError):
    """Raised when the scale command cannot be built from the given input."""


class ScalePattern(str, enum.Enum):
    BURST = "burst"
    STEP = "step"

    @classmethod
    def parse(cls, name: str) -> "ScalePattern":
        try:
            return cls(name.strip().lower())
        except ValueError:
            available = ", ".join(pattern.value for pattern in cls)
            raise ConfigError(
                f"invalid pattern: {name!r} (available: {available})"
            ) from None


@dataclass(frozen=True)
class ScaleCommand:
    """Replica bounds, pacing and pattern for one oscillation run."""

    pattern: ScalePattern
    min: int
    max: int
    interval_s: float
    step_factor: int = 0

    def __post_init__(self) -> None:
        if self.min < 0:
            raise ConfigError(f"min replicas must be >= 0, got {self.min}")
        if self.max < self.min:
            raise ConfigError(
                f"max replicas ({self.max}) must be >= min replicas ({self.min})"
            )
        if not math.isfinite(self.interval_s) or self.interval_s < 0:
            raise ConfigError(f"interval must be >= 0, got {self.interval_s}")
        if self.step_factor < 0:
            raise ConfigError(f"step factor must be >= 0, got {self.step_factor}")

    def clamp(self, replicas: int) -> int:
        return max(self.min, min(self.max, replicas))

    def with_derived_step_factor(self) -> "ScaleCommand":
        """Return a copy whose step factor is usable for the step pattern.

        An unset factor, or one that would overshoot ``max`` in a single
        step, is replaced by ``max // 10`` so the ramp takes ten steps.
        """
        update = False
        if self.step_factor >= self.max:
            LOGGER.info("scalingFactor (%d) >= max (%d)", self.step_factor, self.max)
            update = True
        if self.step_factor == 0:
            LOGGER.info("scalingFactor is set to 0.")
            update = True
        if not update:
            return self

        factor = self.max // STEP_COUNT
        LOGGER.info("Updating the scaling factor to: %d", factor)
        if factor == 0:
            LOGGER.warning(
                "max (%d) is below %d; the step pattern will hold at min (%d)",
                self.max,
                STEP_COUNT,
                self.min,
            )
        return replace(self, step_factor=factor)


def parse_duration(value: str) -> float:
    """Parse a Go style duration ("1h30m", "15s", "500ms") into seconds.

    Bare numbers are taken as seconds.
    """
    text = value.strip()
    if not text:
        raise ConfigError("empty duration")
    try:
        return _checked_seconds(float(text), value)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position != len(text) or position == 0:
        raise ConfigError(f"invalid duration: {value!r}")
    return _checked_seconds(total, value)


def build_command(
    pattern: str,
    max_replicas: int,
    min_replicas: int,
    interval: str,
    step_factor: int | None = None,
) -> ScaleCommand:
    return ScaleCommand(
        pattern=ScalePattern.parse(pattern),
        min=min_replicas,
        max=max_replicas,
        interval_s=parse_duration(interval),
        step_factor=step_factor or 0,
    )


def _checked_seconds(seconds: float, raw: str) -> float:
    if not math.isfinite(seconds) or seconds < 0 or seconds > threading.TIMEOUT_MAX:
        raise ConfigError(f"invalid duration: {raw!r}")
    return seconds


__all__ = [
    "ConfigError",
    "ScaleCommand",
    "ScalePattern",
    "ScalerError",
    "build_command",
    "parse_duration",
]
