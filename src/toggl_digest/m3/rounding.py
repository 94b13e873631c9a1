from __future__ import annotations

from dataclasses import dataclass

INCREMENTS_H = (0.25, 0.5, 0.75, 1.0)
MODES = ("closest", "up", "down")


@dataclass(frozen=True)
class RoundingConfig:
    enabled: bool = False
    increment: float = 0.25
    mode: str = "closest"

    def __post_init__(self) -> None:
        if self.increment not in INCREMENTS_H:
            raise ValueError(f"increment must be one of {INCREMENTS_H} hours")
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {', '.join(MODES)}")

    @property
    def increment_seconds(self) -> int:
        return round(self.increment * 3600)


def round_seconds(seconds: int, cfg: RoundingConfig | None) -> int:
    """Round a duration to the configured increment.

    Works on whole seconds so results are exact. `closest` breaks ties away
    from zero; `up`/`down` move to the next/previous increment. The sign is
    kept.
    """
    if cfg is None or not cfg.enabled:
        return seconds

    step = cfg.increment_seconds
    sign = -1 if seconds < 0 else 1
    n = abs(seconds)
    lower = (n // step) * step

    if cfg.mode == "down" or n == lower:
        rounded = lower
    elif cfg.mode == "up":
        rounded = lower + step
    elif (n - lower) * 2 >= step:
        rounded = lower + step
    else:
        rounded = lower

    return sign * rounded
