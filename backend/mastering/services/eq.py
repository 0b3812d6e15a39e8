"""Stage 2: post-mastering EQ enhancement.

Stage 2 never fails a job. Whatever goes wrong inside the EQ engine, the
caller gets the Stage 1 file back and a note of what happened.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

from ..config import MasteringConfig
from ..errors import EQError

logger = logging.getLogger(__name__)

EQ_BANDS = ("bass", "low_mid", "mid", "high_mid", "treble")


class EQEngine(Protocol):
    def enhance(self, input_path: Path, settings: "EQSettings") -> Path:
        ...


def _band_gain(band: str, value: Any) -> float:
    # Presets store either a bare number or {"gain": n}
    if isinstance(value, Mapping):
        if "gain" not in value:
            raise EQError(f"Invalid EQ settings for band: {band}")
        value = value["gain"]
    try:
        return float(value or 0.0)
    except (TypeError, ValueError) as exc:
        raise EQError(f"Invalid EQ settings for band: {band}") from exc


@dataclass(frozen=True)
class EQSettings:
    enabled: bool = False
    bass: float = 0.0
    low_mid: float = 0.0
    mid: float = 0.0
    high_mid: float = 0.0
    treble: float = 0.0

    @classmethod
    def from_mapping(cls, data: Any) -> Optional["EQSettings"]:
        """Build settings from a preset's ``post_eq`` block; ``None`` when absent."""
        if not data:
            return None
        if not isinstance(data, Mapping):
            raise EQError(f"Invalid EQ settings: expected a mapping, got {type(data).__name__}")
        gains = {band: _band_gain(band, data.get(band)) for band in EQ_BANDS}
        return cls(enabled=bool(data.get("enabled", False)), **gains)

    def gains(self) -> Dict[str, float]:
        return {band: getattr(self, band) for band in EQ_BANDS}

    def as_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, **self.gains()}

    def validate(self, min_gain_db: float, max_gain_db: float) -> None:
        for band, gain in self.gains().items():
            if gain < min_gain_db or gain > max_gain_db:
                raise EQError(
                    f"Gain value out of range for band: {band} ({gain} dB not in [{min_gain_db}, {max_gain_db}])"
                )


@dataclass(frozen=True)
class EQResult:
    output_path: Path
    applied: bool
    elapsed: float = 0.0
    skipped_reason: Optional[str] = None
    error: Optional[str] = None


class EQEnhancer:
    def __init__(self, config: MasteringConfig, engine: EQEngine) -> None:
        self.config = config
        self.engine = engine

    def skip_reason(self, settings: Optional[EQSettings]) -> Optional[str]:
        if not self.config.eq_enabled:
            return "EQ processing disabled"
        if settings is None:
            return "No EQ settings"
        if not settings.enabled:
            return "EQ disabled in preset"
        return None

    def enhance(self, stage1_path: Path, settings: Optional[EQSettings]) -> EQResult:
        reason = self.skip_reason(settings)
        if reason:
            logger.info("Stage 2: skipping EQ processing (%s)", reason)
            return EQResult(output_path=stage1_path, applied=False, skipped_reason=reason)

        logger.info("Stage 2: starting EQ enhancement with %s", settings.as_dict())
        started = time.monotonic()
        try:
            enhanced = Path(self.engine.enhance(stage1_path, settings))
            if enhanced == stage1_path or not enhanced.is_file():
                raise EQError("EQ engine did not produce a separate output file")
        except Exception as exc:
            logger.warning("Stage 2: EQ processing failed, using AI-only version: %s", exc, exc_info=True)
            return EQResult(
                output_path=stage1_path,
                applied=False,
                elapsed=time.monotonic() - started,
                error=str(exc)[:500] or type(exc).__name__,
            )

        elapsed = time.monotonic() - started
        logger.info("Stage 2: EQ enhancement completed in %.2fs (%s bytes)", elapsed, enhanced.stat().st_size)
        return EQResult(output_path=enhanced, applied=True, elapsed=elapsed)
