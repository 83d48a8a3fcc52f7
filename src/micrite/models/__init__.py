"""
Pydantic configuration models for micrite.
"""

from micrite.models.config import (
    DeaconConfig,
    HitThresholds,
    KrakenConfig,
    ReadQualityConfig,
    ScreenConfig,
)

__all__ = [
    "DeaconConfig",
    "HitThresholds",
    "KrakenConfig",
    "ReadQualityConfig",
    "ScreenConfig",
]
