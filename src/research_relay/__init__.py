"""Research relay package."""

from .config import EngineConfig, LivenessConfig, RelaySettings, SegmentConfig

__all__ = ["EngineConfig", "LivenessConfig", "RelaySettings", "SegmentConfig"]
