"""
Tunable constants for the live answer-sheet scanner.
"""

from dataclasses import dataclass, replace, fields
from typing import Tuple

from livescan.errors import ConfigError


@dataclass(frozen=True)
class ScannerConfig:
    """Every threshold the pipeline uses, with the defaults it was tuned for"""

    # Grading
    marking_threshold: float = 0.51
    confirmation_frames: int = 15

    # Frame loop (seconds between ticks, 10 Hz)
    tick_interval: float = 0.1

    # Binarization
    block_size: int = 21
    threshold_offset: int = 5

    # Anchor candidates
    min_contour_points: int = 8
    min_anchor_area: int = 95
    circularity_range: Tuple[float, float] = (0.8, 1.2)
    max_area_ratio: float = 1.6
    largest_anchors_first: bool = True

    # Physical anchor check: dark disc ringed by white paper
    dark_center_max: int = 120
    light_ring_min: int = 130
    ring_probe_factor: float = 1.1

    # Aligned pixels per layout unit
    alignment_scale: float = 1.0

    # Capture constraints
    camera_width: int = 1280
    camera_height: int = 720
    camera_fps: int = 15
    min_camera_width: int = 640
    min_camera_height: int = 480

    def __post_init__(self):
        self.validate()

    def validate(self):
        if not 0.0 < self.marking_threshold <= 1.0:
            raise ConfigError(f"marking_threshold must be in (0, 1], got {self.marking_threshold}")
        if self.confirmation_frames < 1:
            raise ConfigError(f"confirmation_frames must be >= 1, got {self.confirmation_frames}")
        if self.tick_interval < 0:
            raise ConfigError(f"tick_interval must be >= 0, got {self.tick_interval}")
        if self.block_size < 3 or self.block_size % 2 == 0:
            raise ConfigError(f"block_size must be an odd number >= 3, got {self.block_size}")
        low, high = self.circularity_range
        if not 0 < low < high:
            raise ConfigError(f"circularity_range must be increasing and positive, got {self.circularity_range}")
        if self.max_area_ratio <= 1.0:
            raise ConfigError(f"max_area_ratio must be > 1, got {self.max_area_ratio}")
        if self.alignment_scale <= 0:
            raise ConfigError(f"alignment_scale must be > 0, got {self.alignment_scale}")
        if self.ring_probe_factor <= 0:
            raise ConfigError(f"ring_probe_factor must be > 0, got {self.ring_probe_factor}")

    def with_overrides(self, **overrides) -> "ScannerConfig":
        """Copy with some fields replaced; None values are ignored"""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"Unknown config fields: {', '.join(sorted(unknown))}")

        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


DEFAULT_CONFIG = ScannerConfig()
