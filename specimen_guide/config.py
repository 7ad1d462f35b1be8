"""
Engine configuration
====================
Defaults mirror what the bench protocols use: three tries to confirm a
package or tube label, five tries to confirm a scanned strip image.
Overrides come from SPECIMEN_GUIDE_* environment variables.
"""

from __future__ import annotations
from dataclasses import dataclass
import os
from typing import Mapping, Optional

PACKAGE_MAX_ATTEMPTS = 3
IMAGE_MAX_ATTEMPTS = 5
ENV_PREFIX = "SPECIMEN_GUIDE_"

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class EngineConfig:
    package_max_attempts: int = PACKAGE_MAX_ATTEMPTS
    image_max_attempts: int = IMAGE_MAX_ATTEMPTS
    test_mode: bool = False           # answer every prompt with the expected value
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self):
        for name in ("package_max_attempts", "image_max_attempts"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        env = os.environ if environ is None else environ

        def get(name: str):
            return env.get(ENV_PREFIX + name)

        kwargs = {}
        for name in ("package_max_attempts", "image_max_attempts"):
            raw = get(name.upper())
            if raw is not None:
                kwargs[name] = int(raw)
        for name in ("test_mode", "log_json"):
            raw = get(name.upper())
            if raw is not None:
                kwargs[name] = raw.strip().lower() in _TRUE
        if get("LOG_LEVEL"):
            kwargs["log_level"] = get("LOG_LEVEL").upper()
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {
            "package_max_attempts": self.package_max_attempts,
            "image_max_attempts": self.image_max_attempts,
            "test_mode": self.test_mode,
            "log_level": self.log_level,
            "log_json": self.log_json,
        }
