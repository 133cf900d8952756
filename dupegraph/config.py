"""
Module: config
Purpose: Engine configuration, sensitivity presets and startup validation.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Any, FrozenSet

from .exceptions import ConfigError
from .utils import log_info, log_warning

HASH_BITS = 64

# Perceptual Hamming thresholds per preset: (T1 tight band, T2 loose band).
# distance <= T1: strong near-duplicate signal
# T1 < distance <= T2: weak signal, kept only with corroboration
# distance > T2: not a near-duplicate
SENSITIVITY_THRESHOLDS = {
    "conservative": (3, 8),
    "balanced": (4, 10),
    "aggressive": (6, 14),
}
DEFAULT_SENSITIVITY = "balanced"
SENSITIVITY_ENV = "DUPEGRAPH_SENSITIVITY"

ALL_METHODS = frozenset({"exact", "perceptual", "exif", "filename"})
REDUNDANT_POLICIES = ("review", "delete", "link")
EXECUTOR_MODES = ("auto", "process", "thread")
EXECUTOR_ENV = "DUPEGRAPH_EXECUTOR"


def _normalize_sensitivity(value: str | None) -> str | None:
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized in SENSITIVITY_THRESHOLDS:
        return normalized
    return None


@dataclass(frozen=True)
class EngineConfig:
    """
    Tunable thresholds and policies consumed by every pipeline stage.
    """

    tight_distance: int = SENSITIVITY_THRESHOLDS[DEFAULT_SENSITIVITY][0]
    loose_distance: int = SENSITIVITY_THRESHOLDS[DEFAULT_SENSITIVITY][1]
    merge_threshold: float = 0.5
    auto_confidence: float = 0.6
    delete_confidence: float = 1.0
    methods: FrozenSet[str] = field(default_factory=lambda: ALL_METHODS)
    redundant_policy: str = "review"
    dry_run: bool = True
    timestamp_tolerance_seconds: float = 2.0
    filename_overlap: float = 0.5
    max_workers: int | None = None
    batch_size: int = 64
    read_attempts: int = 3
    read_backoff_seconds: float = 0.05
    index_shards: int = 16
    # Library default stays in-process; build_config resolves "auto" from the env.
    executor: str = "thread"

    def uses(self, method: str) -> bool:
        return method in self.methods

    def validate(self) -> "EngineConfig":
        """
        Check invariants before any file is touched.

        Raises:
            ConfigError: On the first invalid value.
        """
        if not 0 <= self.tight_distance <= self.loose_distance:
            raise ConfigError(
                f"Perceptual thresholds must satisfy 0 <= T1 <= T2 "
                f"(got T1={self.tight_distance}, T2={self.loose_distance})"
            )
        if self.loose_distance >= HASH_BITS:
            raise ConfigError(f"T2 must be below the hash width ({HASH_BITS} bits)")
        if not 0.0 < self.merge_threshold < 1.0:
            raise ConfigError(f"merge_threshold must be in (0, 1), got {self.merge_threshold}")
        for name in ("auto_confidence", "delete_confidence"):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                raise ConfigError(f"{name} must be in (0, 1], got {value}")
        if self.delete_confidence < self.auto_confidence:
            raise ConfigError("delete_confidence must not be lower than auto_confidence")
        unknown = set(self.methods) - ALL_METHODS
        if unknown:
            raise ConfigError(f"Unknown detection methods: {', '.join(sorted(unknown))}")
        if not self.methods & {"exact", "perceptual"}:
            raise ConfigError("At least one of the exact or perceptual methods must be enabled")
        if self.redundant_policy not in REDUNDANT_POLICIES:
            raise ConfigError(
                f"redundant_policy must be one of {', '.join(REDUNDANT_POLICIES)}, "
                f"got '{self.redundant_policy}'"
            )
        if self.timestamp_tolerance_seconds < 0:
            raise ConfigError("timestamp_tolerance_seconds must not be negative")
        if not 0.0 < self.filename_overlap <= 1.0:
            raise ConfigError("filename_overlap must be in (0, 1]")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1")
        if self.batch_size < 1 or self.read_attempts < 1 or self.index_shards < 1:
            raise ConfigError("batch_size, read_attempts and index_shards must be at least 1")
        if self.read_backoff_seconds < 0:
            raise ConfigError("read_backoff_seconds must not be negative")
        if self.executor not in EXECUTOR_MODES:
            raise ConfigError(
                f"executor must be one of {', '.join(EXECUTOR_MODES)}, got '{self.executor}'"
            )
        return self


def _resolve_executor(requested: str | None) -> tuple[str, str]:
    if requested is not None:
        mode = requested.strip().lower()
        if mode not in EXECUTOR_MODES:
            raise ConfigError(
                f"Unknown executor '{requested}'. Expected one of {', '.join(EXECUTOR_MODES)}."
            )
        return mode, "cli"
    env_value = os.getenv(EXECUTOR_ENV)
    if env_value:
        mode = env_value.strip().lower()
        if mode in EXECUTOR_MODES:
            return mode, "env"
        log_warning(
            f"Ignoring invalid {EXECUTOR_ENV} value '{env_value}'. "
            f"Expected one of {', '.join(EXECUTOR_MODES)}."
        )
    return "auto", "default"


def build_config(
    sensitivity: str | None = None,
    executor: str | None = None,
    **overrides: Any,
) -> EngineConfig:
    """
    Build a validated configuration.
    Preference order for the preset and the executor: argument > environment
    variable > default ("balanced", "auto").
    Explicit keyword overrides always win over the preset thresholds.

    Raises:
        ConfigError: If the preset or any value is invalid.
    """
    source = "default"
    preset = DEFAULT_SENSITIVITY
    if sensitivity is not None:
        normalized = _normalize_sensitivity(sensitivity)
        if normalized is None:
            raise ConfigError(
                f"Unknown sensitivity '{sensitivity}'. "
                f"Expected one of {', '.join(SENSITIVITY_THRESHOLDS)}."
            )
        preset = normalized
        source = "cli"
    else:
        env_value = os.getenv(SENSITIVITY_ENV)
        if env_value:
            normalized = _normalize_sensitivity(env_value)
            if normalized is None:
                log_warning(
                    f"Ignoring invalid {SENSITIVITY_ENV} value '{env_value}'. "
                    f"Expected one of {', '.join(SENSITIVITY_THRESHOLDS)}."
                )
            else:
                preset = normalized
                source = "env"

    executor, executor_source = _resolve_executor(executor)
    tight, loose = SENSITIVITY_THRESHOLDS[preset]
    if "methods" in overrides and overrides["methods"] is not None:
        overrides["methods"] = frozenset(overrides["methods"])
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        config = replace(
            EngineConfig(tight_distance=tight, loose_distance=loose, executor=executor), **values
        )
    except TypeError as exc:
        raise ConfigError(f"Invalid configuration option: {exc}") from exc
    config.validate()
    log_info(
        f"Configuration: sensitivity={preset} (source={source}), "
        f"T1={config.tight_distance}, T2={config.loose_distance}, "
        f"merge={config.merge_threshold}, policy={config.redundant_policy}, "
        f"executor={config.executor} (source={executor_source})"
    )
    return config
