from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class DetectionConfig(BaseModel):
    """Thresholds read by every detector on each evaluation cycle.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    buffering_threshold_ms: float = Field(
        500, alias="bufferingThresholdMs", description="Buffer length below this is 'low'"
    )
    quality_degradation_threshold: float = Field(
        0.5,
        alias="qualityDegradationThreshold",
        description="Fractional bitrate drop (0..1) that counts as significant",
    )
    startup_delay_threshold_ms: float = Field(
        2000, alias="startupDelayThresholdMs", description="Startup deadline above this is 'long'"
    )
    bandwidth_fluctuation_threshold_percent: float = Field(
        30,
        alias="bandwidthFluctuationThresholdPercent",
        description="Throughput (max-min)/max spread that counts as a network issue",
    )
    min_sample_size: int = Field(
        1, alias="minSampleSize", description="Batches smaller than this are not evaluated"
    )
    analysis_window_size_ms: int = Field(30000, alias="analysisWindowSizeMs")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def _to_aliases(partial: Mapping[str, Any]) -> Dict[str, Any]:
    by_name = {name: (info.alias or name) for name, info in DetectionConfig.model_fields.items()}
    aliases = set(by_name.values())
    out: Dict[str, Any] = {}
    for key, value in partial.items():
        if key in aliases:
            out[key] = value
        elif key in by_name:
            out[by_name[key]] = value
    return out


class ConfigStore:
    """Holds the single current DetectionConfig.

    ``get`` returns an immutable snapshot; ``update`` overlays a partial
    mapping (keys by wire alias or field name) onto the current value and
    swaps it in atomically. Unknown keys are ignored and no range checks are
    applied here.
    """

    def __init__(self, initial: Optional[DetectionConfig] = None) -> None:
        self._lock = threading.Lock()
        self._current = initial if initial is not None else DetectionConfig()

    def get(self) -> DetectionConfig:
        with self._lock:
            return self._current

    def update(self, partial: Mapping[str, Any]) -> DetectionConfig:
        changes = _to_aliases(partial)
        with self._lock:
            merged = {**self._current.model_dump(by_alias=True), **changes}
            self._current = DetectionConfig.model_validate(merged)
            current = self._current
        logger.info("Anomaly detection configuration updated", extra={"config": current.to_wire()})
        return current


class RuntimeConfig(BaseModel):
    buffer_capacity: int = Field(100, description="Rolling window size (entries)")
    processing_interval_ms: int = Field(1000, description="Cadence of window evaluation")
    simulation_batch_size: int = Field(3, description="Simulation entries that force a flush")
    simulation_flush_ms: int = Field(3000, description="Age after which a simulation batch flushes")
    subscriber_queue_size: int = Field(256, description="Pending pushes kept per event subscriber")
    generator_count: int = Field(20, description="Random entries per synthetic generation")
    request_timeout_sec: int = 10
    max_retries: int = 5
    backoff_base_sec: float = 0.5
    backoff_cap_sec: float = 10.0
    detection: DetectionConfig = Field(default_factory=DetectionConfig)


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])


class AppConfig(BaseModel):
    env: EnvSettings
    runtime: RuntimeConfig

    # Allow tests to pass a plain dict for env; coerce to EnvSettings
    @field_validator("env", mode="before")
    @classmethod
    def _coerce_env(cls, v):  # type: ignore[no-untyped-def]
        if isinstance(v, dict):
            return EnvSettings(**v)
        return v

    @staticmethod
    def load(config_path: Optional[Path] = None) -> "AppConfig":
        env = EnvSettings()  # loads from environment and .env

        runtime = RuntimeConfig()
        if config_path is None:
            default_path = Path("config.yaml")
            config_path = default_path if default_path.exists() else None

        if config_path and Path(config_path).exists():
            with open(config_path, "r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            try:
                runtime = RuntimeConfig(**raw)
            except ValidationError as ve:
                raise ValueError(f"Invalid config.yaml: {ve}")

        return AppConfig(env=env, runtime=runtime)


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load merged configuration from environment and optional YAML."""

    return AppConfig.load(config_path)
