"""Environment-based configuration for the sync service.

All configuration is loaded from environment variables with sensible defaults.
Invalid values cause startup to fail fast.
"""

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ServerConfig:
    """Socket.IO / HTTP server configuration."""

    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    cors_allowed_origins: str = field(
        default_factory=lambda: os.getenv("CORS_ALLOWED_ORIGINS", "*")
    )

    # Timeouts (in seconds)
    ping_interval: int = field(default_factory=lambda: int(os.getenv("WS_PING_INTERVAL", "25")))
    ping_timeout: int = field(default_factory=lambda: int(os.getenv("WS_PING_TIMEOUT", "20")))
    max_buffer_size: int = field(
        default_factory=lambda: int(os.getenv("WS_MAX_BUFFER_SIZE", str(1024 * 1024)))
    )  # 1MB default, control messages are tiny


@dataclass(frozen=True)
class PlaybackConfig:
    """Server-side playback authority configuration."""

    # Periodic beacon while playing (seconds)
    beacon_interval_sec: float = field(
        default_factory=lambda: float(os.getenv("BEACON_INTERVAL_SEC", "5.0"))
    )
    # Host reports older than this are applied without transit extrapolation
    max_report_transit_ms: float = field(
        default_factory=lambda: float(os.getenv("MAX_REPORT_TRANSIT_MS", "2000"))
    )

    def validate(self) -> None:
        if self.beacon_interval_sec <= 0:
            raise ValueError(
                f"BEACON_INTERVAL_SEC must be positive, got {self.beacon_interval_sec}"
            )
        if self.max_report_transit_ms < 0:
            raise ValueError(
                f"MAX_REPORT_TRANSIT_MS must be >= 0, got {self.max_report_transit_ms}"
            )


@dataclass(frozen=True)
class ClockSyncConfig:
    """Client clock calibration configuration."""

    samples_per_round: int = field(
        default_factory=lambda: int(os.getenv("CLOCK_SAMPLES_PER_ROUND", "5"))
    )
    probe_spacing_sec: float = field(
        default_factory=lambda: float(os.getenv("CLOCK_PROBE_SPACING_SEC", "0.15"))
    )
    probe_timeout_sec: float = field(
        default_factory=lambda: float(os.getenv("CLOCK_PROBE_TIMEOUT_SEC", "2.0"))
    )
    recalibration_interval_sec: float = field(
        default_factory=lambda: float(os.getenv("CLOCK_RECALIBRATION_INTERVAL_SEC", "30.0"))
    )

    def validate(self) -> None:
        if not 3 <= self.samples_per_round <= 5:
            raise ValueError(
                f"CLOCK_SAMPLES_PER_ROUND must be between 3 and 5, got {self.samples_per_round}"
            )
        if self.probe_spacing_sec < 0:
            raise ValueError(
                f"CLOCK_PROBE_SPACING_SEC must be >= 0, got {self.probe_spacing_sec}"
            )
        if self.probe_timeout_sec <= 0:
            raise ValueError(
                f"CLOCK_PROBE_TIMEOUT_SEC must be positive, got {self.probe_timeout_sec}"
            )
        if self.recalibration_interval_sec <= 0:
            raise ValueError(
                "CLOCK_RECALIBRATION_INTERVAL_SEC must be positive, "
                f"got {self.recalibration_interval_sec}"
            )


@dataclass(frozen=True)
class DriftConfig:
    """Client drift correction and host reporting configuration."""

    soft_threshold_sec: float = field(
        default_factory=lambda: float(os.getenv("DRIFT_SOFT_THRESHOLD_SEC", "0.25"))
    )
    hard_threshold_sec: float = field(
        default_factory=lambda: float(os.getenv("DRIFT_HARD_THRESHOLD_SEC", "2.0"))
    )
    rate_nudge: float = field(default_factory=lambda: float(os.getenv("DRIFT_RATE_NUDGE", "0.03")))
    reconcile_interval_sec: float = field(
        default_factory=lambda: float(os.getenv("RECONCILE_INTERVAL_SEC", "0.5"))
    )
    host_report_interval_sec: float = field(
        default_factory=lambda: float(os.getenv("HOST_REPORT_INTERVAL_SEC", "2.0"))
    )

    def validate(self) -> None:
        if not 0 < self.soft_threshold_sec < self.hard_threshold_sec:
            raise ValueError(
                "Drift thresholds must satisfy 0 < soft < hard: "
                f"DRIFT_SOFT_THRESHOLD_SEC={self.soft_threshold_sec}, "
                f"DRIFT_HARD_THRESHOLD_SEC={self.hard_threshold_sec}"
            )
        if not 0 < self.rate_nudge < 0.5:
            raise ValueError(f"DRIFT_RATE_NUDGE must be in (0, 0.5), got {self.rate_nudge}")
        if self.reconcile_interval_sec <= 0:
            raise ValueError(
                f"RECONCILE_INTERVAL_SEC must be positive, got {self.reconcile_interval_sec}"
            )
        if self.host_report_interval_sec <= 0:
            raise ValueError(
                f"HOST_REPORT_INTERVAL_SEC must be positive, got {self.host_report_interval_sec}"
            )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability configuration for logging."""

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_json: bool = field(
        default_factory=lambda: os.getenv("LOG_JSON", "true").lower() == "true"
    )


@dataclass(frozen=True)
class SyncServiceConfig:
    """Complete configuration for the sync service.

    Combines all configuration sections with validation.
    """

    server: ServerConfig
    playback: PlaybackConfig
    clock: ClockSyncConfig
    drift: DriftConfig
    observability: ObservabilityConfig

    @classmethod
    def from_env(cls) -> "SyncServiceConfig":
        """Create configuration from environment variables.

        Returns:
            SyncServiceConfig instance with all settings loaded.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            server=ServerConfig(),
            playback=PlaybackConfig(),
            clock=ClockSyncConfig(),
            drift=DriftConfig(),
            observability=ObservabilityConfig(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        self.playback.validate()
        self.clock.validate()
        self.drift.validate()


# Global singleton configuration
_config: SyncServiceConfig | None = None


def get_config() -> SyncServiceConfig:
    """Get the global configuration instance.

    Raises:
        ValueError: If configuration validation fails.
    """
    global _config
    if _config is None:
        _config = SyncServiceConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None


def set_config(config: SyncServiceConfig) -> None:
    """Set the global configuration (for testing).

    Args:
        config: The configuration to use.
    """
    global _config
    _config = config
