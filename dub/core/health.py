"""Process health telemetry: resource samples, fault counters and update checks."""

from __future__ import annotations

import platform
import sys
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import psutil

from dub import __version__
from dub.core.config import DEFAULT_UPDATE_CHECK_INTERVAL_MS
from dub.core.timers import RepeatingTimer

SAMPLE_INTERVAL_SECONDS = 5 * 60
MAX_SAMPLES = 288  # 24h at the default interval
HEAP_WARNING_BYTES = 500 * 1024 * 1024


@dataclass(frozen=True)
class MetricSample:
    timestamp: float
    heap_used: int
    heap_total: int
    external: int
    rss: int
    cpu_user: float
    cpu_system: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class HealthThresholds:
    """Policy limits for the health verdict."""

    max_crashes: int = 5
    max_error_rate: float = 0.1  # errors per second since start


@dataclass(frozen=True)
class HealthStatus:
    healthy: bool
    uptime: float
    errors: int
    crashes: int
    error_rate: float

    def to_dict(self) -> dict:
        return asdict(self)


def read_process_sample(process=None) -> MetricSample:
    """Sample memory and CPU counters for the current process.

    ``heap_used`` is private resident memory (rss minus shared pages where the
    platform reports them); ``external`` is the shared portion.
    """
    proc = process or psutil.Process()
    mem = proc.memory_info()
    cpu = proc.cpu_times()
    shared = getattr(mem, "shared", 0)
    return MetricSample(
        timestamp=time.time(),
        heap_used=mem.rss - shared,
        heap_total=mem.vms,
        external=shared,
        rss=mem.rss,
        cpu_user=cpu.user,
        cpu_system=cpu.system,
    )


def _version_of(info):
    if isinstance(info, dict):
        return info.get("version")
    return getattr(info, "version", None)


class HealthMonitor:
    """Collects metric samples on a timer and derives a binary health verdict."""

    def __init__(
        self,
        log,
        thresholds: HealthThresholds | None = None,
        sample_interval: float = SAMPLE_INTERVAL_SECONDS,
        max_samples: int = MAX_SAMPLES,
        heap_warning_bytes: int = HEAP_WARNING_BYTES,
        update_checks_enabled: bool = False,
        update_check_interval_ms: int = DEFAULT_UPDATE_CHECK_INTERVAL_MS,
        sampler=read_process_sample,
        clock=time.monotonic,
    ):
        self.log = log
        self.thresholds = thresholds or HealthThresholds()
        self.heap_warning_bytes = heap_warning_bytes
        self.update_checks_enabled = update_checks_enabled
        self.update_check_interval_ms = update_check_interval_ms
        self._sampler = sampler
        self._clock = clock
        self._lock = threading.Lock()

        self.start_time = clock()
        self.errors = 0
        self.crashes = 0
        self.samples: deque[MetricSample] = deque(maxlen=max_samples)

        self._updater = None
        self._sample_timer = RepeatingTimer(sample_interval, self.collect_metrics, name="dub-health")
        self._update_timer = RepeatingTimer(
            update_check_interval_ms / 1000.0, self.check_for_updates, name="dub-updates"
        )

    # ---- lifecycle ----

    def start(self):
        """Take an initial sample and start the periodic timers."""
        self.collect_metrics()
        self._sample_timer.start()
        if self._updater is not None:
            self.check_for_updates()
            self._update_timer.start()

    def stop(self):
        self._sample_timer.stop()
        self._update_timer.stop()

    # ---- sampling ----

    def collect_metrics(self):
        """Append one sample; the ring drops the oldest beyond its capacity."""
        try:
            sample = self._sampler()
        except Exception as exc:
            self.log.error("Failed to collect metrics", {"error": str(exc)})
            return None

        with self._lock:
            self.samples.append(sample)

        if sample.heap_used > self.heap_warning_bytes:
            heap_used_mb = sample.heap_used / 1024 / 1024
            self.log.warn("High memory usage detected", {"heap_used_mb": f"{heap_used_mb:.2f}"})
        return sample

    # ---- counters ----

    def record_error(self):
        with self._lock:
            self.errors += 1
            total = self.errors
        self.log.debug("Error recorded", {"total_errors": total})

    def record_crash(self):
        with self._lock:
            self.crashes += 1
            total = self.crashes
        self.log.error("Crash recorded", {"total_crashes": total})

    def get_uptime(self) -> float:
        """Seconds since the monitor was created."""
        return self._clock() - self.start_time

    def get_health_status(self) -> HealthStatus:
        uptime = self.get_uptime()
        with self._lock:
            errors, crashes = self.errors, self.crashes

        if uptime > 0:
            error_rate = errors / uptime
        else:
            error_rate = float("inf") if errors else 0.0

        healthy = not (
            crashes > self.thresholds.max_crashes or error_rate > self.thresholds.max_error_rate
        )
        return HealthStatus(
            healthy=healthy,
            uptime=uptime,
            errors=errors,
            crashes=crashes,
            error_rate=error_rate,
        )

    # ---- reporting ----

    @staticmethod
    def system_info() -> dict:
        return {
            "version": __version__,
            "platform": sys.platform,
            "arch": platform.machine(),
            "python_version": platform.python_version(),
            "implementation": platform.python_implementation(),
        }

    def get_metrics(self) -> dict:
        with self._lock:
            samples = [s.to_dict() for s in self.samples]
            errors, crashes = self.errors, self.crashes
        return {
            "errors": errors,
            "crashes": crashes,
            "samples": samples,
            "uptime": self.get_uptime(),
            **self.system_info(),
        }

    def generate_report(self) -> dict:
        """Build a health snapshot and log it at info level."""
        health = self.get_health_status()
        with self._lock:
            latest = self.samples[-1].to_dict() if self.samples else None
        report = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "health": health.to_dict(),
            "system": self.system_info(),
            "performance": {
                "uptime": health.uptime,
                "errors": health.errors,
                "crashes": health.crashes,
                "latest_sample": latest,
            },
        }
        self.log.info("Health report generated", report)
        return report

    # ---- updater delegation ----

    def attach_updater(self, updater) -> bool:
        """Hook the external updater's events into the log. Returns True when active."""
        if not self.update_checks_enabled:
            self.log.debug("Update checks disabled")
            return False
        updater.set_handlers(
            on_available=self._on_update_available,
            on_downloaded=self._on_update_downloaded,
            on_error=self._on_update_error,
        )
        self._updater = updater
        return True

    def check_for_updates(self):
        if self._updater is None:
            return
        try:
            self._updater.check_for_updates()
        except Exception as exc:
            self._on_update_error(exc)

    def _on_update_available(self, info):
        self.log.info("Update available", {"version": _version_of(info)})

    def _on_update_downloaded(self, info):
        self.log.info("Update downloaded", {"version": _version_of(info)})

    def _on_update_error(self, error):
        self.log.error("Auto-updater error", {"error": str(error)})
