from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .logging import get_logger
from .types import LoadContext, SkillLoadError, SkillsSnapshot

METRIC_NAMES: tuple[str, ...] = (
    "skills_discovered_total",
    "skills_load_errors_total",
    "skills_load_latency_ms",
    "loadSkill_calls_total",
)


@dataclass
class SkillsMetrics:
    lock: threading.Lock = field(default_factory=threading.Lock)
    values: dict[str, float] = field(default_factory=dict)

    def increment(self, name: str, value: float = 1) -> None:
        with self.lock:
            self.values[name] = self.values.get(name, 0) + value

    def snapshot(self) -> dict[str, float]:
        with self.lock:
            return dict(self.values)

    def reset(self) -> None:
        with self.lock:
            self.values.clear()

    def render_prometheus(self) -> str:
        with self.lock:
            values = dict(self.values)
        lines: list[str] = []
        for name in METRIC_NAMES:
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {values.get(name, 0):g}")
        return "\n".join(lines) + "\n"


class SkillsTelemetry:
    """Counters plus structured events on the ``openchat_skills.telemetry`` logger.

    Emission is best-effort: sink failures never reach the caller.
    """

    def __init__(self, logger: logging.Logger | None = None, metrics: SkillsMetrics | None = None):
        self.logger = logger or get_logger("openchat_skills.telemetry")
        self.metrics = metrics or SkillsMetrics()

    def log_event(self, event: str, payload: dict[str, Any]) -> None:
        line = {
            "namespace": "skills",
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        try:
            self.logger.info(event, extra={"skills": line})
        except Exception:
            pass

    def record_snapshot(self, snapshot: SkillsSnapshot, duration_ms: float) -> None:
        self.metrics.increment("skills_discovered_total", len(snapshot.skills))
        self.metrics.increment("skills_load_errors_total", len(snapshot.errors))
        self.metrics.increment("skills_load_latency_ms", duration_ms)

        self.log_event(
            "skills_snapshot_loaded",
            {
                "duration_ms": duration_ms,
                "discovered_skills": len(snapshot.skills),
                "error_count": len(snapshot.errors),
                "source_stats": {k: v.to_public_dict() for k, v in snapshot.source_stats.items()},
            },
        )
        for error in snapshot.errors:
            self.log_event(
                "skills_snapshot_error",
                {
                    "error_code": error.code,
                    "source": error.source,
                    "path": error.path,
                    "skill_name": error.skill_name,
                    "reason": error.reason,
                },
            )

    def record_load_invocation(
        self,
        skill_name: str,
        ok: bool,
        duration_ms: float,
        error: SkillLoadError | Exception | None = None,
        context: LoadContext | None = None,
    ) -> None:
        self.metrics.increment("loadSkill_calls_total", 1)

        if isinstance(error, SkillLoadError):
            error_code: str | None = error.code
            error_message: str | None = error.reason
        elif error is not None:
            error_code = "runtime_error"
            error_message = str(error)
        else:
            error_code = None
            error_message = None

        self.log_event(
            "load_skill_invocation",
            {
                "skill_name": skill_name,
                "source": context.source if context else None,
                "invoked_tool_name": context.invoked_tool_name if context else None,
                "ok": bool(ok),
                "duration_ms": duration_ms,
                "error_code": error_code,
                "error_message": error_message,
            },
        )
