"""
Rollback control for the pipeline migration.

A rollback forces every request back to the legacy coordinator by setting
the manual override and tripping the circuit breaker. State and history
are persisted to a JSON file so a rollback survives restarts.
"""

import json
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ...logging_config import get_logger
from .flags import CircuitState, ManualOverride, MigrationError, MigrationFeatureFlags

logger = get_logger(__name__)

DEFAULT_STATE_FILE = Path("tmp") / "zero_generator_rollback_state.json"
HISTORY_LIMIT = 100

NotificationHandler = Callable[[str, Dict[str, Any]], None]


class RollbackStateError(MigrationError):
    """Raised for an unknown or invalid rollback state."""

    pass


class RollbackState(Enum):
    ACTIVE = "active"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RollbackManager:
    """Executes, records and clears rollbacks to the legacy pipeline."""

    def __init__(self, feature_flags: MigrationFeatureFlags,
                 state_file_path: Union[str, Path, None] = None,
                 notification_handler: Optional[NotificationHandler] = None,
                 now: Callable[[], datetime] = _utcnow):
        """
        Args:
            feature_flags: Flags the rollback acts on
            state_file_path: JSON state file, ``tmp/zero_generator_rollback_state.json`` by default
            notification_handler: Called with ``(event, data)`` for rollback events
            now: Timezone-aware clock
        """
        self.feature_flags = feature_flags
        self.state_file = Path(state_file_path) if state_file_path else DEFAULT_STATE_FILE
        self.notification_handler = notification_handler
        self._now = now
        self._lock = threading.RLock()

        self._state = RollbackState.ACTIVE
        self._history: List[Dict[str, Any]] = []
        self._scheduled: Optional[Dict[str, Any]] = None
        self._last_updated: Optional[str] = None
        self._load()

    # State

    @property
    def current_state(self) -> RollbackState:
        return self._state

    @property
    def rollback_history(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(entry) for entry in self._history]

    @property
    def is_rolled_back(self) -> bool:
        return self._state == RollbackState.ROLLED_BACK

    def transition_to(self, state: Union[RollbackState, str]) -> None:
        """
        Raises:
            RollbackStateError: ``state`` is not a known rollback state
        """
        try:
            new_state = RollbackState(state) if isinstance(state, str) else state
        except ValueError:
            raise RollbackStateError(f"Unknown rollback state: {state!r}") from None
        if not isinstance(new_state, RollbackState):
            raise RollbackStateError(f"Unknown rollback state: {state!r}")

        logger.info("Rollback state %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    # Recommendation

    def rollback_recommendation(self) -> Dict[str, Any]:
        """Whether a rollback should happen now, and why."""
        if self.is_rolled_back:
            return {"recommended": False, "severity": "info", "reasons": []}

        reasons = []
        breaker = self.feature_flags.circuit_breaker_state
        if breaker != CircuitState.CLOSED:
            reasons.append({
                "trigger": "circuit_breaker_tripped",
                "message": f"Circuit breaker is {breaker.value}",
            })

        if reasons:
            return {"recommended": True, "severity": "critical", "reasons": reasons}

        error_count = self.feature_flags.error_count
        if error_count:
            return {
                "recommended": False,
                "severity": "warning",
                "reasons": [{"trigger": "new_pipeline_errors",
                             "message": f"{error_count} recent new pipeline errors"}],
            }
        return {"recommended": False, "severity": "info", "reasons": []}

    def rollback_recommended(self) -> bool:
        return self.rollback_recommendation()["recommended"]

    # Rollback execution

    def execute_automatic_rollback(self, dry_run: bool = False) -> Dict[str, Any]:
        """Roll back if recommended. ``dry_run`` reports without changing anything."""
        recommendation = self.rollback_recommendation()
        if not recommendation["recommended"]:
            return {"success": False, "type": "automatic",
                    "reason": "Rollback not recommended", "recommendation": recommendation}

        trigger = recommendation["reasons"][0]["trigger"]
        if dry_run:
            logger.info("Dry run: would roll back (%s)", trigger)
            return {"success": True, "dry_run": True, "type": "automatic",
                    "trigger": trigger, "recommendation": recommendation}

        reason = "; ".join(r["message"] for r in recommendation["reasons"])
        return self._execute_rollback("automatic", trigger, reason)

    def execute_emergency_rollback(self, reason: str, operator: Optional[str] = None,
                                   force: bool = False) -> Dict[str, Any]:
        """Roll back immediately. ``force`` repeats the rollback when already rolled back."""
        return self._execute_rollback("manual", "emergency_manual", reason, operator, force)

    def execute_planned_rollback(self, reason: str, scheduled_at: datetime,
                                 operator: Optional[str] = None) -> Dict[str, Any]:
        """Roll back at ``scheduled_at``; a time in the past or now rolls back immediately."""
        if scheduled_at <= self._now():
            return self._execute_rollback("planned", "planned", reason, operator)

        with self._lock:
            self._scheduled = {
                "reason": reason,
                "operator": operator,
                "scheduled_at": scheduled_at.isoformat(),
            }
            self._persist()
        logger.info("Rollback scheduled for %s", scheduled_at.isoformat())
        return {"success": True, "scheduled": True, "scheduled_at": scheduled_at, "reason": reason}

    def run_scheduled_rollback(self) -> Optional[Dict[str, Any]]:
        """Execute a scheduled rollback whose time has come. Returns None if nothing is due."""
        with self._lock:
            scheduled = self._scheduled
            if scheduled is None or datetime.fromisoformat(scheduled["scheduled_at"]) > self._now():
                return None
            self._scheduled = None
        return self._execute_rollback("planned", "planned", scheduled["reason"], scheduled["operator"])

    def _execute_rollback(self, type_: str, trigger: str, reason: str,
                          operator: Optional[str] = None, force: bool = False) -> Dict[str, Any]:
        with self._lock:
            if self.is_rolled_back and not force:
                return {"success": False, "type": type_, "trigger": trigger,
                        "reason": "Already rolled back"}

            started = time.perf_counter()
            self.transition_to(RollbackState.ROLLING_BACK)
            errors = self._apply_rollback_flags()
            success = not errors

            self.transition_to(RollbackState.ROLLED_BACK if success else RollbackState.ROLLBACK_FAILED)
            result = {
                "success": success,
                "type": type_,
                "trigger": trigger,
                "reason": reason,
                "operator": operator,
                "timestamp": self._now().isoformat(),
                "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                "errors": errors,
            }
            self._record(result)

        if success:
            logger.warning("Rolled back to legacy pipeline (%s): %s", trigger, reason)
        else:
            logger.error("Rollback failed (%s): %s", trigger, "; ".join(errors))
        self._notify("rollback_executed" if success else "rollback_failed", result)
        return result

    def _apply_rollback_flags(self) -> List[str]:
        errors = []
        steps = (
            ("force legacy override",
             lambda: self.feature_flags.configure(manual_override=ManualOverride.FORCE_LEGACY)),
            ("trip circuit breaker", self.feature_flags.trip_circuit_breaker),
        )
        for label, step in steps:
            try:
                step()
            except Exception as e:
                errors.append(f"Failed to {label}: {e}")
        return errors

    # Validation and recovery

    def validate_rollback_success(self) -> Dict[str, Any]:
        """Check that flags, breaker and state agree the system is rolled back."""
        config = self.feature_flags.config
        checks = (
            ("feature_flags", config.manual_override == ManualOverride.FORCE_LEGACY
             and self.is_rolled_back, "Manual override forces the legacy pipeline"),
            ("circuit_breaker", self.feature_flags.circuit_breaker_state != CircuitState.CLOSED,
             "Circuit breaker keeps the new pipeline disabled"),
            ("state", self.is_rolled_back, "Rollback state is rolled_back"),
        )
        passed = [{"check": name, "message": message} for name, ok, message in checks if ok]
        failed = [{"check": name, "message": message} for name, ok, message in checks if not ok]
        return {
            "success": not failed,
            "system_health": "healthy" if not failed else "degraded",
            "checks_passed": passed,
            "checks_failed": failed,
        }

    def attempt_rollback_recovery(self) -> Dict[str, Any]:
        """Retry the rollback steps after a failed rollback."""
        if self._state != RollbackState.ROLLBACK_FAILED:
            return {"success": False, "reason": "Not in rollback failed state"}

        started = time.perf_counter()
        with self._lock:
            errors = self._apply_rollback_flags()
            steps = [
                {"step": "force_legacy_override", "success": not errors},
                {"step": "trip_circuit_breaker", "success": not errors},
            ]
            if not errors:
                self.transition_to(RollbackState.ROLLED_BACK)
                self._persist()

        return {
            "success": not errors,
            "recovery_steps": steps,
            "errors": errors,
            "recovery_time_ms": round((time.perf_counter() - started) * 1000, 3),
        }

    def clear_rollback(self, operator: Optional[str] = None) -> Dict[str, Any]:
        """Return to the active state and restore normal routing."""
        with self._lock:
            if not self.is_rolled_back:
                return {"success": False, "reason": "Not in rolled back state"}

            self.feature_flags.configure(manual_override=None)
            self.feature_flags.reset_circuit_breaker()
            self.transition_to(RollbackState.ACTIVE)
            self._persist()
            data = {"success": True, "operator": operator, "timestamp": self._now().isoformat()}

        logger.info("Rollback cleared by %s", operator or "unknown operator")
        self._notify("rollback_cleared", data)
        return data

    # Status

    def rollback_count_today(self) -> int:
        today = self._now().date()
        count = 0
        for entry in self._history:
            try:
                stamp = datetime.fromisoformat(str(entry.get("timestamp")))
            except ValueError:
                continue
            if stamp.astimezone(timezone.utc).date() == today and entry.get("success", True):
                count += 1
        return count

    def current_status(self) -> Dict[str, Any]:
        breaker = self.feature_flags.circuit_breaker_state
        return {
            "state": self._state.value,
            "is_rolled_back": self.is_rolled_back,
            "rollback_count_today": self.rollback_count_today(),
            "last_updated": self._last_updated,
            "scheduled_rollback": dict(self._scheduled) if self._scheduled else None,
            "feature_flags_state": self.feature_flags.configuration_summary(),
            "circuit_breaker_state": breaker.value,
            "recommendation": self.rollback_recommendation(),
            "health_indicators": {
                "error_count": self.feature_flags.error_count,
                "circuit_breaker_closed": breaker == CircuitState.CLOSED,
                "performance": self.feature_flags.performance_statistics(),
            },
        }

    # Persistence

    def _record(self, entry: Dict[str, Any]) -> None:
        self._history.append(dict(entry))
        self._persist()

    def _persist(self) -> None:
        self._history = self._history[-HISTORY_LIMIT:]
        self._last_updated = self._now().isoformat()
        data = {
            "current_state": self._state.value,
            "rollback_history": self._history,
            "scheduled_rollback": self._scheduled,
            "last_updated": self._last_updated,
        }
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            self.state_file.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not persist rollback state to %s: %s", self.state_file, e)

    def _load(self) -> None:
        if not self.state_file.exists():
            return
        try:
            data = json.loads(self.state_file.read_text(encoding="utf-8") or "{}")
            state = RollbackState(data.get("current_state", RollbackState.ACTIVE.value))
        except (OSError, ValueError, AttributeError) as e:
            logger.warning("Ignoring unreadable rollback state file %s: %s", self.state_file, e)
            return

        history = data.get("rollback_history") or []
        self._state = state
        self._history = [dict(entry) for entry in history if isinstance(entry, dict)][-HISTORY_LIMIT:]
        self._scheduled = data.get("scheduled_rollback")
        self._last_updated = data.get("last_updated")

        if state == RollbackState.ROLLED_BACK:
            for error in self._apply_rollback_flags():
                logger.warning("Restoring persisted rollback: %s", error)

    def _notify(self, event: str, data: Dict[str, Any]) -> None:
        if self.notification_handler is None:
            return
        try:
            self.notification_handler(event, dict(data))
        except Exception as e:
            logger.warning("Rollback notification handler failed for %s: %s", event, e)
