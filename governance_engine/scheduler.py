"""
SLA / Automation Scheduler Module

Periodically checks how long active instances have been sitting in their
current state. Emits a warning and an escalation notification once per
state entry when the state's SLA thresholds are crossed, and fires
time-elapsed automations once per state entry. The scheduler never changes
an instance; SLA breaches are advisory.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import threading

from .config import get_config
from .definitions import NotifyEffect, WorkflowDefinition
from .logging_config import get_logger
from .workflows import InstanceStatus, WorkflowEngine, WorkflowInstance


logger = get_logger("governance.scheduler")

MARKERS_TABLE = "sla_notifications"


@dataclass
class SLAAlert:
    """A notification emitted by one scheduler run"""
    instance_id: str
    state_id: str
    kind: str  # warning, escalation or automation
    elapsed_hours: float
    recipients: Dict[str, List[str]] = field(default_factory=dict)
    message: str = ""
    automation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'instance_id': self.instance_id,
            'state_id': self.state_id,
            'kind': self.kind,
            'elapsed_hours': round(self.elapsed_hours, 3),
            'recipients': self.recipients,
            'message': self.message,
            'automation_id': self.automation_id,
        }


class SLAScheduler:
    """Timer loop that evaluates SLAs and automations"""

    def __init__(self, engine: WorkflowEngine, interval_seconds: Optional[int] = None):
        self.engine = engine
        self.storage = engine.storage
        self.interval_seconds = interval_seconds or get_config().scheduler_interval_seconds
        self.running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _claim(self, instance: WorkflowInstance, kind: str, now: datetime) -> bool:
        """Write the once-per-state-entry marker; False if it already exists"""
        marker_id = f"{instance.id}:{instance.state_entered_at.isoformat()}:{kind}"
        return self.storage.compare_and_set(MARKERS_TABLE, marker_id, 'id', None, {
            'id': marker_id,
            'instance_id': instance.id,
            'state_id': instance.current_state,
            'kind': kind,
            'emitted_at': now.isoformat(),
        })

    def _send(self, alert: SLAAlert, definition: WorkflowDefinition) -> None:
        try:
            self.engine.notifier.dispatch(alert.recipients, alert.message, {
                'kind': alert.kind,
                'instance_id': alert.instance_id,
                'definition_id': definition.id,
                'state': alert.state_id,
                'elapsed_hours': alert.elapsed_hours,
                'automation_id': alert.automation_id,
            })
        except Exception:
            logger.exception(
                f"SLA {alert.kind} notification failed",
                extra={'resource': alert.instance_id}
            )

    def _check_instance(self, instance: WorkflowInstance, definition: WorkflowDefinition,
                        now: datetime) -> List[SLAAlert]:
        alerts = []
        state = definition.get_state(instance.current_state)
        if not state:
            return alerts

        elapsed = (now - instance.state_entered_at).total_seconds() / 3600
        sla = state.sla

        if sla and sla.warning_at_hours is not None and elapsed >= sla.warning_at_hours:
            if self._claim(instance, "warning", now):
                recipients = {'roles': [], 'committees': [], 'users': [instance.started_by]}
                if instance.assigned_committee:
                    recipients['committees'].append(instance.assigned_committee)
                alerts.append(SLAAlert(
                    instance_id=instance.id,
                    state_id=state.id,
                    kind="warning",
                    elapsed_hours=elapsed,
                    recipients=recipients,
                    message=(f"{definition.name}: '{state.label}' has been open for "
                             f"{elapsed:.1f}h (limit {sla.max_duration_hours}h)"),
                ))

        if sla and sla.escalate_to and elapsed >= sla.max_duration_hours:
            if self._claim(instance, "escalation", now):
                alerts.append(SLAAlert(
                    instance_id=instance.id,
                    state_id=state.id,
                    kind="escalation",
                    elapsed_hours=elapsed,
                    recipients={'roles': [sla.escalate_to], 'committees': [], 'users': []},
                    message=(f"{definition.name}: '{state.label}' exceeded its "
                             f"{sla.max_duration_hours}h SLA"),
                ))

        for automation in definition.automations:
            if automation.state_id != state.id or elapsed < automation.after_hours:
                continue
            if not self._claim(instance, f"automation:{automation.id}", now):
                continue
            for effect in automation.actions:
                if not isinstance(effect, NotifyEffect):
                    logger.debug(
                        f"Automation {automation.id} skips non-notify effect {effect.kind}",
                        extra={'resource': instance.id}
                    )
                    continue
                alerts.append(SLAAlert(
                    instance_id=instance.id,
                    state_id=state.id,
                    kind="automation",
                    elapsed_hours=elapsed,
                    recipients=effect.recipients(),
                    message=effect.message or automation.name,
                    automation_id=automation.id,
                ))

        for alert in alerts:
            self._send(alert, definition)
        return alerts

    def run_once(self, now: Optional[datetime] = None) -> List[SLAAlert]:
        """
        Evaluate every active instance once

        Instances in partitions whose audit chain fails verification are
        skipped until the chain has been reviewed.

        Returns:
            Alerts emitted during this run
        """
        now = now or self.engine.clock()
        alerts: List[SLAAlert] = []
        partition_ok: Dict[str, bool] = {}
        definitions: Dict[str, Optional[WorkflowDefinition]] = {}

        for instance in self.engine.list_instances(status=InstanceStatus.ACTIVE):
            if instance.partition not in partition_ok:
                result = self.engine.audit.verify_integrity(instance.partition)
                partition_ok[instance.partition] = result['valid']
                if not result['valid']:
                    logger.critical(
                        f"Audit chain broken, skipping partition: {result['reason']}",
                        extra={'partition': instance.partition, 'resource': result['event_id']}
                    )
            if not partition_ok[instance.partition]:
                continue

            if instance.workflow_definition_id not in definitions:
                definitions[instance.workflow_definition_id] = \
                    self.engine.definitions.get(instance.workflow_definition_id)
            definition = definitions[instance.workflow_definition_id]
            if not definition:
                continue

            alerts.extend(self._check_instance(instance, definition, now))

        if alerts:
            logger.info(f"Scheduler run emitted {len(alerts)} alert(s)")
        return alerts

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Scheduler run failed")
            self._stop_event.wait(self.interval_seconds)

    def start(self) -> None:
        """Start the background timer loop"""
        if self.running:
            return
        self.running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="governance-sla-scheduler")
        self._thread.daemon = True
        self._thread.start()
        logger.info("SLA scheduler started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the background timer loop"""
        self.running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        logger.info("SLA scheduler stopped")
