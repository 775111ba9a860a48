"""
Workflow Instance Engine Module

Runs workflow instances against their definitions: starts cases, evaluates
transition guards, executes transitions and persists field values. Every
mutation is appended to the audit chain before the instance record is written,
and instance writes use a compare-and-set on the instance revision so
concurrent actions on the same case cannot silently overwrite each other.

History is not stored on the instance; it is rebuilt from the audit events
whose correlation id carries the instance namespace ``wfi:<instance_id>:``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union
import hashlib
import uuid

from .audit import AuditChain, AuditEvent
from .collaborators import (
    Actor, DocumentStateCollaborator, LoggingNotificationDispatcher,
    MembershipDirectory, NotificationDispatcher,
)
from .config import get_config
from .definitions import (
    AuditLogEffect, DefinitionRegistry, DocumentMoveEffect, GUARD_ERRORS,
    GUARD_FAILURE_OUTCOMES, Guard, GuardOutcome, NotifyEffect, SideEffect,
    Transition, WorkflowDefinition,
)
from .exceptions import Conflict, FieldNotEditableInState, Forbidden, NotFound, ValidationError
from .fields import validate_field_values
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord
from .voting import VoteRecord, VotingService


logger = get_logger("governance.workflows")

INSTANCES_TABLE = "workflow_instances"

# Fixed namespace so a caller-supplied start token always maps to the same instance id
_START_NAMESPACE = uuid.UUID("6f1c8f0e-2d4b-4f7a-9a57-3b1f0c2e8d41")


class InstanceStatus(Enum):
    """Status of workflow instances"""
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class WorkflowInstance(StorageRecord):
    """Running workflow instance"""
    workflow_definition_id: str
    workflow_version: str
    current_state: str
    state_entered_at: datetime
    started_by: str
    partition: str
    status: InstanceStatus = InstanceStatus.ACTIVE
    field_values: Dict[str, Any] = field(default_factory=dict)
    document_ref: Optional[str] = None
    assigned_committee: Optional[str] = None
    completed_at: Optional[datetime] = None
    revision: int = 1
    last_correlation_id: Optional[str] = None
    awaiting_vote: Optional[str] = None
    vote_records: List[VoteRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'workflow_definition_id': self.workflow_definition_id,
            'workflow_version': self.workflow_version,
            'current_state': self.current_state,
            'state_entered_at': self.state_entered_at.isoformat(),
            'started_by': self.started_by,
            'partition': self.partition,
            'status': self.status.value,
            'field_values': dict(self.field_values),
            'document_ref': self.document_ref,
            'assigned_committee': self.assigned_committee,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'revision': self.revision,
            'last_correlation_id': self.last_correlation_id,
            'awaiting_vote': self.awaiting_vote,
            'vote_records': [r.to_dict() for r in self.vote_records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowInstance':
        data = dict(data)
        for key in ('created_at', 'updated_at', 'state_entered_at', 'completed_at'):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        data['status'] = InstanceStatus(data['status'])
        data['vote_records'] = [VoteRecord.from_dict(r) for r in data.get('vote_records') or []]
        return cls(**data)


class WorkflowEngine:
    """Main workflow engine for running workflow instances"""

    def __init__(
        self,
        storage: StorageInterface,
        audit: Optional[AuditChain] = None,
        definitions: Optional[DefinitionRegistry] = None,
        notifier: Optional[NotificationDispatcher] = None,
        documents: Optional[DocumentStateCollaborator] = None,
        membership: Optional[MembershipDirectory] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        settings = get_config()
        self.storage = storage
        self.audit = audit or AuditChain(storage, clock=clock)
        self.definitions = definitions or DefinitionRegistry(storage)
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.documents = documents
        self.membership = membership
        self.clock = clock or self.audit.clock
        self.max_write_attempts = settings.audit_append_max_attempts
        self.voting = VotingService(self)

        self._effect_handlers = {
            NotifyEffect: self._notify,
            AuditLogEffect: self._audit_log,
            DocumentMoveEffect: self._move_document,
        }
        self._guard_checks = {
            Guard.ROLE: self._check_role,
            Guard.COMMITTEE: self._check_committee,
            Guard.CONDITIONS: self._check_conditions,
            Guard.COMMENT: self._check_comment,
            Guard.ATTACHMENTS: self._check_attachments,
            Guard.VOTE: self._check_vote,
        }

    # Correlation ids

    @staticmethod
    def correlation(instance_id: str, suffix: str) -> str:
        """Audit correlation id inside the instance's namespace"""
        return f"wfi:{instance_id}:{suffix}"

    def partition_for(self, definition: WorkflowDefinition) -> str:
        return definition.settings.site_collection or self.audit.default_partition

    # Instance persistence

    def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Get a workflow instance by ID"""
        data = self.storage.load(INSTANCES_TABLE, instance_id)
        if not data:
            return None
        return WorkflowInstance.from_dict(data)

    def require_instance(self, instance_id: str) -> WorkflowInstance:
        instance = self.get_instance(instance_id)
        if not instance:
            raise NotFound("WorkflowInstance", instance_id)
        return instance

    def list_instances(
        self,
        definition_id: Optional[str] = None,
        status: Optional[Union[InstanceStatus, str]] = None,
        current_state: Optional[str] = None,
        committee: Optional[str] = None,
        document_ref: Optional[str] = None
    ) -> List[WorkflowInstance]:
        """List instances matching every given filter, oldest first"""
        filters: Dict[str, Any] = {}
        if definition_id:
            filters['workflow_definition_id'] = definition_id
        if status:
            filters['status'] = InstanceStatus(status).value if isinstance(status, str) else status.value
        if current_state:
            filters['current_state'] = current_state
        if committee:
            filters['assigned_committee'] = committee
        if document_ref:
            filters['document_ref'] = document_ref

        instances = [WorkflowInstance.from_dict(d) for d in self.storage.find(INSTANCES_TABLE, filters)]
        return sorted(instances, key=lambda i: (i.created_at, i.id))

    def _write(self, instance: WorkflowInstance, expected_revision: int) -> bool:
        instance.revision = expected_revision + 1
        return self.storage.compare_and_set(
            INSTANCES_TABLE, instance.id, 'revision', expected_revision, instance.to_dict()
        )

    def mutate_instance(self, instance_id: str,
                        mutator: Callable[[WorkflowInstance], None]) -> WorkflowInstance:
        """
        Apply an idempotent, already-audited change with bounded retries

        Raises:
            Conflict: if the instance kept changing underneath the write
        """
        for _ in range(self.max_write_attempts):
            instance = self.require_instance(instance_id)
            expected = instance.revision
            mutator(instance)
            instance.updated_at = self.clock()
            if self._write(instance, expected):
                return instance
        raise Conflict(
            f"Instance {instance_id} changed concurrently",
            {'instance_id': instance_id}
        )

    def _supersede(self, instance: WorkflowInstance, event: AuditEvent,
                   actor: Actor) -> WorkflowInstance:
        """Handle a lost revision race after the audit event was committed"""
        current = self.require_instance(instance.id)
        if current.last_correlation_id == event.correlation_id:
            # Same change already applied by a concurrent retry
            return current

        self.audit.append(
            "workflow.transition_superseded",
            actor.id,
            {
                'instance_id': instance.id,
                'superseded_event_id': event.id,
                'superseded_action': event.action,
                'current_revision': current.revision,
            },
            f"{event.correlation_id}:superseded",
            instance.partition,
        )
        logger.warning(
            f"Change to instance {instance.id} lost the revision race",
            extra={'correlation_id': event.correlation_id, 'resource': instance.id}
        )
        raise Conflict(
            f"Instance {instance.id} was modified concurrently; reload and retry",
            {'instance_id': instance.id, 'event_id': event.id}
        )

    def _already_applied(self, instance: WorkflowInstance, correlation_id: str) -> bool:
        """
        Whether the change audited under correlation_id reached the instance

        An audited change whose instance write was lost leaves the instance
        at the revision recorded in the event. Such a change is redone: the
        audit append returns the stored event and the write is repeated.
        """
        if instance.last_correlation_id == correlation_id:
            return True
        event = self.audit.find_by_correlation(correlation_id, instance.partition)
        if event is None:
            return False
        return event.payload.get('base_revision') != instance.revision

    # Start

    def start_workflow(
        self,
        definition_id: str,
        actor: Actor,
        initial_field_values: Optional[Dict[str, Any]] = None,
        document_ref: Optional[str] = None,
        assigned_committee: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> WorkflowInstance:
        """
        Start a new workflow instance in the definition's initial state

        Args:
            definition_id: ID of the definition to run
            actor: Who starts the workflow
            initial_field_values: Field values for the initial state
            document_ref: Linked document reference
            assigned_committee: Committee responsible for the case
            correlation_id: Idempotency token; retries with it return the same instance

        Returns:
            The started (or, on replay, previously started) instance
        """
        definition = self.definitions.require(definition_id)
        if not definition.is_active:
            raise ValidationError(f"Workflow definition {definition_id} is not active")

        # Either gate grants access when both are configured
        settings = definition.settings
        if settings.allowed_roles or settings.allowed_committees:
            if not (actor.has_any_role(settings.allowed_roles)
                    or actor.in_any_committee(settings.allowed_committees)):
                raise Forbidden(
                    message=f"Not allowed to start {definition.name}",
                    guard="start",
                    details={
                        'allowed_roles': settings.allowed_roles,
                        'allowed_committees': settings.allowed_committees,
                    }
                )

        initial = definition.initial_state()
        values = {
            f.name: f.default for f in definition.fields
            if f.default is not None
        }
        values.update(initial_field_values or {})

        errors = validate_field_values(definition.fields, values, state_id=initial.id)
        if errors:
            raise ValidationError(
                f"Invalid initial field values for {definition.name}",
                errors=errors,
                details={'definition_id': definition.id}
            )

        if correlation_id:
            instance_id = str(uuid.uuid5(_START_NAMESPACE, f"{definition.id}:{correlation_id}"))
            existing = self.get_instance(instance_id)
            if existing:
                return existing
        else:
            instance_id = str(uuid.uuid4())

        partition = self.partition_for(definition)
        corr = self.correlation(instance_id, "started")
        event = self.audit.append(
            "workflow.started",
            actor.id,
            {
                'instance_id': instance_id,
                'definition_id': definition.id,
                'definition_version': definition.version,
                'state': initial.id,
                'field_values': values,
                'document_ref': document_ref,
                'assigned_committee': assigned_committee,
            },
            corr,
            partition,
        )

        instance = WorkflowInstance(
            id=instance_id,
            created_at=event.timestamp,
            updated_at=event.timestamp,
            workflow_definition_id=definition.id,
            workflow_version=definition.version,
            current_state=initial.id,
            state_entered_at=event.timestamp,
            started_by=actor.id,
            partition=partition,
            field_values=values,
            document_ref=document_ref,
            assigned_committee=assigned_committee,
            last_correlation_id=corr,
        )
        if initial.is_final:
            instance.status = InstanceStatus.COMPLETED
            instance.completed_at = event.timestamp

        if not self.storage.compare_and_set(INSTANCES_TABLE, instance.id, 'revision',
                                            None, instance.to_dict()):
            return self.require_instance(instance.id)

        log_action(
            logger, "info", f"Workflow started: {definition.name}",
            user_id=actor.id, action="workflow.started", resource=instance.id,
            correlation_id=corr, partition=partition
        )

        self._dispatch_effects(initial.on_enter, definition, instance, actor, event, "on_enter")
        return instance

    # Transitions

    def list_available_transitions(self, instance: Union[WorkflowInstance, str]) -> List[Transition]:
        """Transitions leaving the instance's current state; none from final states"""
        if isinstance(instance, str):
            instance = self.require_instance(instance)
        definition = self.definitions.require(instance.workflow_definition_id)
        state = definition.get_state(instance.current_state)
        if instance.status == InstanceStatus.COMPLETED or (state and state.is_final):
            return []
        return definition.transitions_from(instance.current_state)

    def _resolve_transition(self, definition: WorkflowDefinition, instance: WorkflowInstance,
                            transition_id: str) -> Transition:
        transition = definition.get_transition(transition_id)
        if not transition:
            raise NotFound("Transition", transition_id)
        if (transition.from_state != instance.current_state
                or instance.status == InstanceStatus.COMPLETED):
            raise NotFound(
                "Transition", transition_id,
                f"Transition {transition_id} is not available from state {instance.current_state}"
            )
        return transition

    def _check_role(self, transition, instance, actor, comment, attachments) -> bool:
        return actor.has_any_role(transition.required_roles)

    def _check_committee(self, transition, instance, actor, comment, attachments) -> bool:
        return actor.in_any_committee(transition.required_committees)

    def _check_conditions(self, transition, instance, actor, comment, attachments) -> bool:
        now = self.clock()
        return all(
            c.evaluate(instance.field_values, instance.state_entered_at, now)
            for c in transition.conditions
        )

    def _check_comment(self, transition, instance, actor, comment, attachments) -> bool:
        return bool(comment and comment.strip())

    def _check_attachments(self, transition, instance, actor, comment, attachments) -> bool:
        return len(attachments or []) >= transition.min_attachments

    def _check_vote(self, transition, instance, actor, comment, attachments) -> bool:
        # A vote gate only ever completes through a passing vote
        return False

    def evaluate_guards(
        self,
        definition: WorkflowDefinition,
        transition: Transition,
        instance: WorkflowInstance,
        actor: Actor,
        comment: Optional[str] = None,
        attachments: Optional[List[str]] = None
    ) -> GuardOutcome:
        """Evaluate the transition's guards in order, stopping at the first failure"""
        for guard in definition.guard_table()[transition.id]:
            if not self._guard_checks[guard](transition, instance, actor, comment, attachments):
                return GUARD_FAILURE_OUTCOMES[guard]
        return GuardOutcome.PASSED

    def _guard_error(self, outcome: GuardOutcome, transition: Transition):
        messages = {
            GuardOutcome.ROLE_MISSING: f"Requires one of roles: {', '.join(transition.required_roles)}",
            GuardOutcome.COMMITTEE_MISSING:
                f"Requires membership of: {', '.join(transition.required_committees)}",
            GuardOutcome.CONDITIONS_UNMET: "Transition conditions are not met: " + "; ".join(
                c.describe() for c in transition.conditions),
            GuardOutcome.COMMENT_REQUIRED: "A comment is required for this transition",
            GuardOutcome.ATTACHMENTS_REQUIRED:
                f"At least {transition.min_attachments} attachment(s) required",
        }
        guard = next(g for g, o in GUARD_FAILURE_OUTCOMES.items() if o == outcome)
        return GUARD_ERRORS[outcome](
            message=messages[outcome],
            guard=guard.value,
            details={'transition_id': transition.id, 'outcome': outcome.value}
        )

    def _validate_updates(self, definition: WorkflowDefinition, instance: WorkflowInstance,
                          updates: Dict[str, Any]) -> None:
        unknown = [name for name in updates if not definition.get_field(name)]
        if unknown:
            raise ValidationError(
                "Unknown fields: " + ", ".join(unknown),
                errors=[f"Unknown field: {name}" for name in unknown]
            )
        for name in updates:
            if not definition.get_field(name).is_editable_in(instance.current_state):
                raise FieldNotEditableInState(name, instance.current_state)

        errors = validate_field_values(definition.fields, updates, check_required=False)
        for name, value in updates.items():
            if value is None and definition.get_field(name).is_required_in(instance.current_state):
                errors.append(f"Required field missing: {name}")
        if errors:
            raise ValidationError("Invalid field values", errors=errors)

    def execute_transition(
        self,
        instance_id: str,
        transition_id: str,
        actor: Actor,
        comment: Optional[str] = None,
        attachments: Optional[List[str]] = None,
        field_updates: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        eligible_voters: Optional[List[str]] = None
    ) -> WorkflowInstance:
        """
        Execute a transition on an instance

        Guards run in order: role, committee, conditions, comment, attachments,
        vote gate. A vote-gated transition opens a vote session and returns the
        instance flagged as awaiting the vote.

        Raises:
            NotFound: unknown instance, or transition not leaving the current state
            Forbidden: role or committee guard failed
            GuardFailed: conditions, comment or attachments guard failed
            ValidationError: invalid field updates
            Conflict: the instance changed concurrently
        """
        instance = self.require_instance(instance_id)

        if correlation_id:
            corr = self.correlation(instance.id, f"transition:{correlation_id}")
            if self._already_applied(instance, corr):
                logger.info(
                    "Idempotent replay of transition",
                    extra={'correlation_id': corr, 'resource': instance.id}
                )
                return instance
        else:
            corr = None

        definition = self.definitions.require(instance.workflow_definition_id)
        transition = self._resolve_transition(definition, instance, transition_id)

        outcome = self.evaluate_guards(definition, transition, instance, actor, comment, attachments)
        if outcome == GuardOutcome.VOTE_REQUIRED:
            if field_updates:
                self._validate_updates(definition, instance, field_updates)
            return self.voting.open_session(
                definition, instance, transition, actor,
                eligible_voters=eligible_voters, field_updates=field_updates
            )
        if outcome != GuardOutcome.PASSED:
            logger.info(
                f"Transition {transition.id} rejected: {outcome.value}",
                extra={'user_id': actor.id, 'resource': instance.id}
            )
            raise self._guard_error(outcome, transition)

        return self.complete_transition(
            definition, instance, transition, actor,
            comment=comment, attachments=attachments,
            field_updates=field_updates, correlation_id=corr,
        )

    def complete_transition(
        self,
        definition: WorkflowDefinition,
        instance: WorkflowInstance,
        transition: Transition,
        actor: Actor,
        comment: Optional[str] = None,
        attachments: Optional[List[str]] = None,
        field_updates: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        extra_payload: Optional[Dict[str, Any]] = None
    ) -> WorkflowInstance:
        """Apply a transition whose guards have passed, audit it and run side effects"""
        field_updates = field_updates or {}
        if field_updates:
            self._validate_updates(definition, instance, field_updates)

        merged = dict(instance.field_values)
        merged.update(field_updates)
        missing = validate_field_values(definition.fields, merged, state_id=transition.to_state)
        if missing:
            raise ValidationError(
                f"Fields incomplete for state {transition.to_state}",
                errors=missing
            )

        if not correlation_id:
            token = hashlib.sha256(
                f"{instance.id}|{transition.id}|{actor.id}|{instance.state_entered_at.isoformat()}"
                .encode('utf-8')
            ).hexdigest()[:32]
            correlation_id = self.correlation(instance.id, f"transition:{token}")

        if instance.current_state != transition.from_state:
            current = self.require_instance(instance.id)
            if current.last_correlation_id == correlation_id:
                return current
            raise Conflict(
                f"Instance {instance.id} is no longer in state {transition.from_state}",
                {'instance_id': instance.id}
            )

        payload = {
            'instance_id': instance.id,
            'definition_id': definition.id,
            'transition_id': transition.id,
            'from_state': transition.from_state,
            'to_state': transition.to_state,
            'comment': comment,
            'attachments': list(attachments or []),
            'field_updates': field_updates,
            'base_revision': instance.revision,
        }
        payload.update(extra_payload or {})
        event = self.audit.append("workflow.transitioned", actor.id, payload,
                                  correlation_id, instance.partition)

        expected = instance.revision
        target = definition.get_state(transition.to_state)
        instance.current_state = transition.to_state
        instance.state_entered_at = event.timestamp
        instance.field_values = merged
        instance.updated_at = event.timestamp
        instance.last_correlation_id = correlation_id
        if instance.awaiting_vote == transition.id:
            instance.awaiting_vote = None
        if target.is_final:
            instance.status = InstanceStatus.COMPLETED
            instance.completed_at = event.timestamp

        if not self._write(instance, expected):
            return self._supersede(instance, event, actor)

        log_action(
            logger, "info",
            f"Transition {transition.id}: {transition.from_state} -> {transition.to_state}",
            user_id=actor.id, action="workflow.transitioned", resource=instance.id,
            correlation_id=correlation_id, partition=instance.partition
        )

        self._dispatch_effects(transition.actions, definition, instance, actor, event, "transition")
        self._dispatch_effects(target.on_enter, definition, instance, actor, event, "on_enter")
        return instance

    # Field updates

    def update_field_values(
        self,
        instance_id: str,
        updates: Dict[str, Any],
        actor: Actor,
        correlation_id: Optional[str] = None
    ) -> WorkflowInstance:
        """
        Update custom field values of an instance

        Raises:
            ValidationError: unknown field or invalid value
            FieldNotEditableInState: field locked in the current state
        """
        instance = self.require_instance(instance_id)
        if correlation_id:
            corr = self.correlation(instance.id, f"fields:{correlation_id}")
            if self._already_applied(instance, corr):
                return instance
        else:
            corr = self.correlation(instance.id, f"fields:r{instance.revision}")

        if not updates:
            raise ValidationError("No field updates given")

        definition = self.definitions.require(instance.workflow_definition_id)
        self._validate_updates(definition, instance, updates)

        changes = {
            name: {'old': instance.field_values.get(name), 'new': value}
            for name, value in updates.items()
        }
        event = self.audit.append(
            "workflow.fields_updated",
            actor.id,
            {'instance_id': instance.id, 'state': instance.current_state, 'changes': changes,
             'base_revision': instance.revision},
            corr,
            instance.partition,
        )

        expected = instance.revision
        instance.field_values.update(updates)
        instance.updated_at = event.timestamp
        instance.last_correlation_id = corr
        if not self._write(instance, expected):
            return self._supersede(instance, event, actor)

        log_action(
            logger, "info", f"Fields updated: {', '.join(updates)}",
            user_id=actor.id, action="workflow.fields_updated", resource=instance.id,
            correlation_id=corr, partition=instance.partition
        )
        return instance

    # Votes

    def cast_vote(self, instance_id: str, transition_id: str, voter: Actor, vote: str,
                  comment: Optional[str] = None,
                  correlation_id: Optional[str] = None) -> WorkflowInstance:
        """Cast a ballot on a vote-gated transition"""
        return self.voting.cast_vote(instance_id, transition_id, voter, vote,
                                     comment=comment, correlation_id=correlation_id)

    # History

    def get_history(self, instance_id: str) -> List[AuditEvent]:
        """Audit events of an instance, oldest first"""
        instance = self.require_instance(instance_id)
        return self.audit.get_events(
            instance.partition,
            correlation_prefix=self.correlation(instance.id, "")
        )

    # Side effects

    def _dispatch_effects(self, effects: List[SideEffect], definition: WorkflowDefinition,
                          instance: WorkflowInstance, actor: Actor, event: AuditEvent,
                          source: str) -> None:
        for index, effect in enumerate(effects):
            handler = self._effect_handlers[type(effect)]
            try:
                handler(effect, definition, instance, actor, event, f"{source}:{index}")
            except Exception:
                # The change is already committed; collaborators own their failures
                logger.exception(
                    f"Side effect {effect.kind} failed for instance {instance.id}",
                    extra={'correlation_id': event.correlation_id, 'resource': instance.id}
                )

    def _notify(self, effect: NotifyEffect, definition: WorkflowDefinition,
                instance: WorkflowInstance, actor: Actor, event: AuditEvent, slot: str) -> None:
        self.notifier.dispatch(effect.recipients(), effect.message or event.action, {
            'kind': 'notify',
            'instance_id': instance.id,
            'definition_id': definition.id,
            'state': instance.current_state,
            'event_id': event.id,
            'actor': actor.id,
        })

    def _audit_log(self, effect: AuditLogEffect, definition: WorkflowDefinition,
                   instance: WorkflowInstance, actor: Actor, event: AuditEvent, slot: str) -> None:
        self.audit.append(
            "workflow.custom_action",
            actor.id,
            {
                'instance_id': instance.id,
                'message': effect.message,
                'severity': effect.severity,
                'trigger_event_id': event.id,
            },
            f"{event.correlation_id}:effect:{slot}",
            instance.partition,
        )

    def _move_document(self, effect: DocumentMoveEffect, definition: WorkflowDefinition,
                       instance: WorkflowInstance, actor: Actor, event: AuditEvent, slot: str) -> None:
        if not instance.document_ref or not self.documents:
            logger.debug(
                "No linked document or document collaborator; move skipped",
                extra={'resource': instance.id}
            )
            return
        self.documents.move_document(instance.document_ref, effect.target_state, actor, {
            'instance_id': instance.id,
            'definition_id': definition.id,
            'folder': effect.folder,
            'event_id': event.id,
        })
