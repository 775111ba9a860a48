"""
Governance Service Module

Caller-facing surface of the governance engine. Wires storage, the audit
chain, the definition registry, the instance engine, the router and the
scheduler together from configuration, and exposes the operations the HTTP
layer (or any other caller) uses.
"""

from typing import Any, Dict, List, Optional

from .audit import AuditChain, AuditEvent
from .collaborators import (
    Actor, DocumentStateCollaborator, InMemoryMembershipDirectory,
    LoggingDocumentStateCollaborator, LoggingNotificationDispatcher,
    MembershipDirectory, NotificationDispatcher, WebhookNotificationDispatcher,
)
from .config import GovernanceConfig, get_config
from .definitions import DefinitionRegistry, Transition, WorkflowDefinition, parse_definition
from .exceptions import IntegrityViolation, ValidationError
from .logging_config import get_logger
from .router import AssignmentRouter, RoutingContext, RoutingResult, WorkflowSuggestion
from .scheduler import SLAAlert, SLAScheduler
from .storage import StorageInterface, create_storage
from .templates import WorkflowTemplate, build_definition, get_template, list_templates
from .workflows import InstanceStatus, WorkflowEngine, WorkflowInstance


logger = get_logger("governance.service")


class GovernanceService:
    """Governance engine with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        notifier: Optional[NotificationDispatcher] = None,
        documents: Optional[DocumentStateCollaborator] = None,
        membership: Optional[MembershipDirectory] = None,
        settings: Optional[GovernanceConfig] = None
    ):
        self.settings = settings or get_config()

        self.storage = storage or create_storage(self.settings.database_url)
        self.notifier = notifier or self._create_notifier()
        self.documents = documents or LoggingDocumentStateCollaborator()
        self.membership = membership or InMemoryMembershipDirectory()

        self.audit = AuditChain(
            self.storage,
            default_partition=self.settings.default_audit_partition,
            max_attempts=self.settings.audit_append_max_attempts,
            backoff_seconds=self.settings.audit_append_backoff_seconds,
        )
        self.registry = DefinitionRegistry(self.storage)
        self.engine = WorkflowEngine(
            self.storage,
            audit=self.audit,
            definitions=self.registry,
            notifier=self.notifier,
            documents=self.documents,
            membership=self.membership,
        )
        self.router = AssignmentRouter(self.engine)
        self.scheduler = SLAScheduler(self.engine, self.settings.scheduler_interval_seconds)

    def _create_notifier(self) -> NotificationDispatcher:
        """Create the notification dispatcher based on configuration"""
        if not self.settings.notification_webhook_url:
            return LoggingNotificationDispatcher()
        return WebhookNotificationDispatcher(
            self.settings.notification_webhook_url,
            timeout=self.settings.notification_webhook_timeout,
        )

    # Definitions

    def create_definition(self, data: Dict[str, Any], created_by: str = "") -> WorkflowDefinition:
        definition = parse_definition(data)
        if created_by and not definition.created_by:
            definition.created_by = created_by
        return self.registry.create(definition)

    def get_definition(self, definition_id: str) -> WorkflowDefinition:
        return self.registry.require(definition_id)

    def list_definitions(self, category: Optional[str] = None,
                         is_active: Optional[bool] = None) -> List[WorkflowDefinition]:
        return self.registry.list(category=category, is_active=is_active)

    def activate_definition(self, definition_id: str) -> WorkflowDefinition:
        return self.registry.activate(definition_id)

    def deactivate_definition(self, definition_id: str) -> WorkflowDefinition:
        return self.registry.deactivate(definition_id)

    # Templates

    def list_templates(self, category: Optional[str] = None) -> List[WorkflowTemplate]:
        return list_templates(category)

    def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        return get_template(template_id)

    def create_from_template(
        self,
        template_id: str,
        definition_id: Optional[str] = None,
        created_by: str = "",
        overrides: Optional[Dict[str, Any]] = None
    ) -> WorkflowDefinition:
        """Publish a new definition cloned from a pre-built template"""
        definition = build_definition(template_id, definition_id, created_by, overrides)
        return self.registry.create(definition)

    # Instances

    def start_workflow(self, definition_id: str, actor: Actor,
                       initial_field_values: Optional[Dict[str, Any]] = None,
                       document_ref: Optional[str] = None,
                       assigned_committee: Optional[str] = None,
                       correlation_id: Optional[str] = None) -> WorkflowInstance:
        return self.engine.start_workflow(
            definition_id, actor,
            initial_field_values=initial_field_values,
            document_ref=document_ref,
            assigned_committee=assigned_committee,
            correlation_id=correlation_id,
        )

    def get_instance(self, instance_id: str) -> WorkflowInstance:
        return self.engine.require_instance(instance_id)

    def list_instances(self, definition_id: Optional[str] = None,
                       status: Optional[str] = None,
                       current_state: Optional[str] = None,
                       committee: Optional[str] = None,
                       document_ref: Optional[str] = None) -> List[WorkflowInstance]:
        try:
            instance_status = InstanceStatus(status) if status else None
        except ValueError:
            raise ValidationError(
                f"Invalid instance status: {status}",
                errors=[f"status must be one of: {', '.join(s.value for s in InstanceStatus)}"]
            )
        return self.engine.list_instances(
            definition_id=definition_id,
            status=instance_status,
            current_state=current_state,
            committee=committee,
            document_ref=document_ref,
        )

    def list_available_transitions(self, instance_id: str) -> List[Transition]:
        return self.engine.list_available_transitions(instance_id)

    def execute_transition(self, instance_id: str, transition_id: str, actor: Actor,
                           comment: Optional[str] = None,
                           attachments: Optional[List[str]] = None,
                           field_updates: Optional[Dict[str, Any]] = None,
                           correlation_id: Optional[str] = None,
                           eligible_voters: Optional[List[str]] = None) -> WorkflowInstance:
        return self.engine.execute_transition(
            instance_id, transition_id, actor,
            comment=comment,
            attachments=attachments,
            field_updates=field_updates,
            correlation_id=correlation_id,
            eligible_voters=eligible_voters,
        )

    def update_field_values(self, instance_id: str, updates: Dict[str, Any], actor: Actor,
                            correlation_id: Optional[str] = None) -> WorkflowInstance:
        return self.engine.update_field_values(instance_id, updates, actor,
                                               correlation_id=correlation_id)

    def cast_vote(self, instance_id: str, transition_id: str, voter: Actor, vote: str,
                  comment: Optional[str] = None,
                  correlation_id: Optional[str] = None) -> WorkflowInstance:
        return self.engine.cast_vote(instance_id, transition_id, voter, vote,
                                     comment=comment, correlation_id=correlation_id)

    def get_history(self, instance_id: str) -> List[AuditEvent]:
        return self.engine.get_history(instance_id)

    # Routing

    def suggest_workflows(self, context: RoutingContext) -> List[WorkflowSuggestion]:
        return self.router.suggest_workflows(context)

    def route_document(self, context: RoutingContext, actor: Actor,
                       correlation_id: Optional[str] = None) -> RoutingResult:
        return self.router.route_document(context, actor, correlation_id=correlation_id)

    # Audit

    def verify_audit_chain(self, partition: Optional[str] = None,
                           raise_on_failure: bool = False) -> Dict[str, Any]:
        """
        Verify one partition's audit chain

        Args:
            partition: Partition to verify, the default partition if omitted
            raise_on_failure: Raise IntegrityViolation instead of returning
                an invalid result

        Returns:
            Verification result dictionary
        """
        result = self.audit.verify_integrity(partition)
        if not result['valid']:
            logger.critical(
                f"Audit chain integrity violation: {result['reason']}",
                extra={'partition': result['partition'], 'resource': result['event_id']}
            )
            if raise_on_failure:
                raise IntegrityViolation(result['partition'], result['event_id'], result['reason'])
        return result

    def list_partitions(self) -> List[str]:
        return self.audit.partitions()

    # Scheduler

    def run_scheduler_once(self) -> List[SLAAlert]:
        return self.scheduler.run_once()

    def start_scheduler(self) -> None:
        self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.stop()
        self.storage.close()
