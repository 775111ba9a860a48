"""
Assignment Router Module

Matches an incoming document context against the assignment rules of active
workflow definitions and starts the best match. Routing is conservative: when
no rule matches, nothing is started.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .collaborators import Actor
from .definitions import AssignmentRule, WorkflowDefinition
from .logging_config import get_logger, log_action
from .workflows import WorkflowEngine, WorkflowInstance


logger = get_logger("governance.router")


@dataclass
class RoutingContext:
    """What is known about a document that has no workflow yet"""
    document_type: Optional[str] = None
    category: Optional[str] = None
    committee: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    document_ref: Optional[str] = None
    field_values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowSuggestion:
    definition: WorkflowDefinition
    rule: AssignmentRule
    reasons: List[str] = field(default_factory=list)

    @property
    def priority(self) -> int:
        return self.rule.priority

    def to_dict(self) -> Dict[str, Any]:
        return {
            'definition_id': self.definition.id,
            'definition_name': self.definition.name,
            'rule_id': self.rule.id,
            'priority': self.rule.priority,
            'reasons': list(self.reasons),
        }


@dataclass
class RoutingResult:
    matched: bool
    instance: Optional[WorkflowInstance] = None
    definition: Optional[WorkflowDefinition] = None
    rule: Optional[AssignmentRule] = None
    reasons: List[str] = field(default_factory=list)


def match_rule(rule: AssignmentRule, context: RoutingContext) -> Optional[List[str]]:
    """
    Match one rule against a context

    Every non-empty predicate must intersect the context. A rule with no
    predicates matches any context.

    Returns:
        Match reasons, or None when the rule does not match
    """
    reasons = []

    if rule.document_types:
        if context.document_type not in rule.document_types:
            return None
        reasons.append(f"Matches document type: {context.document_type}")

    if rule.categories:
        if context.category not in rule.categories:
            return None
        reasons.append(f"Matches category: {context.category}")

    if rule.committees:
        if context.committee not in rule.committees:
            return None
        reasons.append(f"Matches committee: {context.committee}")

    if rule.tags:
        matched_tags = [t for t in context.tags if t in rule.tags]
        if not matched_tags:
            return None
        reasons.append(f"Matches tags: {', '.join(matched_tags)}")

    if not reasons:
        reasons.append("Rule has no predicates")
    return reasons


class AssignmentRouter:
    """Picks and starts the applicable workflow for unbound documents"""

    def __init__(self, engine: WorkflowEngine):
        self.engine = engine

    def suggest_workflows(self, context: RoutingContext) -> List[WorkflowSuggestion]:
        """
        Rank active definitions whose assignment rules match the context

        Each definition appears once, with its highest-priority matching rule.
        Ordered by priority descending, then by definition creation order.
        """
        suggestions = []
        for definition in self.engine.definitions.list(is_active=True):
            best: Optional[WorkflowSuggestion] = None
            for rule in definition.assignment_rules:
                reasons = match_rule(rule, context)
                if reasons is None:
                    continue
                if best is None or rule.priority > best.rule.priority:
                    best = WorkflowSuggestion(definition=definition, rule=rule, reasons=reasons)
            if best:
                suggestions.append(best)

        # definitions.list() is already in creation order and sort is stable
        suggestions.sort(key=lambda s: -s.priority)
        return suggestions

    def route_document(
        self,
        context: RoutingContext,
        actor: Actor,
        correlation_id: Optional[str] = None
    ) -> RoutingResult:
        """
        Start the best matching workflow for a document

        A document reference already bound to an instance is not routed
        again; its existing instance is returned, even when the definition
        it runs has since been deactivated or outranked.
        """
        if context.document_ref:
            bound = self.engine.list_instances(document_ref=context.document_ref)
            if bound:
                instance = bound[0]
                logger.info(
                    "Document already has a workflow",
                    extra={'resource': instance.id, 'user_id': actor.id}
                )
                return RoutingResult(
                    matched=True,
                    instance=instance,
                    definition=self.engine.definitions.get(instance.workflow_definition_id),
                    reasons=[f"Document {context.document_ref} is already bound to this workflow"],
                )

        suggestions = self.suggest_workflows(context)
        if not suggestions:
            logger.info(
                "No workflow matched document",
                extra={'resource': context.document_ref, 'user_id': actor.id}
            )
            return RoutingResult(matched=False)

        best = suggestions[0]
        if not correlation_id and context.document_ref:
            correlation_id = f"route:{context.document_ref}"

        instance = self.engine.start_workflow(
            best.definition.id,
            actor,
            initial_field_values=context.field_values,
            document_ref=context.document_ref,
            assigned_committee=context.committee,
            correlation_id=correlation_id,
        )
        log_action(
            logger, "info", f"Document routed to {best.definition.name}",
            user_id=actor.id, action="workflow.routed", resource=instance.id,
            extra={'rule_id': best.rule.id, 'priority': best.rule.priority}
        )
        return RoutingResult(
            matched=True,
            instance=instance,
            definition=best.definition,
            rule=best.rule,
            reasons=best.reasons,
        )
