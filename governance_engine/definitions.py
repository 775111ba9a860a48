"""
Workflow Definition Module

Declarative description of an approval or process type: states, guarded
transitions, custom fields, assignment rules, automations and settings.
Definitions are pure data plus validation; they are immutable once published
and versioned by convention (publish a new id/version, deactivate the old).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, Union
import uuid

from .exceptions import Forbidden, GovernanceError, GuardFailed, NotFound, ValidationError
from .fields import FieldSchema, FieldType
from .logging_config import get_logger
from .storage import StorageInterface, StorageRecord


logger = get_logger("governance.definitions")

DEFINITIONS_TABLE = "workflow_definitions"


class VoteType(Enum):
    """Quorum rules for vote-gated transitions"""
    SIMPLE_MAJORITY = "simple-majority"
    SUPER_MAJORITY = "super-majority"
    UNANIMOUS = "unanimous"

    @classmethod
    def parse(cls, value: Union[str, 'VoteType', None]) -> Optional['VoteType']:
        if value is None or isinstance(value, VoteType):
            return value
        if value == "two-thirds":
            return cls.SUPER_MAJORITY
        return cls(value)


class ConditionOperator(Enum):
    """Comparison operators for field conditions"""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


@dataclass
class Condition:
    """
    Precondition of a transition

    A ``field`` condition compares an instance field value with ``value``.
    A ``time`` condition bounds the hours spent in the current state.
    """
    condition_type: str = "field"
    field_name: Optional[str] = None
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: Any = None
    min_hours_in_state: Optional[float] = None
    max_hours_in_state: Optional[float] = None

    def evaluate(self, field_values: Dict[str, Any], state_entered_at: datetime,
                 now: datetime) -> bool:
        if self.condition_type == "time":
            hours = (now - state_entered_at).total_seconds() / 3600
            if self.min_hours_in_state is not None and hours < self.min_hours_in_state:
                return False
            if self.max_hours_in_state is not None and hours > self.max_hours_in_state:
                return False
            return True

        actual = field_values.get(self.field_name)
        op = self.operator
        if op == ConditionOperator.EQUALS:
            return actual == self.value
        if op == ConditionOperator.NOT_EQUALS:
            return actual != self.value
        if op == ConditionOperator.IS_EMPTY:
            return actual in (None, "", [], {})
        if op == ConditionOperator.IS_NOT_EMPTY:
            return actual not in (None, "", [], {})
        if actual is None:
            return False
        if op == ConditionOperator.CONTAINS:
            if isinstance(actual, list):
                return self.value in actual
            return str(self.value) in str(actual)
        try:
            if op == ConditionOperator.GREATER_THAN:
                return actual > self.value
            if op == ConditionOperator.LESS_THAN:
                return actual < self.value
        except TypeError:
            return False
        return False

    def describe(self) -> str:
        if self.condition_type == "time":
            return (f"time in state between {self.min_hours_in_state} "
                    f"and {self.max_hours_in_state} hours")
        return f"{self.field_name} {self.operator.value} {self.value!r}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.condition_type,
            'field_name': self.field_name,
            'operator': self.operator.value,
            'value': self.value,
            'min_hours_in_state': self.min_hours_in_state,
            'max_hours_in_state': self.max_hours_in_state,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Condition':
        return cls(
            condition_type=data.get('type', 'field'),
            field_name=data.get('field_name'),
            operator=ConditionOperator(data.get('operator', 'equals')),
            value=data.get('value'),
            min_hours_in_state=data.get('min_hours_in_state'),
            max_hours_in_state=data.get('max_hours_in_state'),
        )


# Side effects are declared on states and transitions and dispatched to
# collaborators; the engine never performs them itself.

@dataclass
class NotifyEffect:
    """Notify roles, committees or users"""
    roles: List[str] = field(default_factory=list)
    committees: List[str] = field(default_factory=list)
    users: List[str] = field(default_factory=list)
    message: str = ""

    kind = "notify"

    def recipients(self) -> Dict[str, List[str]]:
        return {'roles': list(self.roles), 'committees': list(self.committees),
                'users': list(self.users)}


@dataclass
class AuditLogEffect:
    """Record an extra audit event"""
    message: str = ""
    severity: str = "info"

    kind = "audit"


@dataclass
class DocumentMoveEffect:
    """Move the linked document to another document state or folder"""
    target_state: str = ""
    folder: Optional[str] = None

    kind = "document"


SideEffect = Union[NotifyEffect, AuditLogEffect, DocumentMoveEffect]


def side_effect_to_dict(effect: SideEffect) -> Dict[str, Any]:
    if isinstance(effect, NotifyEffect):
        return {'type': 'notify', 'roles': effect.roles, 'committees': effect.committees,
                'users': effect.users, 'message': effect.message}
    if isinstance(effect, AuditLogEffect):
        return {'type': 'audit', 'message': effect.message, 'severity': effect.severity}
    return {'type': 'document', 'target_state': effect.target_state, 'folder': effect.folder}


def side_effect_from_dict(data: Dict[str, Any]) -> SideEffect:
    effect_type = data.get('type')
    if effect_type == 'notify':
        return NotifyEffect(
            roles=list(data.get('roles') or []),
            committees=list(data.get('committees') or []),
            users=list(data.get('users') or []),
            message=data.get('message', ''),
        )
    if effect_type == 'audit':
        return AuditLogEffect(message=data.get('message', ''),
                              severity=data.get('severity', 'info'))
    if effect_type == 'document':
        return DocumentMoveEffect(target_state=data.get('target_state', ''),
                                  folder=data.get('folder'))
    raise ValidationError(f"Unknown side effect type: {effect_type}")


@dataclass
class SLA:
    """Time limits for staying in a state, in hours"""
    max_duration_hours: float
    warning_at_hours: Optional[float] = None
    escalate_to: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_duration_hours': self.max_duration_hours,
            'warning_at_hours': self.warning_at_hours,
            'escalate_to': self.escalate_to,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['SLA']:
        if not data:
            return None
        return cls(
            max_duration_hours=data['max_duration_hours'],
            warning_at_hours=data.get('warning_at_hours'),
            escalate_to=data.get('escalate_to'),
        )


@dataclass
class State:
    """A state of the workflow state machine"""
    id: str
    label: str = ""
    description: str = ""
    is_initial: bool = False
    is_final: bool = False
    allowed_actions: List[str] = field(default_factory=list)
    sla: Optional[SLA] = None
    on_enter: List[SideEffect] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'description': self.description,
            'is_initial': self.is_initial,
            'is_final': self.is_final,
            'allowed_actions': list(self.allowed_actions),
            'sla': self.sla.to_dict() if self.sla else None,
            'on_enter': [side_effect_to_dict(e) for e in self.on_enter],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'State':
        return cls(
            id=data['id'],
            label=data.get('label') or data['id'],
            description=data.get('description', ''),
            is_initial=bool(data.get('is_initial', False)),
            is_final=bool(data.get('is_final', False)),
            allowed_actions=list(data.get('allowed_actions') or []),
            sla=SLA.from_dict(data.get('sla')),
            on_enter=[side_effect_from_dict(e) for e in data.get('on_enter') or []],
        )


class Guard(Enum):
    """Transition guards, in evaluation order"""
    ROLE = "role"
    COMMITTEE = "committee"
    CONDITIONS = "conditions"
    COMMENT = "comment"
    ATTACHMENTS = "attachments"
    VOTE = "vote"


class GuardOutcome(Enum):
    """Result of evaluating a transition's guards"""
    PASSED = "passed"
    ROLE_MISSING = "role_missing"
    COMMITTEE_MISSING = "committee_missing"
    CONDITIONS_UNMET = "conditions_unmet"
    COMMENT_REQUIRED = "comment_required"
    ATTACHMENTS_REQUIRED = "attachments_required"
    VOTE_REQUIRED = "vote_required"


# Failing outcome of each guard
GUARD_FAILURE_OUTCOMES: Dict[Guard, GuardOutcome] = {
    Guard.ROLE: GuardOutcome.ROLE_MISSING,
    Guard.COMMITTEE: GuardOutcome.COMMITTEE_MISSING,
    Guard.CONDITIONS: GuardOutcome.CONDITIONS_UNMET,
    Guard.COMMENT: GuardOutcome.COMMENT_REQUIRED,
    Guard.ATTACHMENTS: GuardOutcome.ATTACHMENTS_REQUIRED,
    Guard.VOTE: GuardOutcome.VOTE_REQUIRED,
}

# Exception raised for each rejecting outcome. VOTE_REQUIRED is absent on
# purpose: it opens a vote session instead of failing.
GUARD_ERRORS: Dict[GuardOutcome, Type[GovernanceError]] = {
    GuardOutcome.ROLE_MISSING: Forbidden,
    GuardOutcome.COMMITTEE_MISSING: Forbidden,
    GuardOutcome.CONDITIONS_UNMET: GuardFailed,
    GuardOutcome.COMMENT_REQUIRED: GuardFailed,
    GuardOutcome.ATTACHMENTS_REQUIRED: GuardFailed,
}


@dataclass
class Transition:
    """A guarded edge between two states"""
    id: str
    from_state: str
    to_state: str
    label: str = ""
    required_roles: List[str] = field(default_factory=list)
    required_committees: List[str] = field(default_factory=list)
    conditions: List[Condition] = field(default_factory=list)
    requires_comment: bool = False
    requires_vote: bool = False
    vote_type: Optional[VoteType] = None
    requires_attachments: bool = False
    min_attachments: int = 1
    confirmation_message: Optional[str] = None
    actions: List[SideEffect] = field(default_factory=list)

    def guards(self) -> Tuple[Guard, ...]:
        """Guards declared by this transition, in evaluation order"""
        declared = []
        if self.required_roles:
            declared.append(Guard.ROLE)
        if self.required_committees:
            declared.append(Guard.COMMITTEE)
        if self.conditions:
            declared.append(Guard.CONDITIONS)
        if self.requires_comment:
            declared.append(Guard.COMMENT)
        if self.requires_attachments:
            declared.append(Guard.ATTACHMENTS)
        if self.requires_vote:
            declared.append(Guard.VOTE)
        return tuple(declared)

    @property
    def effective_vote_type(self) -> VoteType:
        return self.vote_type or VoteType.SIMPLE_MAJORITY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'from_state': self.from_state,
            'to_state': self.to_state,
            'required_roles': list(self.required_roles),
            'required_committees': list(self.required_committees),
            'conditions': [c.to_dict() for c in self.conditions],
            'requires_comment': self.requires_comment,
            'requires_vote': self.requires_vote,
            'vote_type': self.vote_type.value if self.vote_type else None,
            'requires_attachments': self.requires_attachments,
            'min_attachments': self.min_attachments,
            'confirmation_message': self.confirmation_message,
            'actions': [side_effect_to_dict(a) for a in self.actions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transition':
        return cls(
            id=data['id'],
            from_state=data.get('from_state', data.get('from')),
            to_state=data.get('to_state', data.get('to')),
            label=data.get('label') or data['id'],
            required_roles=list(data.get('required_roles') or []),
            required_committees=list(data.get('required_committees') or []),
            conditions=[Condition.from_dict(c) for c in data.get('conditions') or []],
            requires_comment=bool(data.get('requires_comment', False)),
            requires_vote=bool(data.get('requires_vote', False)),
            vote_type=VoteType.parse(data.get('vote_type')),
            requires_attachments=bool(data.get('requires_attachments', False)),
            min_attachments=data.get('min_attachments', 1),
            confirmation_message=data.get('confirmation_message'),
            actions=[side_effect_from_dict(a) for a in data.get('actions') or []],
        )


@dataclass
class AssignmentRule:
    """Ranked matcher used by the router; empty predicates match anything"""
    id: str
    priority: int = 0
    document_types: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    committees: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'priority': self.priority,
            'document_types': list(self.document_types),
            'categories': list(self.categories),
            'committees': list(self.committees),
            'tags': list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssignmentRule':
        return cls(
            id=data['id'],
            priority=data.get('priority', 0),
            document_types=list(data.get('document_types') or []),
            categories=list(data.get('categories') or []),
            committees=list(data.get('committees') or []),
            tags=list(data.get('tags') or []),
        )


@dataclass
class Automation:
    """Time-elapsed trigger bound to a state"""
    id: str
    state_id: str
    after_hours: float
    name: str = ""
    actions: List[SideEffect] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'trigger': 'time_elapsed',
            'state_id': self.state_id,
            'after_hours': self.after_hours,
            'actions': [side_effect_to_dict(a) for a in self.actions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Automation':
        return cls(
            id=data['id'],
            state_id=data['state_id'],
            after_hours=data['after_hours'],
            name=data.get('name', ''),
            actions=[side_effect_from_dict(a) for a in data.get('actions') or []],
        )


@dataclass
class WorkflowSettings:
    """Access gates and storage identifiers of a definition"""
    allowed_access_levels: List[str] = field(default_factory=list)
    allowed_roles: List[str] = field(default_factory=list)
    allowed_committees: List[str] = field(default_factory=list)
    retention_days: Optional[int] = None
    site_collection: Optional[str] = None  # audit partition
    document_library: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed_access_levels': list(self.allowed_access_levels),
            'allowed_roles': list(self.allowed_roles),
            'allowed_committees': list(self.allowed_committees),
            'retention_days': self.retention_days,
            'site_collection': self.site_collection,
            'document_library': self.document_library,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'WorkflowSettings':
        data = data or {}
        return cls(
            allowed_access_levels=list(data.get('allowed_access_levels') or []),
            allowed_roles=list(data.get('allowed_roles') or []),
            allowed_committees=list(data.get('allowed_committees') or []),
            retention_days=data.get('retention_days'),
            site_collection=data.get('site_collection'),
            document_library=data.get('document_library'),
        )


@dataclass
class WorkflowDefinition(StorageRecord):
    """Workflow definition (template)"""
    name: str
    states: List[State]
    transitions: List[Transition]
    description: str = ""
    category: str = ""
    version: str = "1.0"
    is_active: bool = True
    created_by: str = ""
    fields: List[FieldSchema] = field(default_factory=list)
    assignment_rules: List[AssignmentRule] = field(default_factory=list)
    automations: List[Automation] = field(default_factory=list)
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    registration_order: int = 0

    def initial_state(self) -> State:
        for state in self.states:
            if state.is_initial:
                return state
        raise ValidationError(f"Definition {self.id} has no initial state")

    def get_state(self, state_id: str) -> Optional[State]:
        for state in self.states:
            if state.id == state_id:
                return state
        return None

    def get_transition(self, transition_id: str) -> Optional[Transition]:
        for transition in self.transitions:
            if transition.id == transition_id:
                return transition
        return None

    def transitions_from(self, state_id: str) -> List[Transition]:
        return [t for t in self.transitions if t.from_state == state_id]

    def get_field(self, name: str) -> Optional[FieldSchema]:
        for schema in self.fields:
            if schema.name == name:
                return schema
        return None

    def guard_table(self) -> Dict[str, Tuple[Guard, ...]]:
        """Lookup from transition id to its ordered guard set"""
        return {t.id: t.guards() for t in self.transitions}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'version': self.version,
            'is_active': self.is_active,
            'created_by': self.created_by,
            'states': [s.to_dict() for s in self.states],
            'transitions': [t.to_dict() for t in self.transitions],
            'fields': [f.to_dict() for f in self.fields],
            'assignment_rules': [r.to_dict() for r in self.assignment_rules],
            'automations': [a.to_dict() for a in self.automations],
            'settings': self.settings.to_dict(),
            'registration_order': self.registration_order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowDefinition':
        now = datetime.now(timezone.utc)
        created_at = data.get('created_at') or now
        updated_at = data.get('updated_at') or created_at
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)

        return cls(
            id=data.get('id') or "",
            created_at=created_at,
            updated_at=updated_at,
            name=data.get('name', ''),
            description=data.get('description', ''),
            category=data.get('category', ''),
            version=str(data.get('version', '1.0')),
            is_active=bool(data.get('is_active', True)),
            created_by=data.get('created_by', ''),
            states=[State.from_dict(s) for s in data.get('states') or []],
            transitions=[Transition.from_dict(t) for t in data.get('transitions') or []],
            fields=[FieldSchema.from_dict(f) for f in data.get('fields') or []],
            assignment_rules=[AssignmentRule.from_dict(r) for r in data.get('assignment_rules') or []],
            automations=[Automation.from_dict(a) for a in data.get('automations') or []],
            settings=WorkflowSettings.from_dict(data.get('settings')),
            registration_order=data.get('registration_order', 0),
        )


def _duplicates(values: List[str]) -> List[str]:
    seen = set()
    dupes = []
    for value in values:
        if value in seen and value not in dupes:
            dupes.append(value)
        seen.add(value)
    return dupes


def validate_definition(definition: WorkflowDefinition) -> List[str]:
    """
    Check every structural invariant of a definition

    Returns:
        All violations found, empty when the definition is valid
    """
    errors = []

    if not definition.name or not definition.name.strip():
        errors.append("Definition name is required")

    if not definition.states:
        errors.append("Definition must declare at least one state")

    state_ids = [s.id for s in definition.states]
    known_states = set(state_ids)

    for dupe in _duplicates(state_ids):
        errors.append(f"Duplicate state id: {dupe}")

    initial = [s for s in definition.states if s.is_initial]
    if definition.states and len(initial) != 1:
        errors.append(f"Definition must have exactly one initial state, found {len(initial)}")

    for state in definition.states:
        if state.sla:
            if state.sla.max_duration_hours <= 0:
                errors.append(f"State {state.id}: SLA max duration must be positive")
            if (state.sla.warning_at_hours is not None
                    and state.sla.warning_at_hours > state.sla.max_duration_hours):
                errors.append(f"State {state.id}: SLA warning comes after max duration")

    for dupe in _duplicates([t.id for t in definition.transitions]):
        errors.append(f"Duplicate transition id: {dupe}")

    for transition in definition.transitions:
        if transition.from_state not in known_states:
            errors.append(f"Transition {transition.id}: unknown from state '{transition.from_state}'")
        if transition.to_state not in known_states:
            errors.append(f"Transition {transition.id}: unknown to state '{transition.to_state}'")
        if transition.vote_type and not transition.requires_vote:
            errors.append(f"Transition {transition.id}: vote type set without requiring a vote")
        if transition.requires_attachments and transition.min_attachments < 1:
            errors.append(f"Transition {transition.id}: min attachments must be at least 1")
        for condition in transition.conditions:
            if condition.condition_type == "field" and not definition.get_field(condition.field_name or ""):
                errors.append(
                    f"Transition {transition.id}: condition references unknown field "
                    f"'{condition.field_name}'"
                )

    if len(initial) == 1:
        reachable = {initial[0].id}
        frontier = [initial[0].id]
        while frontier:
            current = frontier.pop()
            for transition in definition.transitions_from(current):
                if transition.to_state in known_states and transition.to_state not in reachable:
                    reachable.add(transition.to_state)
                    frontier.append(transition.to_state)
        for state_id in state_ids:
            if state_id not in reachable:
                errors.append(f"State {state_id} is unreachable from the initial state")

    for dupe in _duplicates([f.name for f in definition.fields]):
        errors.append(f"Duplicate field name: {dupe}")

    for schema in definition.fields:
        for state_id in schema.referenced_states():
            if state_id not in known_states:
                errors.append(f"Field {schema.name}: references unknown state '{state_id}'")
        default_errors = schema.validate_value(schema.default)
        errors.extend(f"Field {schema.name} default: {e}" for e in default_errors)

    for automation in definition.automations:
        if automation.state_id not in known_states:
            errors.append(f"Automation {automation.id}: bound to unknown state '{automation.state_id}'")
        if automation.after_hours < 0:
            errors.append(f"Automation {automation.id}: elapsed hours must not be negative")

    for dupe in _duplicates([r.id for r in definition.assignment_rules]):
        errors.append(f"Duplicate assignment rule id: {dupe}")

    # Keep order stable but drop repeats (e.g. the same unknown state twice)
    return list(dict.fromkeys(errors))


_EFFECT_TYPES = ('notify', 'audit', 'document')


def _entries(data: Dict[str, Any], key: str, required: Tuple[str, ...],
             label: str, errors: List[str]) -> List[Dict[str, Any]]:
    kept = []
    for index, entry in enumerate(data.get(key) or []):
        if not isinstance(entry, dict):
            errors.append(f"{label} #{index + 1}: expected an object")
            continue
        missing = [name for name in required if entry.get(name) in (None, "")]
        if missing:
            errors.append(f"{label} #{index + 1}: missing {', '.join(missing)}")
            continue
        kept.append(dict(entry))
    return kept


def _effects(entry: Dict[str, Any], key: str, owner: str, errors: List[str]) -> None:
    effects = []
    for effect in entry.get(key) or []:
        effect_type = effect.get('type') if isinstance(effect, dict) else None
        if effect_type not in _EFFECT_TYPES:
            errors.append(f"{owner}: unknown side effect type '{effect_type}'")
            continue
        effects.append(effect)
    entry[key] = effects


def _enum_value(entry: Dict[str, Any], key: str, enum: Type[Enum], label: str,
                owner: str, errors: List[str]) -> None:
    value = entry.get(key)
    if value is None or isinstance(value, enum) or (enum is VoteType and value == "two-thirds"):
        return
    if value not in [member.value for member in enum]:
        errors.append(f"{owner}: unknown {label} '{value}'")
        del entry[key]


def parse_definition(data: Dict[str, Any]) -> WorkflowDefinition:
    """
    Build a definition from untrusted data

    Unknown vocabulary (field types, condition operators, vote types, side
    effect types) and entries missing their keys are reported together with
    the structural violations of the rest of the definition.

    Raises:
        ValidationError: listing every violation found
    """
    errors: List[str] = []
    cleaned = dict(data)

    states = _entries(data, 'states', ('id',), "State", errors)
    for state in states:
        _effects(state, 'on_enter', f"State {state['id']}", errors)
        sla = state.get('sla')
        if isinstance(sla, dict) and sla and sla.get('max_duration_hours') is None:
            errors.append(f"State {state['id']}: SLA max duration is required")
            state['sla'] = None
    cleaned['states'] = states

    transitions = _entries(data, 'transitions', ('id',), "Transition", errors)
    for transition in transitions:
        owner = f"Transition {transition['id']}"
        _enum_value(transition, 'vote_type', VoteType, "vote type", owner, errors)
        _effects(transition, 'actions', owner, errors)
        conditions = [dict(c) for c in transition.get('conditions') or [] if isinstance(c, dict)]
        for condition in conditions:
            _enum_value(condition, 'operator', ConditionOperator, "condition operator",
                        owner, errors)
        transition['conditions'] = conditions
    cleaned['transitions'] = transitions

    fields = _entries(data, 'fields', ('name',), "Field", errors)
    for schema in fields:
        _enum_value(schema, 'type', FieldType, "field type", f"Field {schema['name']}", errors)
    cleaned['fields'] = fields

    automations = _entries(data, 'automations', ('id', 'state_id', 'after_hours'),
                           "Automation", errors)
    for automation in automations:
        _effects(automation, 'actions', f"Automation {automation['id']}", errors)
    cleaned['automations'] = automations

    cleaned['assignment_rules'] = _entries(data, 'assignment_rules', ('id',),
                                           "Assignment rule", errors)

    definition = WorkflowDefinition.from_dict(cleaned)
    if errors:
        errors.extend(validate_definition(definition))
        raise ValidationError(
            f"Invalid workflow definition: {len(errors)} problem(s)",
            errors=list(dict.fromkeys(errors)),
            details={'definition_id': definition.id or None}
        )
    return definition


class DefinitionRegistry:
    """Stores, validates and looks up workflow definitions"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def create(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """
        Validate and publish a definition

        Raises:
            ValidationError: listing every violation found
        """
        if not definition.id:
            definition.id = str(uuid.uuid4())

        errors = validate_definition(definition)
        if self.storage.exists(DEFINITIONS_TABLE, definition.id):
            errors.append(
                f"Definition {definition.id} already exists; publish a new version under a new id"
            )
        if errors:
            raise ValidationError(
                f"Invalid workflow definition: {len(errors)} problem(s)",
                errors=errors,
                details={'definition_id': definition.id}
            )

        now = datetime.now(timezone.utc)
        definition.created_at = now
        definition.updated_at = now
        definition.registration_order = self.storage.count(DEFINITIONS_TABLE) + 1

        if not self.storage.compare_and_set(DEFINITIONS_TABLE, definition.id, 'id', None,
                                            definition.to_dict()):
            raise ValidationError(
                f"Definition {definition.id} already exists; publish a new version under a new id",
                details={'definition_id': definition.id}
            )
        logger.info(
            f"Workflow definition published: {definition.name}",
            extra={'resource': definition.id, 'user_id': definition.created_by or None}
        )
        return definition

    def get(self, definition_id: str) -> Optional[WorkflowDefinition]:
        """Get a workflow definition by ID"""
        data = self.storage.load(DEFINITIONS_TABLE, definition_id)
        if not data:
            return None
        return WorkflowDefinition.from_dict(data)

    def require(self, definition_id: str) -> WorkflowDefinition:
        definition = self.get(definition_id)
        if not definition:
            raise NotFound("WorkflowDefinition", definition_id)
        return definition

    def list(self, category: Optional[str] = None,
             is_active: Optional[bool] = None) -> List[WorkflowDefinition]:
        """List definitions in publication order, optionally filtered"""
        definitions = [WorkflowDefinition.from_dict(d) for d in self.storage.load_all(DEFINITIONS_TABLE)]
        if category is not None:
            definitions = [d for d in definitions if d.category == category]
        if is_active is not None:
            definitions = [d for d in definitions if d.is_active == is_active]
        return sorted(definitions, key=lambda d: (d.registration_order, d.created_at, d.id))

    def _set_active(self, definition_id: str, active: bool) -> WorkflowDefinition:
        definition = self.require(definition_id)
        definition.is_active = active
        definition.updated_at = datetime.now(timezone.utc)
        self.storage.save(DEFINITIONS_TABLE, definition_id, definition.to_dict())
        logger.info(
            f"Workflow definition {'activated' if active else 'deactivated'}",
            extra={'resource': definition_id}
        )
        return definition

    def activate(self, definition_id: str) -> WorkflowDefinition:
        """Activate a workflow definition"""
        return self._set_active(definition_id, True)

    def deactivate(self, definition_id: str) -> WorkflowDefinition:
        """Deactivate a workflow definition; existing instances keep running"""
        return self._set_active(definition_id, False)
