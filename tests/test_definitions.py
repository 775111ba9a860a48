"""
Test suite for workflow definition module

Tests definition parsing, structural validation, the guard table, side
effect parsing and the definition registry.
"""

import pytest
import threading

from governance_engine.definitions import (
    AuditLogEffect, Condition, ConditionOperator, DocumentMoveEffect, Guard,
    NotifyEffect, Transition, VoteType, WorkflowDefinition, side_effect_from_dict,
    parse_definition, side_effect_to_dict, validate_definition,
)
from governance_engine.exceptions import NotFound, ValidationError

from conftest import board_vote_data, doc_approval_data, linear_data


class TestDefinitionParsing:
    """Test building definitions from dictionaries"""

    def test_from_dict(self):
        definition = WorkflowDefinition.from_dict(doc_approval_data())

        assert definition.id == "doc-approval"
        assert definition.initial_state().id == "draft"
        assert [t.id for t in definition.transitions_from("pending-review")] == ["approve", "reject"]
        assert definition.get_state("approved").is_final
        assert definition.get_transition("reject").requires_comment

    def test_accepts_from_to_aliases(self):
        transition = Transition.from_dict({"id": "go", "from": "a", "to": "b"})

        assert transition.from_state == "a"
        assert transition.to_state == "b"
        assert transition.label == "go"

    def test_round_trip(self):
        definition = WorkflowDefinition.from_dict(board_vote_data("super-majority"))
        restored = WorkflowDefinition.from_dict(definition.to_dict())

        assert restored.to_dict() == definition.to_dict()
        assert restored.get_transition("adopt").vote_type == VoteType.SUPER_MAJORITY

    def test_vote_type_aliases(self):
        assert VoteType.parse("two-thirds") == VoteType.SUPER_MAJORITY
        assert VoteType.parse("unanimous") == VoteType.UNANIMOUS
        assert VoteType.parse(None) is None
        with pytest.raises(ValueError):
            VoteType.parse("plurality")


class TestSideEffects:
    """Test the side effect sum type"""

    def test_parse_each_kind(self):
        notify = side_effect_from_dict({"type": "notify", "roles": ["Admin"], "message": "hi"})
        audit = side_effect_from_dict({"type": "audit", "message": "logged"})
        move = side_effect_from_dict({"type": "document", "target_state": "approved",
                                      "folder": "/Approved"})

        assert isinstance(notify, NotifyEffect)
        assert notify.recipients() == {"roles": ["Admin"], "committees": [], "users": []}
        assert isinstance(audit, AuditLogEffect)
        assert audit.severity == "info"
        assert isinstance(move, DocumentMoveEffect)
        assert side_effect_to_dict(move) == {
            "type": "document", "target_state": "approved", "folder": "/Approved"
        }

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            side_effect_from_dict({"type": "email"})


class TestGuardTable:
    """Test the ordered guard set of each transition"""

    def test_guard_order(self):
        transition = Transition(
            id="t", from_state="a", to_state="b",
            required_roles=["Board"], required_committees=["Finance"],
            conditions=[Condition(field_name="amount", operator=ConditionOperator.GREATER_THAN,
                                  value=0)],
            requires_comment=True, requires_attachments=True, requires_vote=True
        )

        assert transition.guards() == (
            Guard.ROLE, Guard.COMMITTEE, Guard.CONDITIONS,
            Guard.COMMENT, Guard.ATTACHMENTS, Guard.VOTE,
        )

    def test_table_per_definition(self):
        definition = WorkflowDefinition.from_dict(doc_approval_data())

        assert definition.guard_table() == {
            "submit": (),
            "approve": (Guard.ROLE,),
            "reject": (Guard.ROLE, Guard.COMMENT),
        }

    def test_default_vote_type(self):
        transition = Transition(id="t", from_state="a", to_state="b", requires_vote=True)
        assert transition.effective_vote_type == VoteType.SIMPLE_MAJORITY


class TestConditions:
    """Test transition condition evaluation"""

    def test_field_operators(self, clock):
        now = clock()
        values = {"amount": 5000, "tags": ["urgent"], "notes": ""}

        def check(operator, value=None, field_name="amount"):
            return Condition(field_name=field_name, operator=operator,
                             value=value).evaluate(values, now, now)

        assert check(ConditionOperator.EQUALS, 5000)
        assert check(ConditionOperator.NOT_EQUALS, 10)
        assert check(ConditionOperator.GREATER_THAN, 1000)
        assert not check(ConditionOperator.LESS_THAN, 1000)
        assert check(ConditionOperator.CONTAINS, "urgent", "tags")
        assert check(ConditionOperator.IS_EMPTY, field_name="notes")
        assert check(ConditionOperator.IS_NOT_EMPTY)
        assert not check(ConditionOperator.GREATER_THAN, 1, "missing")

    def test_time_in_state(self, clock):
        entered = clock()
        clock.advance(hours=30)
        now = clock()

        assert Condition(condition_type="time", min_hours_in_state=24).evaluate({}, entered, now)
        assert not Condition(condition_type="time", max_hours_in_state=24).evaluate({}, entered, now)


class TestValidateDefinition:
    """Test structural validation"""

    def test_valid_definitions(self):
        for data in (doc_approval_data(), linear_data(), board_vote_data()):
            assert validate_definition(WorkflowDefinition.from_dict(data)) == []

    def test_initial_state_count(self):
        data = linear_data()
        data["states"][1]["is_initial"] = True

        errors = validate_definition(WorkflowDefinition.from_dict(data))
        assert "Definition must have exactly one initial state, found 2" in errors

    def test_unknown_transition_states(self):
        data = linear_data()
        data["transitions"].append({"id": "b-to-z", "from_state": "B", "to_state": "Z"})

        errors = validate_definition(WorkflowDefinition.from_dict(data))
        assert "Transition b-to-z: unknown to state 'Z'" in errors

    def test_unreachable_state(self):
        data = linear_data()
        data["states"].append({"id": "orphan"})

        errors = validate_definition(WorkflowDefinition.from_dict(data))
        assert "State orphan is unreachable from the initial state" in errors

    def test_collects_every_problem(self):
        data = linear_data()
        data["name"] = ""
        data["states"].append({"id": "A"})
        data["fields"] = [{"name": "n", "type": "number", "default": "x",
                           "editable_in_states": ["nowhere"]}]
        data["transitions"].append({"id": "a-to-b", "from_state": "A", "to_state": "B",
                                    "vote_type": "unanimous"})

        errors = validate_definition(WorkflowDefinition.from_dict(data))

        assert "Definition name is required" in errors
        assert "Duplicate state id: A" in errors
        assert "Duplicate transition id: a-to-b" in errors
        assert "Transition a-to-b: vote type set without requiring a vote" in errors
        assert "Field n: references unknown state 'nowhere'" in errors
        assert "Field n default: n must be a number" in errors

    def test_sla_and_condition_checks(self):
        data = linear_data()
        data["states"][1]["sla"] = {"max_duration_hours": 24, "warning_at_hours": 48}
        data["transitions"][1]["conditions"] = [
            {"type": "field", "field_name": "ghost", "operator": "isNotEmpty"}
        ]

        errors = validate_definition(WorkflowDefinition.from_dict(data))
        assert "State B: SLA warning comes after max duration" in errors
        assert "Transition b-to-c: condition references unknown field 'ghost'" in errors


class TestDefinitionRegistry:
    """Test publishing and looking up definitions"""

    def test_create_and_get(self, registry):
        created = registry.create(WorkflowDefinition.from_dict(doc_approval_data()))

        assert created.registration_order == 1
        assert registry.get("doc-approval").name == "Document Approval"
        assert registry.get("missing") is None
        with pytest.raises(NotFound):
            registry.require("missing")

    def test_invalid_definition_rejected(self, registry):
        data = linear_data()
        data["states"].append({"id": "orphan"})

        with pytest.raises(ValidationError) as exc_info:
            registry.create(WorkflowDefinition.from_dict(data))

        assert "State orphan is unreachable from the initial state" in exc_info.value.errors
        assert registry.get("linear") is None

    def test_duplicate_id_rejected(self, registry):
        registry.create(WorkflowDefinition.from_dict(linear_data()))

        with pytest.raises(ValidationError):
            registry.create(WorkflowDefinition.from_dict(linear_data()))

    def test_generated_id(self, registry):
        data = linear_data()
        del data["id"]

        created = registry.create(WorkflowDefinition.from_dict(data))
        assert created.id
        assert registry.get(created.id) is not None

    def test_list_in_publication_order(self, registry):
        for data in (linear_data(), doc_approval_data(), board_vote_data()):
            registry.create(WorkflowDefinition.from_dict(data))

        assert [d.id for d in registry.list()] == ["linear", "doc-approval", "board-vote"]
        assert [d.id for d in registry.list(category="approval")] == ["doc-approval"]

    def test_activate_deactivate(self, registry):
        registry.create(WorkflowDefinition.from_dict(linear_data()))

        registry.deactivate("linear")
        assert registry.list(is_active=True) == []
        assert registry.get("linear").is_active is False

        registry.activate("linear")
        assert [d.id for d in registry.list(is_active=True)] == ["linear"]

    def test_publish_does_not_overwrite_existing(self, registry, storage, monkeypatch):
        registry.create(WorkflowDefinition.from_dict(linear_data()))
        # Another publisher passed the existence check before the first one stored
        monkeypatch.setattr(storage, "exists", lambda table, record_id: False)

        renamed = linear_data()
        renamed["name"] = "Linear v2"
        with pytest.raises(ValidationError) as exc_info:
            registry.create(WorkflowDefinition.from_dict(renamed))

        assert "already exists" in exc_info.value.message
        assert registry.get("linear").name == "Linear"

    def test_concurrent_publish_of_one_id(self, registry):
        published, rejected = [], []

        def publish(index):
            data = linear_data()
            data["name"] = f"Linear {index}"
            try:
                published.append(registry.create(WorkflowDefinition.from_dict(data)).name)
            except ValidationError:
                rejected.append(index)

        threads = [threading.Thread(target=publish, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(published) == 1
        assert len(rejected) == 7
        assert registry.get("linear").name == published[0]


class TestParseDefinition:
    """Test building definitions from untrusted data"""

    def test_valid_data(self):
        definition = parse_definition(board_vote_data("two-thirds"))

        assert definition.get_transition("adopt").vote_type == VoteType.SUPER_MAJORITY

    def test_unknown_vocabulary_reported_together(self):
        data = board_vote_data("plurality")
        data["fields"][0]["type"] = "bogus"
        data["transitions"][0]["conditions"] = [
            {"field_name": "resolution_number", "operator": "roughly", "value": "R-1"}
        ]
        data["transitions"][0]["actions"] = [{"type": "teleport"}]
        data["states"].append({"id": "orphan"})

        with pytest.raises(ValidationError) as exc_info:
            parse_definition(data)

        assert exc_info.value.errors == [
            "Transition adopt: unknown vote type 'plurality'",
            "Transition adopt: unknown side effect type 'teleport'",
            "Transition adopt: unknown condition operator 'roughly'",
            "Field resolution_number: unknown field type 'bogus'",
            "State orphan is unreachable from the initial state",
        ]

    def test_entries_missing_keys(self):
        data = linear_data()
        data["transitions"].append({"from_state": "A", "to_state": "C"})
        data["automations"] = [{"id": "nudge", "state_id": "B"}]

        with pytest.raises(ValidationError) as exc_info:
            parse_definition(data)

        assert "Transition #3: missing id" in exc_info.value.errors
        assert "Automation #1: missing after_hours" in exc_info.value.errors
