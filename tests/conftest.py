"""
Shared fixtures for the governance engine test suite
"""

import pytest
from datetime import datetime, timezone, timedelta

from governance_engine.storage import InMemoryStorage
from governance_engine.audit import AuditChain
from governance_engine.collaborators import (
    Actor, InMemoryDocumentStateCollaborator, InMemoryMembershipDirectory,
    InMemoryNotificationDispatcher,
)
from governance_engine.definitions import DefinitionRegistry, WorkflowDefinition
from governance_engine.workflows import WorkflowEngine


class FakeClock:
    """Deterministic clock that moves forward one second per reading"""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, hours=0, minutes=0):
        self.now = self.now + timedelta(hours=hours, minutes=minutes)


@pytest.fixture
def storage():
    """Create in-memory storage for testing"""
    return InMemoryStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_chain(storage, clock):
    """Create audit chain for testing"""
    return AuditChain(storage, default_partition="test-partition", backoff_seconds=0, clock=clock)


@pytest.fixture
def notifier():
    return InMemoryNotificationDispatcher()


@pytest.fixture
def documents():
    return InMemoryDocumentStateCollaborator()


@pytest.fixture
def membership():
    return InMemoryMembershipDirectory({
        "Board": ["board-1", "board-2", "board-3"],
        "Ethics": ["ethics-1", "ethics-2"],
    })


@pytest.fixture
def registry(storage):
    return DefinitionRegistry(storage)


@pytest.fixture
def engine(storage, audit_chain, registry, notifier, documents, membership, clock):
    """Create workflow engine for testing"""
    return WorkflowEngine(
        storage,
        audit=audit_chain,
        definitions=registry,
        notifier=notifier,
        documents=documents,
        membership=membership,
        clock=clock,
    )


@pytest.fixture
def clerk():
    return Actor(id="clerk-1", display_name="Committee Clerk", roles=["Clerk"])


@pytest.fixture
def board_member():
    return Actor(id="board-1", display_name="Board Member", roles=["Board"], committees=["Board"])


def doc_approval_data():
    """draft -> pending-review -> approved | rejected"""
    return {
        'id': 'doc-approval',
        'name': 'Document Approval',
        'category': 'approval',
        'states': [
            {'id': 'draft', 'label': 'Draft', 'is_initial': True},
            {'id': 'pending-review', 'label': 'Pending Review'},
            {'id': 'approved', 'label': 'Approved', 'is_final': True},
            {'id': 'rejected', 'label': 'Rejected', 'is_final': True},
        ],
        'transitions': [
            {'id': 'submit', 'from_state': 'draft', 'to_state': 'pending-review'},
            {'id': 'approve', 'from_state': 'pending-review', 'to_state': 'approved',
             'required_roles': ['Board']},
            {'id': 'reject', 'from_state': 'pending-review', 'to_state': 'rejected',
             'required_roles': ['Board'], 'requires_comment': True},
        ],
    }


def linear_data():
    """A -> B -> C"""
    return {
        'id': 'linear',
        'name': 'Linear',
        'states': [
            {'id': 'A', 'is_initial': True},
            {'id': 'B'},
            {'id': 'C', 'is_final': True},
        ],
        'transitions': [
            {'id': 'a-to-b', 'from_state': 'A', 'to_state': 'B'},
            {'id': 'b-to-c', 'from_state': 'B', 'to_state': 'C'},
        ],
    }


def board_vote_data(vote_type='simple-majority'):
    """proposed -> (vote) -> adopted"""
    return {
        'id': 'board-vote',
        'name': 'Board Resolution',
        'states': [
            {'id': 'proposed', 'is_initial': True},
            {'id': 'adopted', 'is_final': True},
        ],
        'transitions': [
            {'id': 'adopt', 'from_state': 'proposed', 'to_state': 'adopted',
             'requires_vote': True, 'vote_type': vote_type},
        ],
        'fields': [
            {'name': 'resolution_number', 'label': 'Resolution Number', 'type': 'text'},
        ],
    }


@pytest.fixture
def publish(registry):
    """Publish a definition from a plain dictionary"""
    def _publish(data):
        return registry.create(WorkflowDefinition.from_dict(data))
    return _publish


def fail_once(monkeypatch, target, name, error=TimeoutError):
    """Make target.name raise on its first call, then behave normally"""
    original = getattr(target, name)
    calls = []

    def wrapper(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise error(f"{name} timed out")
        return original(*args, **kwargs)

    monkeypatch.setattr(target, name, wrapper)
    return calls
