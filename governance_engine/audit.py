"""
Audit Chain Module

Append-only, partitioned audit log with SHA-256 hash linking. Every state
change the workflow engine performs is only durable once it has been appended
here. Appends are idempotent per correlation id, and the chain head of each
partition is advanced with a compare-and-set on its head record so concurrent
writers never fork the chain.
"""

import hashlib
import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .config import get_config
from .exceptions import Conflict, IntegrityViolation
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


logger = get_logger("governance.audit")

GENESIS_HASH = "0" * 64

EVENTS_TABLE = "audit_events"
HEADS_TABLE = "audit_chain_heads"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _jsonable(value: Any) -> Any:
    """Normalise payload values so hashing is deterministic"""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def canonical_form(action: str, actor: str, correlation_id: str,
                   payload: Dict[str, Any], previous_hash: str,
                   partition: str, timestamp: str) -> str:
    """Deterministic, key-sorted compact JSON of the hashed fields"""
    data = {
        'action': action,
        'actor': actor,
        'correlation_id': correlation_id,
        'payload': payload,
        'previous_hash': previous_hash,
        'partition': partition,
        'timestamp': timestamp,
    }
    return json.dumps(data, sort_keys=True, separators=(',', ':'))


def compute_hash(canonical: str) -> str:
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event linked to its predecessor by hash
    """
    correlation_id: str
    action: str
    actor: str
    timestamp: datetime
    partition: str
    previous_hash: str
    current_hash: str = ""
    sequence: int = 0
    payload: Dict[str, Any] = field(default_factory=dict)

    def calculate_hash(self) -> str:
        """Calculate SHA-256 hash over the canonical form of this event"""
        return compute_hash(canonical_form(
            self.action,
            self.actor,
            self.correlation_id,
            self.payload,
            self.previous_hash,
            self.partition,
            self.timestamp.isoformat(),
        ))

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['timestamp'] = self.timestamp.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        for key in ('created_at', 'updated_at', 'timestamp'):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        return cls(**data)


class AuditChain:
    """
    Hash-chained audit log, one independent chain per partition
    """

    def __init__(
        self,
        storage: StorageInterface,
        default_partition: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        settings = get_config()
        self.storage = storage
        self.default_partition = default_partition or settings.default_audit_partition
        self.max_attempts = max_attempts or settings.audit_append_max_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None
            else settings.audit_append_backoff_seconds
        )
        self.clock = clock or _utcnow

    # Head records

    def _load_head(self, partition: str) -> Optional[Dict[str, Any]]:
        return self.storage.load(HEADS_TABLE, partition)

    def get_head(self, partition: Optional[str] = None) -> str:
        """Get the hash of the most recent event in a partition"""
        head = self._load_head(partition or self.default_partition)
        if head:
            return head['head_hash']
        return GENESIS_HASH

    def partitions(self) -> List[str]:
        """List every partition that has at least one event"""
        return sorted(head['id'] for head in self.storage.load_all(HEADS_TABLE))

    def _persist_committed(self, head: Optional[Dict[str, Any]]) -> None:
        """Make sure the event the head points at is stored in the events table"""
        if not head or not head.get('event'):
            return
        event_data = head['event']
        if not self.storage.exists(EVENTS_TABLE, event_data['id']):
            self.storage.save(EVENTS_TABLE, event_data['id'], event_data)

    # Lookups

    def find_by_correlation(self, correlation_id: str,
                            partition: Optional[str] = None) -> Optional[AuditEvent]:
        """Find the event recorded under a correlation id, if any"""
        partition = partition or self.default_partition
        head = self._load_head(partition)
        if head and head.get('event', {}).get('correlation_id') == correlation_id:
            return AuditEvent.from_dict(head['event'])

        matches = self.storage.find(EVENTS_TABLE, {
            'partition': partition,
            'correlation_id': correlation_id
        })
        if matches:
            return AuditEvent.from_dict(matches[0])
        return None

    def get_event(self, event_id: str) -> Optional[AuditEvent]:
        """Get a specific audit event by ID"""
        data = self.storage.load(EVENTS_TABLE, event_id)
        if data:
            return AuditEvent.from_dict(data)
        return None

    def _partition_events(self, partition: str) -> List[AuditEvent]:
        events_data = self.storage.find(EVENTS_TABLE, {'partition': partition})
        known = {data['id'] for data in events_data}

        # A committed head whose event write has not landed yet still counts
        head = self._load_head(partition)
        if head and head.get('event') and head['event']['id'] not in known:
            events_data.append(head['event'])

        events = [AuditEvent.from_dict(data) for data in events_data]
        events.sort(key=lambda e: (e.timestamp, e.sequence))
        return events

    def get_events(self, partition: Optional[str] = None,
                   correlation_prefix: Optional[str] = None,
                   action: Optional[str] = None) -> List[AuditEvent]:
        """
        Get events of a partition in chain order

        Args:
            partition: Audit partition (defaults to the configured partition)
            correlation_prefix: Only events whose correlation id starts with this
            action: Only events with this action name

        Returns:
            List of AuditEvent objects sorted by timestamp then sequence
        """
        events = self._partition_events(partition or self.default_partition)
        if correlation_prefix:
            events = [e for e in events if e.correlation_id.startswith(correlation_prefix)]
        if action:
            events = [e for e in events if e.action == action]
        return events

    def count_events(self, partition: Optional[str] = None) -> int:
        return len(self._partition_events(partition or self.default_partition))

    # Append

    def append(
        self,
        action: str,
        actor: str,
        payload: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        partition: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an event to a partition's chain

        If an event with the same correlation id already exists in the
        partition it is returned unchanged and nothing is written.

        Raises:
            Conflict: if the head could not be advanced within the retry budget
        """
        partition = partition or self.default_partition
        correlation_id = correlation_id or str(uuid.uuid4())
        payload = _jsonable(payload or {})

        for attempt in range(self.max_attempts):
            existing = self.find_by_correlation(correlation_id, partition)
            if existing:
                logger.debug(
                    "Idempotent replay of audit event",
                    extra={'correlation_id': correlation_id, 'partition': partition}
                )
                return existing

            head = self._load_head(partition)
            self._persist_committed(head)

            previous_hash = head['head_hash'] if head else GENESIS_HASH
            sequence = head['sequence'] + 1 if head else 1
            timestamp = self.clock()
            if head and head.get('event'):
                # Chain order is timestamp order, so never step back in time
                last = datetime.fromisoformat(head['event']['timestamp'])
                if timestamp < last:
                    timestamp = last

            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=timestamp,
                updated_at=timestamp,
                correlation_id=correlation_id,
                action=action,
                actor=actor,
                timestamp=timestamp,
                partition=partition,
                previous_hash=previous_hash,
                sequence=sequence,
                payload=payload,
            )
            event.current_hash = event.calculate_hash()
            event_data = event.to_dict()

            new_head = {
                'id': partition,
                'head_hash': event.current_hash,
                'sequence': sequence,
                'event': event_data,
            }
            expected = head['head_hash'] if head else None
            if self.storage.compare_and_set(HEADS_TABLE, partition, 'head_hash',
                                            expected, new_head):
                self.storage.save(EVENTS_TABLE, event.id, event_data)
                log_action(
                    logger, "info", f"Audit event appended: {action}",
                    user_id=actor, action=action, correlation_id=correlation_id,
                    partition=partition, resource=event.id
                )
                return event

            delay = self.backoff_seconds * (2 ** attempt)
            logger.warning(
                f"Audit head moved during append, retrying in {delay:.3f}s",
                extra={'correlation_id': correlation_id, 'partition': partition}
            )
            time.sleep(delay)

        raise Conflict(
            f"Could not advance audit head of partition '{partition}' "
            f"after {self.max_attempts} attempts",
            {'partition': partition, 'correlation_id': correlation_id}
        )

    # Verification

    def verify_integrity(self, partition: Optional[str] = None) -> Dict[str, Any]:
        """
        Verify the chain of one partition, walking backward from its head

        Returns:
            Dictionary with the result; on failure ``event_id`` names the
            first offending event and ``reason`` describes the mismatch
        """
        partition = partition or self.default_partition
        head_hash = self.get_head(partition)
        events = self._partition_events(partition)

        result = {
            'valid': True,
            'partition': partition,
            'total_events': len(events),
            'head_hash': head_hash,
            'event_id': None,
            'reason': None,
        }

        expected = head_hash
        for event in reversed(events):
            if event.current_hash != expected:
                result.update(valid=False, event_id=event.id,
                              reason="current hash does not match the chain")
                return result
            if not event.verify_hash():
                result.update(valid=False, event_id=event.id,
                              reason="recomputed hash does not match stored hash")
                return result
            expected = event.previous_hash

        if expected != GENESIS_HASH:
            result.update(valid=False,
                          event_id=events[0].id if events else None,
                          reason="chain does not terminate at genesis")
        return result

    def verify(self, partition: Optional[str] = None) -> bool:
        """Return True if the partition's chain is intact (empty chain is intact)"""
        return self.verify_integrity(partition)['valid']

    def assert_integrity(self, partition: Optional[str] = None) -> None:
        """Raise IntegrityViolation if the partition's chain is broken"""
        result = self.verify_integrity(partition)
        if not result['valid']:
            logger.critical(
                f"Audit chain integrity violation: {result['reason']}",
                extra={'partition': result['partition'], 'resource': result['event_id']}
            )
            raise IntegrityViolation(result['partition'], result['event_id'], result['reason'])
