"""
Voting Module

Ballot accumulation and quorum evaluation for vote-gated transitions.

A vote session is opened when a vote-gated transition passes its other
guards. The eligible voter population is fixed when the session opens. Each
ballot is audited, and the outcome resolves as soon as the ballots still
outstanding can no longer change it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .collaborators import Actor
from .config import get_config
from .definitions import Transition, VoteType, WorkflowDefinition
from .exceptions import Forbidden, GuardFailed, NotFound, ValidationError
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .workflows import WorkflowEngine, WorkflowInstance


logger = get_logger("governance.voting")

VOTES_TABLE = "workflow_votes"


class VoteChoice(Enum):
    """Ballot choices"""
    FOR = "for"
    AGAINST = "against"
    ABSTAIN = "abstain"


class VoteOutcome(Enum):
    """Resolution of a vote session"""
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


class SuperMajorityBasis(Enum):
    """Denominator of the two-thirds rule"""
    VOTES_CAST = "votes_cast"
    ELIGIBLE = "eligible"


@dataclass
class VoteRecord:
    """A single ballot; unique per (transition, attempt, voter)"""
    transition_id: str
    voter_id: str
    vote: VoteChoice
    attempt: int = 1
    comment: Optional[str] = None
    cast_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'transition_id': self.transition_id,
            'voter_id': self.voter_id,
            'vote': self.vote.value,
            'attempt': self.attempt,
            'comment': self.comment,
            'cast_at': self.cast_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VoteRecord':
        cast_at = data.get('cast_at')
        return cls(
            transition_id=data['transition_id'],
            voter_id=data['voter_id'],
            vote=VoteChoice(data['vote']),
            attempt=data.get('attempt', 1),
            comment=data.get('comment'),
            cast_at=datetime.fromisoformat(cast_at) if isinstance(cast_at, str) else cast_at,
        )


@dataclass
class VoteTally:
    votes_for: int = 0
    votes_against: int = 0
    abstentions: int = 0
    eligible: int = 0

    @property
    def cast(self) -> int:
        return self.votes_for + self.votes_against + self.abstentions

    @property
    def remaining(self) -> int:
        return max(self.eligible - self.cast, 0)

    def to_dict(self) -> Dict[str, int]:
        return {
            'for': self.votes_for,
            'against': self.votes_against,
            'abstain': self.abstentions,
            'eligible': self.eligible,
            'remaining': self.remaining,
        }


@dataclass
class VoteSession:
    """Open or closed vote on one transition of one instance"""
    id: str
    instance_id: str
    transition_id: str
    vote_type: VoteType
    eligible_voters: List[str]
    attempt: int = 1
    status: VoteOutcome = VoteOutcome.PENDING
    opened_by: str = ""
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    pending_field_updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.status == VoteOutcome.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'instance_id': self.instance_id,
            'transition_id': self.transition_id,
            'vote_type': self.vote_type.value,
            'eligible_voters': list(self.eligible_voters),
            'attempt': self.attempt,
            'status': self.status.value,
            'opened_by': self.opened_by,
            'opened_at': self.opened_at.isoformat() if self.opened_at else None,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'pending_field_updates': dict(self.pending_field_updates),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VoteSession':
        return cls(
            id=data['id'],
            instance_id=data['instance_id'],
            transition_id=data['transition_id'],
            vote_type=VoteType.parse(data['vote_type']),
            eligible_voters=list(data.get('eligible_voters') or []),
            attempt=data.get('attempt', 1),
            status=VoteOutcome(data.get('status', 'pending')),
            opened_by=data.get('opened_by', ''),
            opened_at=datetime.fromisoformat(data['opened_at']) if data.get('opened_at') else None,
            closed_at=datetime.fromisoformat(data['closed_at']) if data.get('closed_at') else None,
            pending_field_updates=dict(data.get('pending_field_updates') or {}),
        )


def quorum_passes(vote_type: VoteType, votes_for: int, votes_against: int,
                  eligible: int,
                  basis: SuperMajorityBasis = SuperMajorityBasis.VOTES_CAST) -> bool:
    """
    Whether a final tally passes the quorum rule

    Abstentions never count toward the denominator of the cast-vote rules.
    """
    if vote_type == VoteType.SIMPLE_MAJORITY:
        return votes_for > votes_against
    if vote_type == VoteType.SUPER_MAJORITY:
        if votes_for < 1:
            return False
        if basis == SuperMajorityBasis.ELIGIBLE:
            return 3 * votes_for >= 2 * eligible
        return 3 * votes_for >= 2 * (votes_for + votes_against)
    if vote_type == VoteType.UNANIMOUS:
        return votes_against == 0 and votes_for >= 1
    raise ValidationError(f"Unsupported vote type: {vote_type}")


def evaluate_quorum(vote_type: VoteType, tally: VoteTally,
                    basis: SuperMajorityBasis = SuperMajorityBasis.VOTES_CAST) -> VoteOutcome:
    """
    Resolve a tally early when outstanding ballots cannot change the result

    Passes if it would still pass with every outstanding ballot against;
    fails if it would still fail with every outstanding ballot for.
    """
    remaining = tally.remaining
    if quorum_passes(vote_type, tally.votes_for, tally.votes_against + remaining,
                     tally.eligible, basis):
        return VoteOutcome.PASSED
    if not quorum_passes(vote_type, tally.votes_for + remaining, tally.votes_against,
                         tally.eligible, basis):
        return VoteOutcome.FAILED
    return VoteOutcome.PENDING


def tally_ballots(ballots: List[VoteRecord], eligible_voters: List[str]) -> VoteTally:
    """Count ballots cast by eligible voters"""
    tally = VoteTally(eligible=len(eligible_voters))
    eligible = set(eligible_voters)
    for ballot in ballots:
        if ballot.voter_id not in eligible:
            continue
        if ballot.vote == VoteChoice.FOR:
            tally.votes_for += 1
        elif ballot.vote == VoteChoice.AGAINST:
            tally.votes_against += 1
        else:
            tally.abstentions += 1
    return tally


class VotingService:
    """Vote sessions and ballots for vote-gated transitions"""

    def __init__(self, engine: 'WorkflowEngine', basis: Optional[str] = None):
        self.engine = engine
        self.storage = engine.storage
        self.basis = SuperMajorityBasis(basis or get_config().super_majority_basis)

    @staticmethod
    def session_id(instance_id: str, transition_id: str) -> str:
        return f"{instance_id}:{transition_id}"

    def get_session(self, instance_id: str, transition_id: str) -> Optional[VoteSession]:
        data = self.storage.load(VOTES_TABLE, self.session_id(instance_id, transition_id))
        if data:
            return VoteSession.from_dict(data)
        return None

    def _correlation(self, instance_id: str, transition_id: str, attempt: int, suffix: str) -> str:
        return self.engine.correlation(instance_id, f"vote:{transition_id}:{attempt}:{suffix}")

    def _resolve_population(self, instance: 'WorkflowInstance', transition: Transition,
                            eligible_voters: Optional[List[str]]) -> List[str]:
        if eligible_voters:
            return list(dict.fromkeys(eligible_voters))

        committees = list(transition.required_committees)
        if not committees and instance.assigned_committee:
            committees = [instance.assigned_committee]
        if self.engine.membership and committees:
            voters = self.engine.membership.eligible_voters(committees)
            if voters:
                return voters

        raise ValidationError(
            f"No eligible voter population for vote on transition {transition.id}",
            details={'transition_id': transition.id, 'committees': committees}
        )

    def open_session(
        self,
        definition: WorkflowDefinition,
        instance: 'WorkflowInstance',
        transition: Transition,
        actor: Actor,
        eligible_voters: Optional[List[str]] = None,
        field_updates: Optional[Dict[str, Any]] = None
    ) -> 'WorkflowInstance':
        """
        Open a vote session for a transition, or keep the open one

        Returns:
            The instance flagged as awaiting the vote
        """
        existing = self.get_session(instance.id, transition.id)
        if existing and existing.is_open:
            logger.debug(
                "Vote session already open",
                extra={'resource': existing.id, 'user_id': actor.id}
            )
            if instance.awaiting_vote == transition.id:
                return instance
            return self._flag_awaiting(instance.id, transition.id)

        attempt = existing.attempt + 1 if existing else 1
        population = self._resolve_population(instance, transition, eligible_voters)

        event = self.engine.audit.append(
            "vote.opened",
            actor.id,
            {
                'instance_id': instance.id,
                'transition_id': transition.id,
                'attempt': attempt,
                'vote_type': transition.effective_vote_type.value,
                'eligible_voters': population,
            },
            self._correlation(instance.id, transition.id, attempt, "opened"),
            instance.partition,
        )

        session = VoteSession(
            id=self.session_id(instance.id, transition.id),
            instance_id=instance.id,
            transition_id=transition.id,
            vote_type=transition.effective_vote_type,
            eligible_voters=event.payload.get('eligible_voters', population),
            attempt=attempt,
            opened_by=actor.id,
            opened_at=event.timestamp,
            pending_field_updates=dict(field_updates or {}),
        )
        expected = existing.attempt if existing else None
        if not self.storage.compare_and_set(VOTES_TABLE, session.id, 'attempt',
                                            expected, session.to_dict()):
            # Another caller opened the same attempt first
            return self._flag_awaiting(instance.id, transition.id)

        log_action(
            logger, "info", f"Vote opened on {transition.id} (attempt {attempt})",
            user_id=actor.id, action="vote.opened", resource=instance.id,
            correlation_id=event.correlation_id, partition=instance.partition
        )

        return self._flag_awaiting(instance.id, transition.id)

    def _flag_awaiting(self, instance_id: str, transition_id: str) -> 'WorkflowInstance':
        """Mark the instance as awaiting votes on an open session"""
        return self.engine.mutate_instance(
            instance_id,
            lambda current: setattr(current, 'awaiting_vote', transition_id),
        )

    def cast_vote(
        self,
        instance_id: str,
        transition_id: str,
        voter: Actor,
        vote: str,
        comment: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> 'WorkflowInstance':
        """
        Record a ballot and resolve the vote if the outcome is decided

        Raises:
            NotFound: unknown instance or transition
            GuardFailed: the transition is not vote-gated or not awaiting votes
            Forbidden: the voter is not in the eligible population
            ValidationError: the vote choice is invalid
        """
        instance = self.engine.require_instance(instance_id)
        definition = self.engine.definitions.require(instance.workflow_definition_id)
        transition = definition.get_transition(transition_id)
        if not transition:
            raise NotFound("Transition", transition_id)
        if not transition.requires_vote:
            raise GuardFailed(
                guard="vote",
                message=f"Transition {transition_id} is not vote-gated",
                details={'transition_id': transition_id}
            )

        session = self.get_session(instance.id, transition_id)
        if (not session or not session.is_open
                or instance.awaiting_vote != transition_id):
            raise GuardFailed(
                guard="vote",
                message=f"Transition {transition_id} is not awaiting votes",
                details={'transition_id': transition_id}
            )

        if voter.id not in session.eligible_voters:
            raise Forbidden(
                message=f"{voter.id} is not eligible to vote on {transition_id}",
                guard="membership",
                details={'transition_id': transition_id, 'voter_id': voter.id}
            )

        try:
            choice = VoteChoice(vote)
        except ValueError:
            raise ValidationError(
                f"Invalid vote: {vote}",
                errors=[f"vote must be one of: {', '.join(c.value for c in VoteChoice)}"]
            )

        if correlation_id:
            corr = self._correlation(instance.id, transition_id, session.attempt,
                                     f"ballot:{correlation_id}")
            stored = self.engine.audit.find_by_correlation(corr, instance.partition)
            if stored and any(
                r.transition_id == transition_id and r.attempt == session.attempt
                and r.voter_id == voter.id and r.cast_at == stored.timestamp
                for r in instance.vote_records
            ):
                # Resolution is idempotent, so a replay also finishes an interrupted one
                return self._resolve(definition, instance, transition, session, voter)
        else:
            previous = [
                r for r in instance.vote_records
                if r.transition_id == transition_id and r.attempt == session.attempt
                and r.voter_id == voter.id
            ]
            corr = self._correlation(
                instance.id, transition_id, session.attempt,
                f"ballot:{voter.id}:{choice.value}:{len(previous)}"
            )

        event = self.engine.audit.append(
            "vote.cast",
            voter.id,
            {
                'instance_id': instance.id,
                'transition_id': transition_id,
                'attempt': session.attempt,
                'voter_id': voter.id,
                'vote': choice.value,
                'comment': comment,
            },
            corr,
            instance.partition,
        )

        # A stored event from an earlier attempt at this ballot is authoritative
        ballot = VoteRecord(
            transition_id=transition_id,
            voter_id=voter.id,
            vote=VoteChoice(event.payload['vote']),
            attempt=session.attempt,
            comment=event.payload.get('comment'),
            cast_at=event.timestamp,
        )

        def upsert(current: 'WorkflowInstance') -> None:
            current.vote_records = [
                r for r in current.vote_records
                if not (r.transition_id == ballot.transition_id
                        and r.attempt == ballot.attempt
                        and r.voter_id == ballot.voter_id)
            ]
            current.vote_records.append(ballot)

        # Ballots from different voters commute, so a lost write is re-applied
        instance = self.engine.mutate_instance(instance.id, upsert)

        return self._resolve(definition, instance, transition, session, voter)

    def tally(self, instance: 'WorkflowInstance', session: VoteSession) -> VoteTally:
        ballots = [
            r for r in instance.vote_records
            if r.transition_id == session.transition_id and r.attempt == session.attempt
        ]
        return tally_ballots(ballots, session.eligible_voters)

    def _close(self, session: VoteSession, outcome: VoteOutcome) -> bool:
        closed = VoteSession.from_dict(session.to_dict())
        closed.status = outcome
        closed.closed_at = datetime.now(timezone.utc)
        return self.storage.compare_and_set(VOTES_TABLE, session.id, 'status',
                                            VoteOutcome.PENDING.value, closed.to_dict())

    def _resolve(self, definition: WorkflowDefinition, instance: 'WorkflowInstance',
                 transition: Transition, session: VoteSession,
                 voter: Actor) -> 'WorkflowInstance':
        tally = self.tally(instance, session)
        outcome = evaluate_quorum(session.vote_type, tally, self.basis)

        if outcome == VoteOutcome.PENDING:
            return instance

        if outcome == VoteOutcome.PASSED:
            instance = self.engine.complete_transition(
                definition,
                instance,
                transition,
                voter,
                field_updates=session.pending_field_updates,
                correlation_id=self._correlation(instance.id, transition.id,
                                                 session.attempt, "passed"),
                extra_payload={'vote': tally.to_dict(), 'attempt': session.attempt},
            )
            self._close(session, outcome)
            log_action(
                logger, "info", f"Vote passed on {transition.id}",
                user_id=voter.id, action="vote.passed", resource=instance.id,
                partition=instance.partition, extra=tally.to_dict()
            )
            return instance

        self.engine.audit.append(
            "vote.failed",
            voter.id,
            {
                'instance_id': instance.id,
                'transition_id': transition.id,
                'attempt': session.attempt,
                'tally': tally.to_dict(),
            },
            self._correlation(instance.id, transition.id, session.attempt, "failed"),
            instance.partition,
        )
        self._close(session, outcome)

        def clear_flag(current: 'WorkflowInstance') -> None:
            if current.awaiting_vote == transition.id:
                current.awaiting_vote = None

        instance = self.engine.mutate_instance(instance.id, clear_flag)
        log_action(
            logger, "info", f"Vote failed on {transition.id}",
            user_id=voter.id, action="vote.failed", resource=instance.id,
            partition=instance.partition, extra=tally.to_dict()
        )
        return instance
