"""
External Collaborators Module

Interfaces the engine calls but does not implement: the actor context, the
notification dispatcher, the document-state collaborator and the membership
directory used for voting. Simple implementations are provided for logging,
testing and webhook delivery.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests

from .logging_config import get_logger


logger = get_logger("governance.collaborators")


@dataclass
class Actor:
    """Identity of whoever performs an action, supplied by the request layer"""
    id: str
    display_name: str = ""
    roles: List[str] = field(default_factory=list)
    committees: List[str] = field(default_factory=list)

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return bool(set(self.roles) & set(roles))

    def in_any_committee(self, committees: Iterable[str]) -> bool:
        return bool(set(self.committees) & set(committees))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'roles': list(self.roles),
            'committees': list(self.committees),
        }


# Notification dispatch

class NotificationDispatcher(ABC):
    """Fire-and-forget notification delivery"""

    @abstractmethod
    def dispatch(self, recipients: Dict[str, List[str]], message: str,
                 context: Dict[str, Any]) -> bool:
        """
        Deliver a notification

        Args:
            recipients: {'roles': [...], 'committees': [...], 'users': [...]}
            message: Human readable message
            context: Structured data about the triggering event

        Returns:
            True if delivery was accepted
        """
        pass


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the log, for development"""

    def __init__(self, log=None):
        self.logger = log or get_logger("governance.notifications")

    def dispatch(self, recipients: Dict[str, List[str]], message: str,
                 context: Dict[str, Any]) -> bool:
        self.logger.info(
            f"Notification to {recipients}: {message}",
            extra={'resource': context.get('instance_id'), 'action': context.get('kind')}
        )
        return True


class InMemoryNotificationDispatcher(NotificationDispatcher):
    """Records notifications so tests and the API can inspect them"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def dispatch(self, recipients: Dict[str, List[str]], message: str,
                 context: Dict[str, Any]) -> bool:
        self.sent.append({
            'recipients': recipients,
            'message': message,
            'context': dict(context),
            'sent_at': datetime.now(timezone.utc).isoformat(),
        })
        return True

    def of_kind(self, kind: str) -> List[Dict[str, Any]]:
        return [n for n in self.sent if n['context'].get('kind') == kind]


class WebhookNotificationDispatcher(NotificationDispatcher):
    """Posts notifications as JSON to an external endpoint"""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def dispatch(self, recipients: Dict[str, List[str]], message: str,
                 context: Dict[str, Any]) -> bool:
        payload = {
            "recipients": recipients,
            "message": message,
            "context": context,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = requests.post(
                self.url,
                json=payload,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"}
            )
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            # Delivery is this dispatcher's concern; the engine does not retry
            logger.warning(f"Webhook notification failed: {e}", extra={'resource': self.url})
            return False


# Document state

class DocumentStateCollaborator(ABC):
    """Moves linked documents between document-management states"""

    @abstractmethod
    def move_document(self, document_ref: str, target_state: str, actor: Actor,
                      context: Dict[str, Any]) -> None:
        pass


class LoggingDocumentStateCollaborator(DocumentStateCollaborator):
    """Logs document moves without touching any document store"""

    def move_document(self, document_ref: str, target_state: str, actor: Actor,
                      context: Dict[str, Any]) -> None:
        logger.info(
            f"Document {document_ref} moved to {target_state}",
            extra={'user_id': actor.id, 'resource': document_ref}
        )


class InMemoryDocumentStateCollaborator(DocumentStateCollaborator):
    """Tracks the latest state of each document reference"""

    def __init__(self):
        self.states: Dict[str, str] = {}
        self.moves: List[Dict[str, Any]] = []

    def move_document(self, document_ref: str, target_state: str, actor: Actor,
                      context: Dict[str, Any]) -> None:
        self.states[document_ref] = target_state
        self.moves.append({
            'document_ref': document_ref,
            'target_state': target_state,
            'actor': actor.id,
            'context': dict(context),
        })


# Membership

class MembershipDirectory(ABC):
    """Resolves who may vote on behalf of a committee"""

    @abstractmethod
    def committee_members(self, committee_id: str) -> List[str]:
        pass

    def eligible_voters(self, committee_ids: Iterable[str]) -> List[str]:
        """Union of the members of the given committees, in first-seen order"""
        voters: List[str] = []
        for committee_id in committee_ids:
            for member in self.committee_members(committee_id):
                if member not in voters:
                    voters.append(member)
        return voters


class InMemoryMembershipDirectory(MembershipDirectory):
    """Committee membership held in a dictionary"""

    def __init__(self, committees: Optional[Dict[str, List[str]]] = None):
        self.committees: Dict[str, List[str]] = {
            k: list(v) for k, v in (committees or {}).items()
        }

    def committee_members(self, committee_id: str) -> List[str]:
        return list(self.committees.get(committee_id, []))

    def set_members(self, committee_id: str, members: List[str]) -> None:
        self.committees[committee_id] = list(members)
