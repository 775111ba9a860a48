"""
Workflow Templates Module

Pre-built workflow definitions that can be cloned and customised:
student complaint resolution, document approval and policy approval.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import copy

from .definitions import WorkflowDefinition, parse_definition
from .exceptions import NotFound


@dataclass
class WorkflowTemplate:
    id: str
    name: str
    description: str
    category: str
    definition: Dict[str, Any]
    use_cases: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'use_cases': list(self.use_cases),
            'definition': copy.deepcopy(self.definition),
        }


STUDENT_COMPLAINT = WorkflowTemplate(
    id="template-student-complaint",
    name="Student Complaint Resolution",
    description="Handles student complaints from submission through investigation to resolution",
    category="complaint",
    use_cases=[
        "Academic complaints",
        "Accommodation issues",
        "Discrimination or harassment complaints",
        "Service quality concerns",
    ],
    definition={
        'name': "Student Complaint Resolution",
        'description': "Standard workflow for handling student complaints",
        'version': "1.0",
        'category': "complaint",
        'states': [
            {'id': 'submitted', 'label': 'Submitted', 'is_initial': True,
             'allowed_actions': ['view', 'comment']},
            {'id': 'under-review', 'label': 'Under Review',
             'allowed_actions': ['view', 'comment', 'upload_evidence'],
             'sla': {'max_duration_hours': 120, 'warning_at_hours': 96, 'escalate_to': 'Admin'}},
            {'id': 'investigating', 'label': 'Investigation',
             'allowed_actions': ['view', 'comment', 'upload_evidence'],
             'sla': {'max_duration_hours': 480, 'warning_at_hours': 384}},
            {'id': 'committee-review', 'label': 'Committee Review',
             'allowed_actions': ['view', 'comment']},
            {'id': 'resolved', 'label': 'Resolved', 'is_final': True, 'allowed_actions': ['view']},
            {'id': 'rejected', 'label': 'Rejected', 'is_final': True, 'allowed_actions': ['view']},
        ],
        'transitions': [
            {'id': 'assign-for-review', 'label': 'Assign for Review',
             'from_state': 'submitted', 'to_state': 'under-review',
             'required_roles': ['Admin', 'ComplaintsOfficer'],
             'actions': [{'type': 'notify', 'roles': ['ComplaintsOfficer'],
                          'message': 'New complaint assigned to you for review'}]},
            {'id': 'start-investigation', 'label': 'Start Investigation',
             'from_state': 'under-review', 'to_state': 'investigating',
             'required_roles': ['ComplaintsOfficer'], 'requires_comment': True,
             'actions': [{'type': 'audit', 'message': 'Formal investigation started'}]},
            {'id': 'resolve-directly', 'label': 'Resolve Without Investigation',
             'from_state': 'under-review', 'to_state': 'resolved',
             'required_roles': ['ComplaintsOfficer'], 'requires_comment': True,
             'confirmation_message': 'Resolve this complaint without investigation?'},
            {'id': 'reject-complaint', 'label': 'Reject Complaint',
             'from_state': 'under-review', 'to_state': 'rejected',
             'required_roles': ['ComplaintsOfficer'], 'requires_comment': True,
             'confirmation_message': 'Reject this complaint?'},
            {'id': 'escalate-to-committee', 'label': 'Escalate to Committee',
             'from_state': 'investigating', 'to_state': 'committee-review',
             'required_roles': ['ComplaintsOfficer'], 'requires_comment': True,
             'actions': [{'type': 'notify', 'committees': ['ComplaintsCommittee'],
                          'message': 'New complaint escalated for committee review'}]},
            {'id': 'resolve-after-investigation', 'label': 'Resolve',
             'from_state': 'investigating', 'to_state': 'resolved',
             'required_roles': ['ComplaintsOfficer'], 'requires_comment': True,
             'requires_attachments': True, 'min_attachments': 1},
            {'id': 'committee-approve', 'label': 'Approve Resolution',
             'from_state': 'committee-review', 'to_state': 'resolved',
             'required_roles': ['Board'], 'requires_comment': True,
             'requires_vote': True, 'vote_type': 'simple-majority'},
            {'id': 'committee-reject', 'label': 'Reject Complaint',
             'from_state': 'committee-review', 'to_state': 'rejected',
             'required_roles': ['Board'], 'requires_comment': True,
             'requires_vote': True, 'vote_type': 'simple-majority'},
        ],
        'assignment_rules': [
            {'id': 'rule-student-complaint', 'priority': 10,
             'document_types': ['complaint'], 'categories': ['student'],
             'tags': ['student-complaint', 'complaint']},
        ],
        'fields': [
            {'name': 'complainant_name', 'label': 'Complainant Name', 'type': 'text',
             'required': True},
            {'name': 'complainant_email', 'label': 'Complainant Email', 'type': 'text',
             'required': True, 'validation': {'pattern': r'^[^\s@]+@[^\s@]+\.[^\s@]+$'}},
            {'name': 'complaint_category', 'label': 'Complaint Category', 'type': 'select',
             'required': True,
             'validation': {'options': ['Academic', 'Accommodation', 'Discrimination',
                                        'Harassment', 'Service Quality', 'Other']}},
            {'name': 'description', 'label': 'Complaint Description', 'type': 'text',
             'required': True},
            {'name': 'date_of_incident', 'label': 'Date of Incident', 'type': 'date',
             'required': True},
            {'name': 'assigned_officer', 'label': 'Assigned Complaints Officer', 'type': 'user',
             'editable_in_states': ['submitted']},
            {'name': 'evidence_documents', 'label': 'Evidence Documents', 'type': 'document',
             'editable_in_states': ['under-review', 'investigating']},
            {'name': 'resolution', 'label': 'Resolution Outcome', 'type': 'text',
             'required_in_states': ['resolved']},
        ],
        'automations': [
            {'id': 'auto-sla-warning', 'name': 'SLA Warning Notification',
             'state_id': 'under-review', 'after_hours': 96,
             'actions': [{'type': 'notify', 'roles': ['Admin'],
                          'message': 'Complaint approaching SLA deadline'}]},
        ],
        'settings': {
            'allowed_access_levels': ['Admin', 'Executive'],
            'allowed_roles': ['Admin', 'ComplaintsOfficer', 'Board', 'Student'],
            'allowed_committees': ['ComplaintsCommittee'],
            'retention_days': 2555,
            'document_library': 'Complaints',
            'site_collection': 'unite-complaints',
        },
    },
)


DOCUMENT_APPROVAL = WorkflowTemplate(
    id="template-document-approval",
    name="Document Approval",
    description="Simple approval workflow for documents requiring committee or board approval",
    category="approval",
    use_cases=[
        "Board papers requiring approval",
        "Committee reports",
        "Financial documents",
        "Contract approvals",
    ],
    definition={
        'name': "Document Approval",
        'description': "Standard approval workflow for documents",
        'version': "1.0",
        'category': "approval",
        'states': [
            {'id': 'draft', 'label': 'Draft', 'is_initial': True,
             'allowed_actions': ['edit', 'comment']},
            {'id': 'pending-review', 'label': 'Pending Review',
             'allowed_actions': ['view', 'comment']},
            {'id': 'approved', 'label': 'Approved', 'is_final': True, 'allowed_actions': ['view'],
             'on_enter': [{'type': 'document', 'target_state': 'approved', 'folder': '/Approved'}]},
            {'id': 'rejected', 'label': 'Rejected', 'is_final': True, 'allowed_actions': ['view']},
        ],
        'transitions': [
            {'id': 'submit', 'label': 'Submit for Review',
             'from_state': 'draft', 'to_state': 'pending-review',
             'actions': [{'type': 'notify', 'roles': ['Approver'],
                          'message': 'New document submitted for your review'}]},
            {'id': 'approve', 'label': 'Approve',
             'from_state': 'pending-review', 'to_state': 'approved',
             'required_roles': ['Board', 'Executive']},
            {'id': 'reject', 'label': 'Reject',
             'from_state': 'pending-review', 'to_state': 'rejected',
             'required_roles': ['Board', 'Executive'], 'requires_comment': True},
        ],
        'assignment_rules': [
            {'id': 'rule-general-approval', 'priority': 5,
             'document_types': ['report', 'proposal', 'contract']},
        ],
        'fields': [
            {'name': 'title', 'label': 'Document Title', 'type': 'text', 'required': True,
             'editable_in_states': ['draft']},
            {'name': 'description', 'label': 'Description', 'type': 'text'},
            {'name': 'approver', 'label': 'Assigned Approver', 'type': 'user'},
        ],
        'settings': {
            'allowed_access_levels': ['Admin', 'Executive', 'Board'],
            'retention_days': 1825,
            'document_library': 'Documents',
            'site_collection': 'unite-docs',
        },
    },
)


POLICY_APPROVAL = WorkflowTemplate(
    id="template-policy-approval",
    name="Policy Approval",
    description="Policy drafting, consultation and ratification by a two-thirds board vote",
    category="policy",
    use_cases=[
        "New institutional policies",
        "Periodic policy reviews",
        "Policy withdrawals",
    ],
    definition={
        'name': "Policy Approval",
        'description': "Policy consultation and board ratification",
        'version': "1.0",
        'category': "policy",
        'states': [
            {'id': 'drafting', 'label': 'Drafting', 'is_initial': True,
             'allowed_actions': ['edit', 'comment']},
            {'id': 'consultation', 'label': 'Consultation',
             'allowed_actions': ['view', 'comment'],
             'sla': {'max_duration_hours': 336, 'warning_at_hours': 288,
                     'escalate_to': 'PolicyOwner'}},
            {'id': 'board-vote', 'label': 'Board Vote', 'allowed_actions': ['view', 'vote'],
             'on_enter': [{'type': 'notify', 'committees': ['Board'],
                           'message': 'A policy is awaiting your vote'}]},
            {'id': 'ratified', 'label': 'Ratified', 'is_final': True, 'allowed_actions': ['view'],
             'on_enter': [{'type': 'document', 'target_state': 'published'}]},
            {'id': 'withdrawn', 'label': 'Withdrawn', 'is_final': True,
             'allowed_actions': ['view']},
        ],
        'transitions': [
            {'id': 'open-consultation', 'label': 'Open Consultation',
             'from_state': 'drafting', 'to_state': 'consultation',
             'required_roles': ['PolicyOwner'], 'requires_attachments': True,
             'min_attachments': 1},
            {'id': 'send-to-board', 'label': 'Send to Board',
             'from_state': 'consultation', 'to_state': 'board-vote',
             'required_roles': ['PolicyOwner'],
             'conditions': [{'type': 'field', 'field_name': 'consultation_summary',
                             'operator': 'isNotEmpty'}]},
            {'id': 'ratify', 'label': 'Ratify',
             'from_state': 'board-vote', 'to_state': 'ratified',
             'required_committees': ['Board'], 'requires_vote': True,
             'vote_type': 'super-majority',
             'actions': [{'type': 'audit', 'message': 'Policy ratified by board vote'}]},
            {'id': 'withdraw', 'label': 'Withdraw',
             'from_state': 'consultation', 'to_state': 'withdrawn',
             'required_roles': ['PolicyOwner'], 'requires_comment': True},
        ],
        'assignment_rules': [
            {'id': 'rule-policy', 'priority': 20, 'document_types': ['policy']},
        ],
        'fields': [
            {'name': 'policy_title', 'label': 'Policy Title', 'type': 'text', 'required': True},
            {'name': 'review_cycle_months', 'label': 'Review Cycle (months)', 'type': 'number',
             'validation': {'min': 1, 'max': 60}, 'default': 36},
            {'name': 'consultation_summary', 'label': 'Consultation Summary', 'type': 'text',
             'editable_in_states': ['consultation']},
            {'name': 'effective_date', 'label': 'Effective Date', 'type': 'date',
             'required_in_states': ['ratified']},
        ],
        'settings': {
            'allowed_roles': ['PolicyOwner', 'Admin'],
            'retention_days': 3650,
            'document_library': 'Policies',
            'site_collection': 'unite-policies',
        },
    },
)


TEMPLATES: List[WorkflowTemplate] = [STUDENT_COMPLAINT, DOCUMENT_APPROVAL, POLICY_APPROVAL]


def list_templates(category: Optional[str] = None) -> List[WorkflowTemplate]:
    if category:
        return [t for t in TEMPLATES if t.category == category]
    return list(TEMPLATES)


def get_template(template_id: str) -> Optional[WorkflowTemplate]:
    for template in TEMPLATES:
        if template.id == template_id:
            return template
    return None


def build_definition(template_id: str, definition_id: Optional[str] = None,
                     created_by: str = "",
                     overrides: Optional[Dict[str, Any]] = None) -> WorkflowDefinition:
    """
    Clone a template into an unpublished definition

    ``overrides`` replaces top-level definition keys (e.g. ``settings``).
    """
    template = get_template(template_id)
    if not template:
        raise NotFound("WorkflowTemplate", template_id)

    data = copy.deepcopy(template.definition)
    data.update(copy.deepcopy(overrides or {}))
    data['id'] = definition_id or ""
    data['created_by'] = created_by
    return parse_definition(data)
