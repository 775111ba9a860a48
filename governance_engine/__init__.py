"""
Governance Workflow Engine

Configurable approval and process workflows for organisational governance,
with guarded transitions, committee voting, SLA monitoring, document routing
and a tamper-evident, hash-chained audit log.
"""

__version__ = "1.0.0"
