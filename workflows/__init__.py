"""
Workflow Automation Package

This module provides:
- Node/edge workflow graphs with IF / ELSE branches on the edges
- Structural validation before publishing
- Immutable numbered versions, with a freely editable draft
- Enrollment gating and a deterministic graph executor
"""

from .executor import ExecutionResult, WorkflowExecutor, check_enrollment, execute
from .graph import (
    AccountType,
    ActionType,
    EnrollmentConfig,
    HubEdge,
    HubNode,
    NodeKind,
    TriggerType,
    WorkflowAction,
    WorkflowDefinition,
    WorkflowMeta,
    WorkflowVersion,
    validate_for_publish,
)
from .service import WorkflowService

__all__ = [
    "ExecutionResult",
    "WorkflowExecutor",
    "check_enrollment",
    "execute",
    "AccountType",
    "ActionType",
    "EnrollmentConfig",
    "HubEdge",
    "HubNode",
    "NodeKind",
    "TriggerType",
    "WorkflowAction",
    "WorkflowDefinition",
    "WorkflowMeta",
    "WorkflowVersion",
    "validate_for_publish",
    "WorkflowService",
]
