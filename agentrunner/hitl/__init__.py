"""Human-in-the-loop approval for tool calls."""

from . import policies
from .approval_checker import ApprovalCheck, ApprovalChecker
from .approval_manager import ApprovalDecision, ApprovalManager, format_approval_request

__all__ = [
    "ApprovalCheck",
    "ApprovalChecker",
    "ApprovalDecision",
    "ApprovalManager",
    "format_approval_request",
    "policies",
]
