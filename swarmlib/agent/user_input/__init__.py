"""Human-in-the-loop prompts for agents."""

from .models import PromptStatus, PromptType, UserPrompt
from .gate import ApprovalGate, is_truthy

__all__ = [
    "ApprovalGate",
    "PromptStatus",
    "PromptType",
    "UserPrompt",
    "is_truthy"
]
