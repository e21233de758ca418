"""
Terraform lifecycle: the CLI wrapper and the apply/destroy actions built on it.
"""

from .action import (
    SENSITIVE_MARKER,
    Action,
    ActionState,
    LegacyAction,
    Result,
    build_action,
    parse_serial,
)
from .client import TerraformClient

__all__ = [
    "Action",
    "ActionState",
    "LegacyAction",
    "Result",
    "SENSITIVE_MARKER",
    "TerraformClient",
    "build_action",
    "parse_serial",
]
