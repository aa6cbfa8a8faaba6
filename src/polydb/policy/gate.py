from __future__ import annotations

from enum import Enum
from typing import Any

from polydb.exceptions.errors import PolicyViolation
from polydb.logging.logger import get_logger

log = get_logger("policy.gate")


class PolicyMode(str, Enum):
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"


class PolicyGate:
    """Blocks mutating operations while the server is read-only.

    The mode is fixed at construction; the gate holds no other state.
    """

    def __init__(self, mode: PolicyMode = PolicyMode.READ_ONLY):
        self.mode = mode

    @property
    def read_only(self) -> bool:
        return self.mode is PolicyMode.READ_ONLY

    def check_allowed(self, operation: Any) -> None:
        if self.read_only and getattr(operation, "mutating", False):
            log.info("Blocked mutating operation", extra={"operation": getattr(operation, "name", "")})
            raise PolicyViolation()
