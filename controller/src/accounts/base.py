"""
Interface of a foreign (target) account as seen by the pipeline.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Protocol

from controller.src.models.pipeline import TrustedOperation

def parse_account_id(arn: str) -> Optional[str]:
    """Return the account id of an IAM ARN (arn:aws:iam::<account>:...)."""
    parts = arn.split(":")
    if len(parts) < 6 or parts[0] != "arn":
        return None
    return parts[4] or None

@dataclass(frozen=True)
class SessionCredentials:
    session_id: str
    account_id: str
    role_arn: str
    operations: FrozenSet[TrustedOperation]
    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime

    @property
    def principal(self) -> str:
        """Identity used for key grants: the assumed role itself."""
        return self.role_arn

    def __repr__(self):
        # Never leak secrets into logs
        return (
            f"SessionCredentials(session_id={self.session_id!r}, "
            f"role_arn={self.role_arn!r}, operations={sorted(o.value for o in self.operations)})"
        )

class ChangeStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"

class ChangeOperation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"

@dataclass
class ChangeState:
    change_id: str
    stack_name: str
    operation: ChangeOperation
    status: ChangeStatus
    reason: Optional[str] = None

class ForeignAccount(Protocol):
    account_id: str

    def ping(self) -> bool:
        ...

    def assume_role(
        self,
        role_arn: str,
        caller: str,
        operations: FrozenSet[TrustedOperation],
        session_name: str,
    ) -> SessionCredentials:
        ...

    def revoke(self, credentials: SessionCredentials) -> None:
        ...

    def submit_change(
        self,
        credentials: SessionCredentials,
        execution_credentials: SessionCredentials,
        stack_name: str,
        template: Dict[str, Any],
        parameters: Dict[str, str],
        capabilities: List[str],
    ) -> ChangeState:
        ...

    def describe_change(self, credentials: SessionCredentials, change_id: str) -> ChangeState:
        ...
