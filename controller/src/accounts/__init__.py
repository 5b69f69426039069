from controller.src.accounts.base import (
    ForeignAccount,
    SessionCredentials,
    ChangeState,
    ChangeStatus,
    ChangeOperation,
    parse_account_id,
)
from controller.src.accounts.local import InProcessAccount, Stack

__all__ = [
    "ForeignAccount",
    "SessionCredentials",
    "ChangeState",
    "ChangeStatus",
    "ChangeOperation",
    "parse_account_id",
    "InProcessAccount",
    "Stack",
]
