"""
Cross-account trust broker.

Foreign identities are only usable through a RoleHandle minted by
``CrossAccountTrustBroker.resolve_role``; sessions are only obtained through
``assume``/``session``, which fail closed before the foreign account is ever
contacted.
"""

import fnmatch
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from controller.src.accounts.base import ForeignAccount, SessionCredentials
from controller.src.errors import ConfigurationError, TrustDenied
from controller.src.models.pipeline import TrustedOperation

logger = logging.getLogger(__name__)

ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$")
ROLE_NAME_PATTERN = re.compile(r"^[\w+=,.@-]{1,64}$")

_MINT = object()

def role_arn(account_id: str, role_name: str) -> str:
    return f"arn:aws:iam::{account_id}:role/{role_name}"

@dataclass(frozen=True)
class RoleHandle:
    account_id: str
    role_name: str
    arn: str
    operations: FrozenSet[TrustedOperation]
    _mint: object = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self._mint is not _MINT:
            raise TypeError("RoleHandle is issued by CrossAccountTrustBroker.resolve_role only")

    def permits(self, operations: Iterable[TrustedOperation]) -> bool:
        return frozenset(operations) <= self.operations

class CrossAccountTrustBroker:
    def __init__(
        self,
        caller: str,
        accounts: Dict[str, ForeignAccount],
        trusted_operations: Optional[Dict[Tuple[str, str], Iterable[TrustedOperation]]] = None,
        assume_role_patterns: Optional[List[str]] = None,
    ):
        """
        Args:
            caller: principal the pipeline runs as (the assuming identity)
            accounts: reachable foreign accounts by account id
            trusted_operations: (account id, role name) -> operations the role
                is trusted for; roles not listed here cannot be resolved
            assume_role_patterns: role ARN globs the caller may assume
        """
        self.caller = caller
        self.accounts = dict(accounts)
        self.assume_role_patterns = list(assume_role_patterns or [])
        self._trusted: Dict[Tuple[str, str], FrozenSet[TrustedOperation]] = {}
        self._issued: Dict[int, RoleHandle] = {}
        for (account_id, role_name), operations in (trusted_operations or {}).items():
            self.configure_role(account_id, role_name, operations)

    def configure_role(self, account_id: str, role_name: str, operations: Iterable[TrustedOperation]):
        self._trusted[(account_id, role_name)] = frozenset(TrustedOperation(op) for op in operations)

    def resolve_role(self, account_id: str, role_name: str) -> RoleHandle:
        if not ACCOUNT_ID_PATTERN.match(account_id or ""):
            raise ConfigurationError(f"Invalid account id '{account_id}'")
        if not ROLE_NAME_PATTERN.match(role_name or ""):
            raise ConfigurationError(f"Invalid role name '{role_name}'")

        operations = self._trusted.get((account_id, role_name))
        if operations is None:
            raise ConfigurationError(
                f"Role {role_name} in account {account_id} has no configured trusted operations"
            )

        account = self.accounts.get(account_id)
        if account is None or not account.ping():
            raise ConfigurationError(f"Account {account_id} is not reachable")

        handle = RoleHandle(
            account_id=account_id,
            role_name=role_name,
            arn=role_arn(account_id, role_name),
            operations=operations,
            _mint=_MINT,
        )
        self._issued[id(handle)] = handle
        logger.info(
            f"Resolved {handle.arn} trusted for {sorted(op.value for op in operations)}"
        )
        return handle

    def _check(self, handle: RoleHandle, operations: FrozenSet[TrustedOperation]):
        if self._issued.get(id(handle)) is not handle:
            raise TrustDenied(f"Role handle for {handle.arn} was not issued by this broker")
        if not operations:
            raise TrustDenied("No operations requested")
        if not handle.permits(operations):
            extra = sorted(op.value for op in operations - handle.operations)
            raise TrustDenied(f"{handle.arn} is not trusted for {extra}")
        if not any(fnmatch.fnmatchcase(handle.arn, p) for p in self.assume_role_patterns):
            raise TrustDenied(f"{self.caller} is not allowed to assume {handle.arn}")

    def assume(
        self,
        handle: RoleHandle,
        operations: Iterable[TrustedOperation],
        session_name: str = "crossdeploy",
    ) -> SessionCredentials:
        operations = frozenset(TrustedOperation(op) for op in operations)
        self._check(handle, operations)

        account = self.accounts[handle.account_id]
        credentials = account.assume_role(handle.arn, self.caller, operations, session_name)
        logger.info(f"Assumed {handle.arn} as {credentials.session_id}")
        return credentials

    @contextmanager
    def session(
        self,
        handle: RoleHandle,
        operations: Iterable[TrustedOperation],
        session_name: str = "crossdeploy",
    ) -> Iterator[SessionCredentials]:
        """Assume a role for the duration of the block; credentials are revoked on exit."""
        credentials = self.assume(handle, operations, session_name)
        try:
            yield credentials
        finally:
            self.accounts[handle.account_id].revoke(credentials)
