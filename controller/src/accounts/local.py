"""
In-process foreign account.

Models the parts of a target account the pipeline relies on: a role trust
policy, short-lived sessions, and a change-apply service with create-or-update
stacks and safety checks. Changes complete asynchronously after
``apply_delay`` seconds.
"""

import logging
import secrets
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set

from controller.src.accounts.base import (
    ChangeOperation,
    ChangeState,
    ChangeStatus,
    SessionCredentials,
    parse_account_id,
)
from controller.src.errors import ChangeRejected, TrustDenied
from controller.src.models.pipeline import TrustedOperation

logger = logging.getLogger(__name__)

IAM_CAPABILITIES = {"CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_ANONYMOUS_IAM"}

@dataclass
class Stack:
    name: str
    template: Dict[str, Any]
    parameters: Dict[str, str]
    version: int = 1

@dataclass
class _PendingChange:
    state: ChangeState
    template: Dict[str, Any]
    parameters: Dict[str, str]
    ready_at: float

@dataclass
class _Role:
    name: str
    trusted_accounts: Set[str] = field(default_factory=set)

class InProcessAccount:
    def __init__(
        self,
        account_id: str,
        apply_delay: float = 0.0,
        session_duration: int = 3600,
        reachable: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.account_id = account_id
        self.apply_delay = apply_delay
        self.session_duration = session_duration
        self.reachable = reachable
        self.clock = clock
        self.stacks: Dict[str, Stack] = {}
        self.changes: Dict[str, _PendingChange] = {}
        self._roles: Dict[str, _Role] = {}
        self._sessions: Dict[str, SessionCredentials] = {}
        self._lock = threading.Lock()

    def role_arn(self, role_name: str) -> str:
        return f"arn:aws:iam::{self.account_id}:role/{role_name}"

    def add_role(self, role_name: str, trusted_account_id: str):
        """Create a role whose trust policy allows the given account to assume it."""
        role = self._roles.setdefault(role_name, _Role(name=role_name))
        role.trusted_accounts.add(trusted_account_id)

    def ping(self) -> bool:
        return self.reachable

    @property
    def active_sessions(self) -> List[SessionCredentials]:
        return list(self._sessions.values())

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def assume_role(
        self,
        role_arn: str,
        caller: str,
        operations: FrozenSet[TrustedOperation],
        session_name: str,
    ) -> SessionCredentials:
        role_name = role_arn.rsplit("/", 1)[-1]
        role = self._roles.get(role_name)
        if role is None or role_arn != self.role_arn(role_name):
            raise TrustDenied(f"Role {role_arn} does not exist in account {self.account_id}")

        caller_account = parse_account_id(caller)
        if caller_account not in role.trusted_accounts:
            raise TrustDenied(f"{caller} is not trusted by {role_arn}")

        credentials = SessionCredentials(
            session_id=f"{session_name}-{uuid.uuid4().hex[:12]}",
            account_id=self.account_id,
            role_arn=role_arn,
            operations=frozenset(operations),
            access_key_id="ASIA" + secrets.token_hex(8).upper(),
            secret_access_key=secrets.token_urlsafe(30),
            session_token=secrets.token_urlsafe(48),
            expiration=datetime.now(timezone.utc) + timedelta(seconds=self.session_duration),
        )
        with self._lock:
            self._sessions[credentials.session_id] = credentials
        logger.info(f"Issued session {credentials.session_id} for {role_arn}")
        return credentials

    def revoke(self, credentials: SessionCredentials):
        with self._lock:
            self._sessions.pop(credentials.session_id, None)
        logger.debug(f"Revoked session {credentials.session_id}")

    def _require(self, credentials: SessionCredentials, operation: TrustedOperation):
        active = self._sessions.get(credentials.session_id)
        if active is None or active.session_token != credentials.session_token:
            raise TrustDenied(f"Session {credentials.session_id} is not active")
        if active.expiration <= datetime.now(timezone.utc):
            raise TrustDenied(f"Session {credentials.session_id} has expired")
        if operation not in active.operations:
            raise TrustDenied(f"Session {credentials.session_id} may not perform '{operation.value}'")

    # ------------------------------------------------------------------
    # Change apply
    # ------------------------------------------------------------------

    def submit_change(
        self,
        credentials: SessionCredentials,
        execution_credentials: SessionCredentials,
        stack_name: str,
        template: Dict[str, Any],
        parameters: Dict[str, str],
        capabilities: List[str],
    ) -> ChangeState:
        self._require(credentials, TrustedOperation.ORCHESTRATE)
        self._require(execution_credentials, TrustedOperation.DEPLOY)

        with self._lock:
            now = self.clock()
            for pending in self.changes.values():
                if pending.state.status == ChangeStatus.IN_PROGRESS and now >= pending.ready_at:
                    self._apply(pending)
                if (
                    pending.state.stack_name == stack_name
                    and pending.state.status == ChangeStatus.IN_PROGRESS
                ):
                    raise ChangeRejected(f"Stack {stack_name} already has a change in progress")

            existing = self.stacks.get(stack_name)
            resolved = self._check_change(template, parameters, capabilities, existing)

            state = ChangeState(
                change_id=str(uuid.uuid4()),
                stack_name=stack_name,
                operation=ChangeOperation.UPDATE if existing else ChangeOperation.CREATE,
                status=ChangeStatus.IN_PROGRESS,
            )
            self.changes[state.change_id] = _PendingChange(
                state=state,
                template=template,
                parameters=resolved,
                ready_at=self.clock() + self.apply_delay,
            )

        logger.info(f"Accepted {state.operation.value} change {state.change_id} for stack {stack_name}")
        return ChangeState(**vars(state))

    def describe_change(self, credentials: SessionCredentials, change_id: str) -> ChangeState:
        self._require(credentials, TrustedOperation.ORCHESTRATE)

        with self._lock:
            pending = self.changes.get(change_id)
            if pending is None:
                raise ChangeRejected(f"Unknown change {change_id}")

            if pending.state.status == ChangeStatus.IN_PROGRESS and self.clock() >= pending.ready_at:
                self._apply(pending)

            return ChangeState(**vars(pending.state))

    def _apply(self, pending: _PendingChange):
        name = pending.state.stack_name
        existing = self.stacks.get(name)
        self.stacks[name] = Stack(
            name=name,
            template=pending.template,
            parameters=pending.parameters,
            version=existing.version + 1 if existing else 1,
        )
        pending.state.status = ChangeStatus.COMPLETE
        logger.info(f"Applied change {pending.state.change_id} to stack {name}")

    def _check_change(
        self,
        template: Dict[str, Any],
        parameters: Dict[str, str],
        capabilities: List[str],
        existing: Optional[Stack],
    ) -> Dict[str, str]:
        """Run safety checks and return the full parameter set for the stack."""
        if not isinstance(template, dict):
            raise ChangeRejected("Template must be a JSON object")

        resources = template.get("Resources")
        if not isinstance(resources, dict) or not resources:
            raise ChangeRejected("Template must declare at least one resource")

        needs_iam = any(
            isinstance(r, dict) and str(r.get("Type", "")).startswith("AWS::IAM::")
            for r in resources.values()
        )
        if needs_iam and not IAM_CAPABILITIES & set(capabilities):
            raise ChangeRejected("Template creates IAM resources; requires CAPABILITY_IAM or equivalent")

        declared = template.get("Parameters") or {}
        unknown = sorted(set(parameters) - set(declared))
        if unknown:
            raise ChangeRejected(f"Parameters {unknown} are not declared in the template")

        resolved: Dict[str, str] = {}
        missing = []
        for name, spec in declared.items():
            if name in parameters:
                resolved[name] = str(parameters[name])
            elif existing and name in existing.parameters:
                resolved[name] = existing.parameters[name]
            elif isinstance(spec, dict) and "Default" in spec:
                resolved[name] = str(spec["Default"])
            else:
                missing.append(name)
        if missing:
            raise ChangeRejected(f"Parameters {sorted(missing)} must have values")

        return resolved
