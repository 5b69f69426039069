"""
Deploy action - applies a template change in a foreign account.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from controller.src.accounts.base import ChangeOperation, ChangeStatus, SessionCredentials
from controller.src.errors import ChangeRejected, DeployTimeout, NotFound
from controller.src.models.pipeline import ParameterBinding, TrustedOperation
from controller.src.security.trust import CrossAccountTrustBroker, RoleHandle
from controller.src.storage.archive import read_member
from controller.src.storage.artifact_store import ArtifactRef, ArtifactStore

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class DeployRoles:
    """Independently configured roles; neither implies the other's privileges."""

    orchestration: RoleHandle
    deployment: RoleHandle

@dataclass
class DeployRequest:
    action_name: str
    stack_name: str
    template_ref: ArtifactRef
    template_path: str
    parameter_overrides: Dict[str, str] = field(default_factory=dict)
    capabilities: List[str] = field(default_factory=list)
    timeout: float = 1800

@dataclass
class DeployResult:
    stack_name: str
    change_id: str
    operation: ChangeOperation
    status: ChangeStatus
    parameters: Dict[str, str]

def resolve_parameter_overrides(
    bindings: Dict[str, ParameterBinding],
    refs: Dict[str, ArtifactRef],
    store: ArtifactStore,
) -> Dict[str, str]:
    """
    Compute override values from artifact locations, never their contents.

    Bound artifacts must already be committed.
    """
    values = {}
    for name, binding in bindings.items():
        if binding.value is not None:
            values[name] = binding.value
            continue
        ref = refs.get(binding.artifact)
        if ref is None or not store.exists(ref):
            raise NotFound(f"Artifact {binding.artifact} for parameter {name} has not been produced")
        values[name] = store.location_of(ref).field(binding.location)
    return values

class Deployer:
    def __init__(self, store: ArtifactStore, poll_interval: float = 5.0):
        self.store = store
        self.poll_interval = poll_interval

    async def deploy(
        self,
        request: DeployRequest,
        broker: CrossAccountTrustBroker,
        roles: DeployRoles,
    ) -> DeployResult:
        account = broker.accounts[roles.orchestration.account_id]
        session_name = f"crossdeploy-{request.action_name}"[:64]

        with broker.session(roles.orchestration, [TrustedOperation.ORCHESTRATE], session_name) as orchestration:
            with broker.session(roles.deployment, [TrustedOperation.DEPLOY], session_name) as deployment:
                template = self._load_template(request, orchestration)

                logger.info(
                    f"Submitting change for stack {request.stack_name} in account {account.account_id}"
                )
                state = account.submit_change(
                    orchestration,
                    deployment,
                    request.stack_name,
                    template,
                    request.parameter_overrides,
                    request.capabilities,
                )

                try:
                    state = await asyncio.wait_for(
                        self._wait_for_change(account, orchestration, state.change_id),
                        timeout=request.timeout,
                    )
                except asyncio.TimeoutError:
                    logger.error(
                        f"Change {state.change_id} for {request.stack_name} did not finish in "
                        f"{request.timeout}s; it may still be applying"
                    )
                    raise DeployTimeout(
                        f"Change {state.change_id} did not reach a terminal state within {request.timeout}s",
                        change_id=state.change_id,
                    )

        logger.info(f"{state.operation.value} of stack {request.stack_name} complete ({state.change_id})")
        return DeployResult(
            stack_name=request.stack_name,
            change_id=state.change_id,
            operation=state.operation,
            status=state.status,
            parameters=dict(request.parameter_overrides),
        )

    def _load_template(self, request: DeployRequest, credentials: SessionCredentials) -> Dict:
        archive = self.store.get(request.template_ref, credentials.principal)
        try:
            body = read_member(archive, request.template_path)
        except FileNotFoundError:
            raise NotFound(f"{request.template_path} not found in artifact {request.template_ref.name}")

        try:
            return json.loads(body)
        except ValueError as e:
            raise ChangeRejected(f"Template {request.template_path} is not valid JSON: {e}")

    async def _wait_for_change(self, account, credentials: SessionCredentials, change_id: str):
        while True:
            state = account.describe_change(credentials, change_id)
            if state.status == ChangeStatus.COMPLETE:
                return state
            if state.status == ChangeStatus.FAILED:
                raise ChangeRejected(f"Change {change_id} failed: {state.reason or 'no reason given'}")
            await asyncio.sleep(self.poll_interval)
