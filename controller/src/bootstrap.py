"""
Turns a validated pipeline definition into a runnable Pipeline.

All wiring happens here, once, before the first run: the artifact key and its
grants, the artifact store, the trust broker and every RoleHandle a deploy
action will use. Anything inconsistent raises ConfigurationError.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from controller.src.accounts.base import ForeignAccount
from controller.src.config import Settings, get_settings
from controller.src.errors import ConfigurationError
from controller.src.models.pipeline import ActionKind, KeyOperation, PipelineDefinition, StageDefinition
from controller.src.security.keys import EncryptionKey, EncryptionKeyManager, account_root_principal
from controller.src.security.trust import CrossAccountTrustBroker, role_arn
from controller.src.services.deployer import DeployRoles
from controller.src.services.pipeline_parser import validate_definition
from controller.src.storage.artifact_store import ArtifactStore
from controller.src.storage.backends import FileSystemBackend, MemoryBackend

logger = logging.getLogger(__name__)

KEY_EXPORT_NAME = "ArtifactBucketEncryptionKey"

@dataclass
class Pipeline:
    definition: PipelineDefinition
    store: ArtifactStore
    keys: EncryptionKeyManager
    key: EncryptionKey
    broker: CrossAccountTrustBroker
    service_principal: str
    deploy_roles: Dict[str, DeployRoles] = field(default_factory=dict)
    exports: Dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def stages(self) -> List[StageDefinition]:
        return self.definition.stages

def resolve_principal(token: str, definition: PipelineDefinition, service_principal: str) -> str:
    """
    Expand a grant principal.

    Accepts a full ARN, ``pipeline`` (the service principal),
    ``account:<alias>`` (account root) or ``role:<alias>/<role name>``.
    """
    if token == "pipeline":
        return service_principal
    if token.startswith("arn:"):
        return token

    kind, _, rest = token.partition(":")
    if kind == "account":
        account = definition.accounts.get(rest)
        if account is None:
            raise ConfigurationError(f"Grant refers to unknown account '{rest}'")
        return account_root_principal(account.account_id)
    if kind == "role":
        alias, _, role_name = rest.partition("/")
        account = definition.accounts.get(alias)
        if account is None or not role_name:
            raise ConfigurationError(f"Grant refers to unknown role '{rest}'")
        return role_arn(account.account_id, role_name)

    raise ConfigurationError(f"Cannot resolve principal '{token}'")

def create_backend(settings: Settings):
    if settings.artifact_backend == "memory":
        return MemoryBackend()
    if settings.artifact_backend == "filesystem":
        return FileSystemBackend(settings.artifact_root)
    raise ConfigurationError(f"Unknown artifact backend '{settings.artifact_backend}'")

def build_pipeline(
    definition: PipelineDefinition,
    accounts: Dict[str, ForeignAccount],
    settings: Optional[Settings] = None,
    backend=None,
) -> Pipeline:
    """
    Wire a pipeline. ``accounts`` maps account id to the foreign account the
    broker may contact.
    """
    settings = settings or get_settings()
    validate_definition(definition)

    service_principal = definition.service_principal or role_arn(
        settings.pipeline_account_id, f"{definition.name}-pipeline-role"
    )

    keys = EncryptionKeyManager(settings.pipeline_account_id)
    key = keys.create_key(definition.artifact_store.key_alias)
    keys.grant_encrypt_decrypt(key.key_id, service_principal)
    for token, operations in definition.artifact_store.grants.items():
        keys.grant(key.key_id, resolve_principal(token, definition, service_principal), operations)

    store = ArtifactStore(
        bucket=definition.artifact_store.bucket or f"artifact-bucket-{settings.pipeline_account_id}",
        keys=keys,
        key_id=key.key_id,
        backend=backend if backend is not None else create_backend(settings),
        prefix=definition.name,
    )

    reachable = {}
    trusted = {}
    for account in definition.accounts.values():
        if account.account_id in accounts:
            reachable[account.account_id] = accounts[account.account_id]
        for role_name, operations in account.roles.items():
            trusted[(account.account_id, role_name)] = operations

    patterns = definition.assume_role_patterns or [
        f"arn:aws:iam::{account.account_id}:role/*" for account in definition.accounts.values()
    ]
    broker = CrossAccountTrustBroker(
        caller=service_principal,
        accounts=reachable,
        trusted_operations=trusted,
        assume_role_patterns=patterns,
    )

    deploy_roles: Dict[str, DeployRoles] = {}
    for _, _, _, action in definition.actions():
        if action.kind != ActionKind.DEPLOY:
            continue
        account_id = definition.accounts[action.deploy.account].account_id
        roles = DeployRoles(
            orchestration=broker.resolve_role(account_id, action.deploy.role),
            deployment=broker.resolve_role(account_id, action.deploy.deployment_role),
        )
        # The orchestration role reads the template; it must be able to decrypt
        if not keys.has_grant(key.key_id, roles.orchestration.arn, KeyOperation.DECRYPT):
            raise ConfigurationError(
                f"Deploy action {action.name}: {roles.orchestration.arn} has no decrypt grant "
                f"on {key.alias}"
            )
        deploy_roles[action.name] = roles

    pipeline = Pipeline(
        definition=definition,
        store=store,
        keys=keys,
        key=key,
        broker=broker,
        service_principal=service_principal,
        deploy_roles=deploy_roles,
        exports={KEY_EXPORT_NAME: key.arn},
    )
    logger.info(
        f"Pipeline {definition.name} ready: {len(definition.stages)} stages, "
        f"artifacts in {store.bucket}, key {key.arn}"
    )
    return pipeline
