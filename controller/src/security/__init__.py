from controller.src.security.keys import (
    EncryptionKey,
    EncryptionKeyManager,
    account_root_principal,
)
from controller.src.security.trust import (
    CrossAccountTrustBroker,
    RoleHandle,
    role_arn,
)

__all__ = [
    "EncryptionKey",
    "EncryptionKeyManager",
    "account_root_principal",
    "CrossAccountTrustBroker",
    "RoleHandle",
    "role_arn",
]
