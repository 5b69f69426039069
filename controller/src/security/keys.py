"""
Symmetric artifact keys and their grant lists.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken

from controller.src.errors import AccessDenied, EncryptionUnauthorized, NotFound
from controller.src.models.pipeline import KeyOperation

logger = logging.getLogger(__name__)

def account_root_principal(account_id: str) -> str:
    return f"arn:aws:iam::{account_id}:root"

@dataclass
class EncryptionKey:
    key_id: str
    alias: str
    arn: str
    grants: Dict[str, FrozenSet[KeyOperation]] = field(default_factory=dict)

    def allows(self, principal: str, operation: KeyOperation) -> bool:
        return operation in self.grants.get(principal, frozenset())

class EncryptionKeyManager:
    """
    Owns artifact keys and the principal -> operations grant map.

    Grants are additive and there is no revoke operation. Principals match
    exactly: a grant to an account root does not extend to roles inside
    that account.
    """

    def __init__(self, account_id: str, region: str = "local"):
        self.account_id = account_id
        self.region = region
        self._keys: Dict[str, EncryptionKey] = {}
        self._ciphers: Dict[str, Fernet] = {}
        self._lock = threading.Lock()

    def create_key(self, alias: str) -> EncryptionKey:
        key_id = str(uuid.uuid4())
        key = EncryptionKey(
            key_id=key_id,
            alias=alias,
            arn=f"arn:aws:kms:{self.region}:{self.account_id}:key/{key_id}",
        )
        with self._lock:
            self._keys[key_id] = key
            self._ciphers[key_id] = Fernet(Fernet.generate_key())
        logger.info(f"Created artifact key {alias} ({key.arn})")
        return key

    def get_key(self, key_id: str) -> EncryptionKey:
        key = self._keys.get(key_id)
        if key is None:
            raise NotFound(f"Unknown encryption key {key_id}")
        return key

    def grant(self, key_id: str, principal: str, operations: Iterable[KeyOperation]):
        """Add operations for a principal. Existing grants are kept."""
        operations = frozenset(KeyOperation(op) for op in operations)
        with self._lock:
            key = self.get_key(key_id)
            # Copy-on-write: readers never see a half-updated map
            grants = dict(key.grants)
            grants[principal] = grants.get(principal, frozenset()) | operations
            key.grants = grants
        logger.info(
            f"Granted {sorted(op.value for op in operations)} on {key.alias} to {principal}"
        )

    def grant_decrypt(self, key_id: str, principal: str):
        self.grant(key_id, principal, [KeyOperation.DECRYPT])

    def grant_encrypt_decrypt(self, key_id: str, principal: str):
        self.grant(key_id, principal, [KeyOperation.ENCRYPT, KeyOperation.DECRYPT])

    def has_grant(self, key_id: str, principal: str, operation: KeyOperation) -> bool:
        return self.get_key(key_id).allows(principal, operation)

    def check(self, key_id: str, principal: str, operation: KeyOperation):
        if self.has_grant(key_id, principal, operation):
            return
        alias = self.get_key(key_id).alias
        if operation == KeyOperation.ENCRYPT:
            raise EncryptionUnauthorized(f"{principal} may not encrypt with {alias}")
        raise AccessDenied(f"{principal} may not decrypt with {alias}")

    def encrypt(self, key_id: str, principal: str, data: bytes) -> bytes:
        self.check(key_id, principal, KeyOperation.ENCRYPT)
        return self._ciphers[key_id].encrypt(data)

    def decrypt(self, key_id: str, principal: str, token: bytes) -> bytes:
        self.check(key_id, principal, KeyOperation.DECRYPT)
        try:
            return self._ciphers[key_id].decrypt(token)
        except InvalidToken:
            raise AccessDenied(f"Ciphertext was not produced by key {key_id}")

    def principals(self, key_id: str, operation: Optional[KeyOperation] = None):
        grants = self.get_key(key_id).grants
        return sorted(
            p for p, ops in grants.items() if operation is None or operation in ops
        )
