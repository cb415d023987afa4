"""
Store credential handling.

Access tokens are stored either as plaintext or as "encrypted:<fernet token>"
where the Fernet key is derived from CREDENTIALS_MASTER_KEY.
"""
import base64
import hashlib
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from smart_pricing.config import settings
from smart_pricing.models.core import Store
from smart_pricing.services.errors import PricingEngineError, StoreNotFound

ENCRYPTED_PREFIX = "encrypted:"


class CredentialsError(PricingEngineError):
    pass


@dataclass
class StorefrontCredentials:
    store_id: int
    shop_domain: str
    access_token: str


def _fernet(master_key: str) -> Fernet:
    key_bytes = hashlib.sha256(master_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_token(token: str, master_key: str = None) -> str:
    master_key = master_key if master_key is not None else settings.CREDENTIALS_MASTER_KEY
    if not master_key:
        raise CredentialsError("Cannot encrypt: CREDENTIALS_MASTER_KEY not configured")
    return ENCRYPTED_PREFIX + _fernet(master_key).encrypt(token.encode()).decode()


def decrypt_token(blob: str, master_key: str = None) -> str:
    if not blob.startswith(ENCRYPTED_PREFIX):
        return blob
    master_key = master_key if master_key is not None else settings.CREDENTIALS_MASTER_KEY
    if not master_key:
        raise CredentialsError("Cannot decrypt: CREDENTIALS_MASTER_KEY not configured")
    try:
        return _fernet(master_key).decrypt(blob[len(ENCRYPTED_PREFIX):].encode()).decode()
    except InvalidToken:
        raise CredentialsError("Decryption failed: invalid token or master key")


def get_storefront_credentials(db: Session, store_id: int) -> StorefrontCredentials:
    """
    Raises:
        StoreNotFound: unknown store
        CredentialsError: no token configured, or it cannot be decrypted
    """
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise StoreNotFound(f"Store {store_id} not found")
    if not store.access_token:
        raise CredentialsError(f"Store {store_id} has no storefront access token")
    return StorefrontCredentials(
        store_id=store.id,
        shop_domain=store.shop_domain,
        access_token=decrypt_token(store.access_token),
    )
