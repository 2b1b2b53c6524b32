from __future__ import annotations
import os

from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives import hashes

DEFAULT_SECRETS_DIR = os.path.join(os.path.abspath("."), "secrets")

class MasterKeyManager:
    """
    Dev-friendly sealed file:
      - 32-byte master key stored in <secrets_dir>/master.key, dir 0700, file 0600
    Swap this for an OS keystore or KMS in deployment.
    """
    def __init__(self, secrets_dir: str = DEFAULT_SECRETS_DIR):
        self.secrets_dir = secrets_dir
        self.master_key_file = os.path.join(secrets_dir, "master.key")
        os.makedirs(secrets_dir, exist_ok=True)
        try:
            os.chmod(secrets_dir, 0o700)
        except OSError:
            pass

    def load_or_create_master(self) -> bytes:
        if os.path.exists(self.master_key_file):
            with open(self.master_key_file, "rb") as f:
                return f.read()
        key = os.urandom(32)
        with open(self.master_key_file, "wb") as f:
            f.write(key)
        try:
            os.chmod(self.master_key_file, 0o600)
        except OSError:
            pass
        return key

def derive_record_key(master: bytes, salt: bytes, info: bytes, length: int = 32) -> bytes:
    """Per-record key: HKDF-SHA256 over the master key with a random per-record salt."""
    hkdf = HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info)
    return hkdf.derive(master)
