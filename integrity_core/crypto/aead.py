from __future__ import annotations
import os
from typing import Tuple, Dict, Any

from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

# Suite ID recorded in stored headers
SUITE_CHACHA20P = "CHACHA20P"

class ChaCha20PSuite:
    suite_id = SUITE_CHACHA20P
    key_len = 32

    def encrypt(self, key: bytes, plaintext: bytes, aad: bytes) -> Tuple[bytes, Dict[str, Any]]:
        nonce = os.urandom(12)
        ct = ChaCha20Poly1305(key).encrypt(nonce, plaintext, aad)
        return ct, {"nonce": nonce.hex()}

    def decrypt(self, key: bytes, ciphertext: bytes, aad: bytes, params: Dict[str, Any]) -> bytes:
        nonce = bytes.fromhex(params["nonce"])
        return ChaCha20Poly1305(key).decrypt(nonce, ciphertext, aad)

def suite_for(suite_id: str) -> ChaCha20PSuite:
    if suite_id != SUITE_CHACHA20P:
        raise ValueError(f"unsupported AEAD suite: {suite_id}")
    return ChaCha20PSuite()
