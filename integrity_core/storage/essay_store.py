from __future__ import annotations
import os, json, time, sqlite3, re
from typing import Optional, Dict, Any

import structlog
from blake3 import blake3

from integrity_core.crypto.aead import ChaCha20PSuite, suite_for
from integrity_core.crypto.key_manager import MasterKeyManager, derive_record_key

log = structlog.get_logger()

DB_FILE = os.path.join(os.path.abspath("."), "essays.sqlite3")
KEY_PREFIX = "essays/"
_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

def utc_ts_ms() -> int:
    return int(time.time() * 1000)

def essay_key(submission_id: str) -> str:
    if not _SAFE_ID.match(submission_id or "") or submission_id in (".", ".."):
        raise ValueError(f"invalid submission id: {submission_id!r}")
    return f"{KEY_PREFIX}{submission_id}.txt"


class EssayStore:
    """
    Encrypted archive of submitted essay text, addressed by "essays/<submission>.txt".
    - One row per key; re-saving a submission replaces it.
    - ChaCha20-Poly1305 under a per-record HKDF key; the header is bound as AAD.
    - Header carries a blake3 digest of the plaintext, checked on load.
    """
    def __init__(self, db_path: str = DB_FILE, key_manager: Optional[MasterKeyManager] = None):
        self.db_path = db_path
        self.km = key_manager or MasterKeyManager()
        self._suite = ChaCha20PSuite()
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS essays(
                  key TEXT PRIMARY KEY,
                  ts_utc INTEGER NOT NULL,
                  header BLOB NOT NULL,
                  body BLOB NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def save(self, submission_id: str, text: str) -> str:
        key = essay_key(submission_id)
        raw = text.encode("utf-8")
        salt = os.urandom(16)
        info = f"essay-key:{self._suite.suite_id}".encode()
        record_key = derive_record_key(self.km.load_or_create_master(), salt, info)

        header: Dict[str, Any] = {
            "ver": 1,
            "key": key,
            "suite": self._suite.suite_id,
            "salt": salt.hex(),
            "hkdf_info": info.decode(),
            "length": len(raw),
            "digest": blake3(raw).hexdigest(),
        }
        aad = json.dumps(header, separators=(",", ":"), sort_keys=True).encode("utf-8")
        ct, params = self._suite.encrypt(record_key, raw, aad)
        header.update(params)

        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO essays(key, ts_utc, header, body) VALUES (?,?,?,?)",
                (key, utc_ts_ms(), json.dumps(header).encode("utf-8"), ct),
            )
            conn.commit()
        finally:
            conn.close()
        log.info("essay.store.saved", key=key, length=len(raw))
        return key

    def load(self, key: str) -> str:
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute("SELECT header, body FROM essays WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None:
            raise KeyError(key)

        header = json.loads(row[0])
        params = {"nonce": header.pop("nonce")}
        aad = json.dumps(header, separators=(",", ":"), sort_keys=True).encode("utf-8")
        record_key = derive_record_key(
            self.km.load_or_create_master(), bytes.fromhex(header["salt"]), header["hkdf_info"].encode()
        )
        raw = suite_for(header["suite"]).decrypt(record_key, row[1], aad, params)
        if blake3(raw).hexdigest() != header["digest"]:
            raise ValueError(f"digest mismatch for {key}")
        return raw.decode("utf-8")
