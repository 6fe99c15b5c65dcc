"""Rotating JSON journal plus a signed, hash-chained audit trail.

Every state-changing action (transaction submission, deployment, receipt
finalisation, trace request, deployment-store mutation) is written twice:
once as a JSON line to ``logs/evmdeck.log`` (rotated at 1 MB) and once to
``audit.jsonl`` where each entry references the hash of its predecessor and
is signed with a per-installation Ed25519 key.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .paths import state_dir

JOURNAL_NAME = "evmdeck.journal"


def _log_file() -> Path:
    return state_dir() / "logs" / "evmdeck.log"


def _audit_log() -> Path:
    return state_dir() / "audit.jsonl"


def _audit_key() -> Path:
    return state_dir() / "audit_ed25519.pem"


def _get_logger() -> logging.Logger:
    logger = logging.getLogger(JOURNAL_NAME)
    target = _log_file()
    for handler in list(logger.handlers):
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == target:
            return logger
        logger.removeHandler(handler)
        handler.close()

    target.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(target, maxBytes=1_000_000, backupCount=5)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.addHandler(handler)
    return logger


def _load_or_create_key() -> ed25519.Ed25519PrivateKey:
    path = _audit_key()
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        return serialization.load_pem_private_key(path.read_bytes(), password=None)
    key = ed25519.Ed25519PrivateKey.generate()
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    path.write_bytes(pem)
    os.chmod(path, 0o600)
    return key


def _last_hash() -> Optional[str]:
    path = _audit_log()
    if not path.exists():
        return None
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    if not lines:
        return None
    try:
        return json.loads(lines[-1]).get("hash")
    except json.JSONDecodeError:
        return None


def _canonical(entry: Dict[str, object]) -> bytes:
    return json.dumps(entry, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _write_audit_record(record: Dict[str, object]) -> None:
    key = _load_or_create_key()
    entry: Dict[str, object] = {
        "ts": time.time(),
        "prev": _last_hash(),
        "record": record,
    }
    canonical = _canonical(entry)
    digest = hashlib.sha256(canonical).digest()
    entry["hash"] = digest.hex()
    entry["signature"] = base64.b64encode(key.sign(digest)).decode("ascii")
    entry["public_key"] = base64.b64encode(
        key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
    ).decode("ascii")
    with _audit_log().open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(entry, sort_keys=True) + "\n")


def journal(record: Dict[str, object]) -> None:
    """Write a JSON record to the rotating journal only."""

    _get_logger().info(json.dumps(record, default=str))


def info(record: Dict[str, object]) -> None:
    """Journal ``record`` and append it to the signed audit chain."""

    journal(record)
    _write_audit_record(json.loads(json.dumps(record, default=str)))


def verify_chain() -> int:
    """Check every audit entry's hash link and signature.

    Returns the number of verified entries and raises :class:`ValueError`
    at the first entry that does not verify.
    """

    path = _audit_log()
    if not path.exists():
        return 0
    previous: Optional[str] = None
    count = 0
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        entry = json.loads(line)
        if entry.get("prev") != previous:
            raise ValueError(f"audit chain broken at line {lineno}")
        base = {name: entry[name] for name in ("ts", "prev", "record")}
        digest = hashlib.sha256(_canonical(base)).digest()
        if digest.hex() != entry.get("hash"):
            raise ValueError(f"audit hash mismatch at line {lineno}")
        public_key = ed25519.Ed25519PublicKey.from_public_bytes(base64.b64decode(entry["public_key"]))
        try:
            public_key.verify(base64.b64decode(entry["signature"]), digest)
        except InvalidSignature as exc:
            raise ValueError(f"audit signature invalid at line {lineno}") from exc
        previous = entry["hash"]
        count += 1
    return count


__all__ = ["info", "journal", "verify_chain"]
