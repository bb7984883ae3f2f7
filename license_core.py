import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Optional, Union

logger = logging.getLogger(__name__)

# =========================
# ERRORS
# =========================
class LicenseError(Exception):
    """Base for every failure reported back to a caller of the license core."""
    status = 400
    message = "Bad request."

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

class BadRequest(LicenseError):
    status = 400
    message = "Missing key or HWID."

class NotFound(LicenseError):
    status = 404
    message = "Invalid key."

class Expired(LicenseError):
    status = 403
    message = "Key expired."

class HardwareMismatch(LicenseError):
    status = 403
    message = "HWID mismatch."

class InvalidArgument(LicenseError):
    status = 400
    message = "Invalid type."

class Forbidden(LicenseError):
    status = 403
    message = "You are not authorized."

# =========================
# RECORDS
# =========================
LIFETIME_TAG = "lifetime"

@dataclass(frozen=True)
class Timestamp:
    ms: int

@dataclass(frozen=True)
class Lifetime:
    pass

Expiry = Union[Timestamp, Lifetime]

@dataclass
class KeyRecord:
    expiry: Expiry
    hwid: Optional[str] = None

    def is_expired(self, now: int) -> bool:
        return isinstance(self.expiry, Timestamp) and now > self.expiry.ms

    def to_json(self) -> dict:
        expiry = LIFETIME_TAG if isinstance(self.expiry, Lifetime) else self.expiry.ms
        return {"hwid": self.hwid, "expiry": expiry}

    @classmethod
    def from_json(cls, data: dict) -> "KeyRecord":
        raw = data["expiry"]
        if raw == LIFETIME_TAG:
            expiry: Expiry = Lifetime()
        elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
            expiry = Timestamp(int(raw))
        else:
            raise ValueError(f"bad expiry value: {raw!r}")
        hwid = data.get("hwid")
        return cls(expiry=expiry, hwid=str(hwid) if hwid else None)

# =========================
# HELPERS
# =========================
DAY_MS = 24 * 60 * 60 * 1000

DURATION_MS: Dict[str, Optional[int]] = {
    "day": DAY_MS,
    "week": 7 * DAY_MS,
    "month": 30 * DAY_MS,
    "year": 365 * DAY_MS,
    "lifetime": None,
}

def now_ms() -> int:
    return int(time.time() * 1000)

def fmt_ts(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")

def fmt_expiry(expiry: Expiry) -> str:
    if isinstance(expiry, Lifetime):
        return "Never"
    return fmt_ts(expiry.ms)

def make_key_string(prefix: str, duration_class: str) -> str:
    suffix = str(uuid.uuid4()).split("-")[0].upper()
    return f"{prefix}-{duration_class}-{suffix}"

def is_operator(identity, operators: Iterable[str]) -> bool:
    return str(identity) in {str(o) for o in operators}

# =========================
# KEY STORE
# =========================
class KeyStore:
    """In-memory key registry backed by a single JSON document.

    The whole mapping is rewritten on every ``save()``; there is no
    journaling or atomic rename, so a crash mid-write can leave a truncated
    file behind.
    """

    def __init__(self, path: str):
        self.path = path
        self._keys: Dict[str, KeyRecord] = {}

    def load(self) -> None:
        if not os.path.exists(self.path):
            self._keys = {}
            return
        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"{self.path}: expected a JSON object")
        self._keys = {str(k): KeyRecord.from_json(v) for k, v in raw.items()}
        logger.info("Loaded %d key(s) from %s", len(self._keys), self.path)

    def save(self) -> None:
        data = {k: rec.to_json() for k, rec in self._keys.items()}
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str) -> Optional[KeyRecord]:
        return self._keys.get(key)

    def set(self, key: str, record: KeyRecord) -> None:
        self._keys[key] = record

    def delete(self, key: str) -> bool:
        return self._keys.pop(key, None) is not None

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

# =========================
# VALIDATION
# =========================
class ValidateOutcome(Enum):
    BOUND_NOW = "HWID bound."
    ALREADY_VALID = "Key valid."

    @property
    def message(self) -> str:
        return self.value

def validate(store: KeyStore, key: Optional[str], hwid: Optional[str],
             now: Optional[int] = None) -> ValidateOutcome:
    if not key or not hwid:
        raise BadRequest()

    record = store.get(key)
    if record is None:
        raise NotFound()

    t = now_ms() if now is None else now
    if record.is_expired(t):
        raise Expired()

    if record.hwid is None:
        record.hwid = hwid
        store.save()
        logger.info("Key %s bound to HWID %s", key, hwid)
        return ValidateOutcome.BOUND_NOW

    if record.hwid != hwid:
        raise HardwareMismatch()

    return ValidateOutcome.ALREADY_VALID

# =========================
# ADMIN OPS
# =========================
@dataclass(frozen=True)
class KeyStatus:
    key: str
    hwid: Optional[str]
    expiry: Expiry

    @property
    def bound(self) -> bool:
        return self.hwid is not None

    @property
    def status_text(self) -> str:
        return f"HWID Locked: `{self.hwid}`" if self.hwid else "Not bound"

    @property
    def expiry_text(self) -> str:
        return fmt_expiry(self.expiry)

def generate_key(store: KeyStore, duration_class: str, prefix: str,
                 now: Optional[int] = None) -> str:
    if duration_class not in DURATION_MS:
        raise InvalidArgument()

    duration = DURATION_MS[duration_class]
    if duration is None:
        expiry: Expiry = Lifetime()
    else:
        expiry = Timestamp((now_ms() if now is None else now) + duration)

    # no collision check; the uuid suffix makes one unlikely enough
    key = make_key_string(prefix, duration_class)
    store.set(key, KeyRecord(expiry=expiry))
    store.save()
    logger.info("Generated %s key %s", duration_class, key)
    return key

def check_key(store: KeyStore, key: str) -> KeyStatus:
    record = store.get(key)
    if record is None:
        raise NotFound()
    return KeyStatus(key=key, hwid=record.hwid, expiry=record.expiry)

def revoke_key(store: KeyStore, key: str) -> None:
    if not store.delete(key):
        raise NotFound()
    store.save()
    logger.info("Revoked key %s", key)
