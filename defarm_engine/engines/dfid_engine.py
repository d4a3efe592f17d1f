"""
DFID generation and validation.

Format: ``DFID-{YYYYMMDD}-{sequence}-{checksum}``

- ``sequence`` is an optional uppercase instance prefix followed by a
  counter zero-padded to at least six digits.
- ``checksum`` is one ISO 7064 MOD 37,36 check character over the date and
  sequence, followed by three uppercase hex characters of their SHA-256. The
  check character catches every single-character substitution in the date or
  sequence; any change to the checksum itself is a mismatch.
"""

from __future__ import annotations

import hashlib
import re
import threading
from datetime import date, datetime
from typing import Callable, NamedTuple, Optional

from ..config import get_settings
from ..domain import utc_now
from ..storage.base import StorageBackend

DFID_PREFIX = "DFID"
DFID_SEQUENCE_NAME = "dfid"

_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_DATE_RE = re.compile(r"^[0-9]{8}$")
_SEQUENCE_RE = re.compile(r"^[0-9A-Z]{0,4}[0-9]{6,}$")
_CHECKSUM_RE = re.compile(r"^[0-9A-Z][0-9A-F]{3}$")
_INSTANCE_RE = re.compile(r"^[0-9A-Z]{0,4}$")


class DfidParts(NamedTuple):
    issued_on: date
    sequence: str
    checksum: str


def _check_character(payload: str) -> str:
    product = 36
    for char in payload:
        total = (product + _ALPHABET.index(char)) % 36
        if total == 0:
            total = 36
        product = (total * 2) % 37
    return _ALPHABET[(37 - product) % 36]


def compute_checksum(date_part: str, sequence: str) -> str:
    """Checksum segment for a date and sequence pair.

    Examples:
        >>> len(compute_checksum("20240926", "000001"))
        4
    """
    digest = hashlib.sha256(f"{date_part}-{sequence}".encode("ascii")).hexdigest()
    return _check_character(date_part + sequence) + digest[:3].upper()


def parse_dfid(value: object) -> Optional[DfidParts]:
    """Split and verify a DFID. Returns None for anything invalid, never raises."""
    if not isinstance(value, str):
        return None
    parts = value.split("-")
    if len(parts) != 4:
        return None
    prefix, date_part, sequence, checksum = parts
    if prefix != DFID_PREFIX:
        return None
    if not (_DATE_RE.match(date_part) and _SEQUENCE_RE.match(sequence)):
        return None
    if not _CHECKSUM_RE.match(checksum):
        return None
    try:
        issued_on = datetime.strptime(date_part, "%Y%m%d").date()
    except ValueError:
        return None
    if compute_checksum(date_part, sequence) != checksum:
        return None
    return DfidParts(issued_on=issued_on, sequence=sequence, checksum=checksum)


class DfidSequence:
    """Thread-safe process-local monotonic counter."""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


_PROCESS_SEQUENCE = DfidSequence()


class DfidEngine:
    """Mints and validates DFIDs.

    The counter is injected; engines built without one share a single
    process-wide counter. Engines that share a storage backend should share
    its persisted sequence (see ``for_storage``) so they never mint the same
    value. Deployments with several writers against separate sequences must
    set distinct ``instance_id`` values.
    """

    def __init__(
        self,
        sequence: Optional[Callable[[], int]] = None,
        instance_id: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if instance_id is None:
            instance_id = get_settings().dfid_instance_id
        if not _INSTANCE_RE.match(instance_id):
            raise ValueError(f"instance_id must be 0-4 uppercase alphanumerics, got {instance_id!r}")
        self.instance_id = instance_id
        self._sequence = sequence or _PROCESS_SEQUENCE
        self._clock = clock

    @classmethod
    def for_storage(cls, storage: StorageBackend, instance_id: Optional[str] = None) -> "DfidEngine":
        """Engine drawing its counter from the backend's persisted sequence."""
        return cls(
            sequence=lambda: storage.next_sequence(DFID_SEQUENCE_NAME),
            instance_id=instance_id,
        )

    def generate_dfid(self) -> str:
        counter = self._sequence()
        date_part = self._clock().strftime("%Y%m%d")
        sequence = f"{self.instance_id}{counter:06d}"
        return f"{DFID_PREFIX}-{date_part}-{sequence}-{compute_checksum(date_part, sequence)}"

    @staticmethod
    def validate_dfid(value: object) -> bool:
        return parse_dfid(value) is not None
