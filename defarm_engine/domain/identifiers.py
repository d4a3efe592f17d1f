"""
Identifier value objects and circuit identity policy.

Canonical identifiers participate in deduplication; contextual identifiers
are descriptive metadata only. Two identifiers are the same real-world
identity when their (namespace, key, value) triples match after case
normalization.
"""

from __future__ import annotations

import hashlib
import re
from typing import Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, constr

from ..errors import InvalidIdentifier
from .enums import IdentifierKind

GENERIC_NAMESPACE = "generic"

KNOWN_NAMESPACES = frozenset(
    {
        "bovino",
        "aves",
        "suino",
        "soja",
        "milho",
        "algodao",
        "cafe",
        "leite",
        GENERIC_NAMESPACE,
    }
)

_DIGITS = re.compile(r"^\d+$")
_SISBOV = re.compile(r"^BR\d{12}$")


def _not_all_same(value: str) -> bool:
    return len(set(value)) > 1


def validate_registry_value(registry: str, value: str) -> bool:
    """Check a value against the known format for its registry.

    Unknown registries only require a non-empty value.

    Examples:
        >>> validate_registry_value("sisbov", "BR123456789012")
        True
        >>> validate_registry_value("cpf", "11111111111")
        False
    """
    registry = registry.strip().lower()
    value = value.strip()
    if not value:
        return False
    if registry == "sisbov":
        return bool(_SISBOV.match(value))
    if registry == "cpf":
        return len(value) == 11 and bool(_DIGITS.match(value)) and _not_all_same(value)
    if registry == "cnpj":
        return len(value) == 14 and bool(_DIGITS.match(value)) and _not_all_same(value)
    if registry == "car":
        return value.startswith("BR-") and 9 <= len(value) <= 44
    if registry == "nirf":
        return len(value) >= 8 and bool(_DIGITS.match(value))
    if registry == "ie":
        return len(value) >= 8
    if registry == "rfid":
        return len(value) >= 10
    return True


class LegacyIdentifier(BaseModel):
    """Flat key/value identifier kept for items created before namespacing."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: constr(min_length=1, max_length=128) = Field(..., description="Identifier name")
    value: constr(min_length=1, max_length=512) = Field(..., description="Identifier value")


class Identifier(BaseModel):
    """Namespaced identifier attached to an item.

    Invariants:
    - Equality for dedup purposes is ``dedup_key()``, not field equality
    - Only ``kind == canonical`` identifiers contribute to identity
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: constr(min_length=1, max_length=128) = Field(
        ..., description="Registry or descriptive key (e.g., 'sisbov', 'lote')"
    )
    value: constr(min_length=1, max_length=512) = Field(..., description="Identifier value")
    kind: IdentifierKind = Field(
        IdentifierKind.CONTEXTUAL, description="Canonical identifiers deduplicate"
    )
    namespace: constr(max_length=64) = Field(
        GENERIC_NAMESPACE, description="Domain namespace (e.g., 'bovino')"
    )

    @classmethod
    def canonical(cls, namespace: str, registry: str, value: str) -> "Identifier":
        return cls(
            key=registry, value=value, kind=IdentifierKind.CANONICAL, namespace=namespace
        )

    @classmethod
    def contextual(cls, namespace: str, key: str, value: str) -> "Identifier":
        return cls(key=key, value=value, kind=IdentifierKind.CONTEXTUAL, namespace=namespace)

    @property
    def is_canonical(self) -> bool:
        return self.kind == IdentifierKind.CANONICAL

    def unique_key(self) -> str:
        return f"{self.namespace}:{self.key}:{self.value}"

    def dedup_key(self) -> Tuple[str, str, str]:
        return (
            self.namespace.strip().lower(),
            self.key.strip().lower(),
            self.value.strip().lower(),
        )

    def with_namespace(self, namespace: str) -> "Identifier":
        return self.model_copy(update={"namespace": namespace})

    def to_legacy(self) -> LegacyIdentifier:
        return LegacyIdentifier(key=self.key, value=self.value)

    def validate_format(self) -> None:
        """Raise InvalidIdentifier if a canonical value breaks its registry format."""
        if self.is_canonical and not validate_registry_value(self.key, self.value):
            raise InvalidIdentifier(
                f"Invalid {self.key} value '{self.value}'",
                details={"namespace": self.namespace, "key": self.key},
            )


def canonical_identity_key(
    identifiers: Iterable[Identifier], namespace: Optional[str] = None
) -> str:
    """Build the dedup fingerprint for a set of identifiers.

    Contextual identifiers are ignored. Identifiers without a namespace take
    ``namespace``. Returns an empty string when nothing canonical remains.

    Examples:
        >>> canonical_identity_key([Identifier.canonical("bovino", "SISBOV", "br1")])
        'bovino:sisbov=br1'
    """
    triples: Set[Tuple[str, str, str]] = set()
    for identifier in identifiers:
        if not identifier.is_canonical:
            continue
        if not identifier.namespace and namespace:
            identifier = identifier.with_namespace(namespace)
        triples.add(identifier.dedup_key())
    return "|".join(f"{ns}:{key}={value}" for ns, key, value in sorted(triples))


def canonical_identity_keys(
    identifiers: Iterable[Identifier], namespace: Optional[str] = None
) -> List[str]:
    """One identity key per distinct canonical identifier, sorted.

    Each key names a single real-world identity; any one of them binds the
    item to its DFID.

    Examples:
        >>> canonical_identity_keys([
        ...     Identifier.canonical("bovino", "sisbov", "BR1"),
        ...     Identifier.canonical("bovino", "rfid", "98"),
        ... ])
        ['bovino:rfid=98', 'bovino:sisbov=br1']
    """
    keys = {canonical_identity_key([identifier], namespace) for identifier in identifiers}
    keys.discard("")
    return sorted(keys)


def identity_hash(identity_key: str) -> str:
    """Fixed-width digest of a canonical identity key, used for lock and index keys."""
    return hashlib.sha256(identity_key.encode("utf-8")).hexdigest()


def merge_identifiers(
    existing: List[Identifier], incoming: Iterable[Identifier]
) -> List[Identifier]:
    """Append identifiers not already present (by dedup key and kind), keeping order."""
    seen = {(i.dedup_key(), i.kind) for i in existing}
    merged = list(existing)
    for identifier in incoming:
        marker = (identifier.dedup_key(), identifier.kind)
        if marker not in seen:
            seen.add(marker)
            merged.append(identifier)
    return merged


def merge_legacy_identifiers(
    existing: List[LegacyIdentifier], incoming: Iterable[LegacyIdentifier]
) -> List[LegacyIdentifier]:
    merged = list(existing)
    for identifier in incoming:
        if identifier not in merged:
            merged.append(identifier)
    return merged


class AliasConfig(BaseModel):
    """Identity policy a circuit applies to pushed items.

    Invariants:
    - ``required_canonical`` keys must all be supplied as canonical identifiers
    - An empty ``allowed_namespaces`` allows every namespace
    """

    model_config = ConfigDict(extra="forbid")

    required_canonical: List[str] = Field(
        default_factory=list, description="Canonical keys that must be present"
    )
    required_contextual: List[str] = Field(
        default_factory=list, description="Contextual keys that must be present"
    )
    allowed_namespaces: List[str] = Field(
        default_factory=list, description="Namespaces accepted by the circuit"
    )
    auto_apply_namespace: bool = Field(
        True, description="Fill generic namespaces with the circuit default"
    )
    use_fingerprint: bool = Field(
        False,
        description="Deduplicate on the required contextual identifiers when no "
        "canonical identifier is supplied",
    )

    @classmethod
    def bovine_traceability(cls) -> "AliasConfig":
        return cls(required_canonical=["sisbov"], allowed_namespaces=["bovino"])

    @classmethod
    def grain_lots(cls) -> "AliasConfig":
        return cls(
            required_contextual=["lote", "safra"],
            allowed_namespaces=["soja", "milho", "algodao"],
            use_fingerprint=True,
        )

    @classmethod
    def poultry(cls) -> "AliasConfig":
        return cls(required_contextual=["lote"], allowed_namespaces=["aves"])

    @classmethod
    def open(cls) -> "AliasConfig":
        return cls(auto_apply_namespace=False)


def contextual_fingerprint_key(
    identifiers: Iterable[Identifier], keys: Iterable[str], namespace: str
) -> str:
    """Fallback identity built from the named contextual identifiers.

    Returns an empty string unless every key in ``keys`` is present.
    """
    wanted = {key.strip().lower() for key in keys}
    if not wanted:
        return ""
    values = {}
    for identifier in identifiers:
        key = identifier.key.strip().lower()
        if not identifier.is_canonical and key in wanted:
            values[key] = identifier.value.strip().lower()
    if set(values) != wanted:
        return ""
    ns = namespace.strip().lower()
    return "fp|" + "|".join(f"{ns}:{key}={values[key]}" for key in sorted(values))
