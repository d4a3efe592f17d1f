"""Tests for identifier value objects and identity keys."""

import pytest

from defarm_engine.domain import (
    AliasConfig,
    Identifier,
    IdentifierKind,
    canonical_identity_key,
    canonical_identity_keys,
    contextual_fingerprint_key,
    identity_hash,
    validate_registry_value,
)
from defarm_engine.errors import InvalidIdentifier


class TestRegistryValidation:
    @pytest.mark.parametrize(
        "registry,value,expected",
        [
            ("sisbov", "BR123456789012", True),
            ("SISBOV", "BR123456789012", True),
            ("sisbov", "BR12345678901", False),
            ("sisbov", "US123456789012", False),
            ("cpf", "12345678901", True),
            ("cpf", "11111111111", False),
            ("cpf", "1234567890a", False),
            ("cnpj", "12345678000195", True),
            ("cnpj", "00000000000000", False),
            ("car", "BR-1234567", True),
            ("car", "XX-1234567", False),
            ("nirf", "12345678", True),
            ("nirf", "1234567", False),
            ("ie", "12345678", True),
            ("rfid", "9820000001", True),
            ("rfid", "982", False),
            ("ear_tag", "A1", True),
            ("ear_tag", "   ", False),
        ],
    )
    def test_formats(self, registry, value, expected):
        assert validate_registry_value(registry, value) is expected

    def test_invalid_canonical_value_raises(self):
        with pytest.raises(InvalidIdentifier) as exc_info:
            Identifier.canonical("bovino", "sisbov", "BR123").validate_format()
        assert exc_info.value.code == "invalid_identifier"

    def test_contextual_values_are_not_format_checked(self):
        Identifier.contextual("bovino", "sisbov", "anything").validate_format()


class TestIdentifier:
    def test_constructors_set_kind(self):
        assert Identifier.canonical("bovino", "sisbov", "BR1").kind == IdentifierKind.CANONICAL
        assert Identifier.contextual("bovino", "lote", "7").kind == IdentifierKind.CONTEXTUAL

    def test_unique_key(self):
        assert Identifier.canonical("bovino", "sisbov", "BR1").unique_key() == "bovino:sisbov:BR1"

    def test_dedup_key_is_case_normalized(self):
        a = Identifier.canonical("Bovino", "SISBOV", " br123456789012 ")
        b = Identifier.canonical("bovino", "sisbov", "BR123456789012")
        assert a.dedup_key() == b.dedup_key()

    def test_default_namespace_is_generic(self):
        assert Identifier(key="lote", value="1").namespace == "generic"


class TestCanonicalIdentityKey:
    def test_ignores_contextual_identifiers(self):
        ids = [
            Identifier.canonical("bovino", "sisbov", "BR123456789012"),
            Identifier.contextual("bovino", "lote", "42"),
        ]
        assert canonical_identity_key(ids) == "bovino:sisbov=br123456789012"

    def test_order_and_case_independent(self):
        a = [
            Identifier.canonical("bovino", "sisbov", "BR123456789012"),
            Identifier.canonical("bovino", "rfid", "9820000001"),
        ]
        b = [
            Identifier.canonical("BOVINO", "RFID", "9820000001"),
            Identifier.canonical("bovino", "SISBOV", "br123456789012"),
        ]
        assert canonical_identity_key(a) == canonical_identity_key(b)
        assert identity_hash(canonical_identity_key(a)) == identity_hash(canonical_identity_key(b))

    def test_namespace_separates_identities(self):
        a = [Identifier.canonical("bovino", "rfid", "9820000001")]
        b = [Identifier.canonical("suino", "rfid", "9820000001")]
        assert canonical_identity_key(a) != canonical_identity_key(b)

    def test_empty_when_nothing_canonical(self):
        assert canonical_identity_key([Identifier.contextual("bovino", "lote", "1")]) == ""

    def test_empty_namespace_takes_scope(self):
        ids = [Identifier(key="sisbov", value="BR1", kind=IdentifierKind.CANONICAL, namespace="")]
        assert canonical_identity_key(ids, "bovino") == "bovino:sisbov=br1"

    def test_hash_is_fixed_width(self):
        assert len(identity_hash("bovino:sisbov=br1")) == 64

    def test_one_key_per_canonical_identifier(self):
        ids = [
            Identifier.canonical("bovino", "SISBOV", "BR123456789012"),
            Identifier.canonical("bovino", "rfid", "9820000001"),
            Identifier.canonical("BOVINO", "rfid", "9820000001"),
            Identifier.contextual("bovino", "lote", "42"),
        ]
        assert canonical_identity_keys(ids) == [
            "bovino:rfid=9820000001",
            "bovino:sisbov=br123456789012",
        ]

    def test_keys_empty_when_nothing_canonical(self):
        assert canonical_identity_keys([Identifier.contextual("bovino", "lote", "1")]) == []


class TestContextualFingerprint:
    def test_requires_every_key(self):
        ids = [Identifier.contextual("soja", "lote", "L1")]
        assert contextual_fingerprint_key(ids, ["lote", "safra"], "soja") == ""

    def test_builds_key_from_named_values(self):
        ids = [
            Identifier.contextual("soja", "safra", "2024"),
            Identifier.contextual("soja", "lote", "L1"),
            Identifier.contextual("soja", "cor", "amarelo"),
        ]
        key = contextual_fingerprint_key(ids, ["lote", "safra"], "soja")
        assert key == "fp|soja:lote=l1|soja:safra=2024"


class TestAliasConfigPresets:
    def test_bovine(self):
        config = AliasConfig.bovine_traceability()
        assert config.required_canonical == ["sisbov"]
        assert config.allowed_namespaces == ["bovino"]

    def test_grain_lots_use_fingerprint(self):
        config = AliasConfig.grain_lots()
        assert config.use_fingerprint is True
        assert "safra" in config.required_contextual

    def test_open_disables_namespace_auto_apply(self):
        assert AliasConfig.open().auto_apply_namespace is False

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValueError):
            AliasConfig(required=["sisbov"])
