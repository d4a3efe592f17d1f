"""Tests for circuit lifecycle and membership."""

import uuid

import pytest

from defarm_engine.domain import (
    AdapterConfig,
    AdapterType,
    AliasConfig,
    CircuitStatus,
    MemberRole,
    UserAccount,
    UserTier,
)
from defarm_engine.errors import (
    CannotRemoveSoleOwner,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)


@pytest.fixture
def circuit(circuits_engine):
    return circuits_engine.create_circuit("Fazenda Boa Vista", "cattle", "owner-1")


def add(engine, circuit, member_id, role=MemberRole.MEMBER):
    return engine.add_member_to_circuit(circuit.circuit_id, member_id, role, "owner-1")


class TestLifecycle:
    def test_create_makes_owner_a_member(self, circuit):
        assert circuit.members == {"owner-1": MemberRole.OWNER}
        assert circuit.status == CircuitStatus.ACTIVE
        assert circuit.default_namespace == "generic"

    def test_get_unknown(self, circuits_engine):
        assert circuits_engine.get_circuit(uuid.uuid4()) is None
        with pytest.raises(NotFound):
            circuits_engine.get_circuit_items(uuid.uuid4())

    def test_archive_and_unarchive(self, circuits_engine, circuit):
        archived = circuits_engine.archive_circuit(circuit.circuit_id, "owner-1")
        assert archived.status == CircuitStatus.ARCHIVED
        assert circuits_engine.list_circuits(CircuitStatus.ARCHIVED) == [archived]

        with pytest.raises(InvalidStateTransition):
            circuits_engine.archive_circuit(circuit.circuit_id, "owner-1")

        restored = circuits_engine.unarchive_circuit(circuit.circuit_id, "owner-1")
        assert restored.status == CircuitStatus.ACTIVE

    def test_only_owner_may_archive(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "member-1")
        with pytest.raises(PermissionDenied):
            circuits_engine.archive_circuit(circuit.circuit_id, "member-1")
        assert circuits_engine.get_circuit(circuit.circuit_id).status == CircuitStatus.ACTIVE

    def test_archived_circuit_blocks_membership_changes(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "member-1")
        circuits_engine.archive_circuit(circuit.circuit_id, "owner-1")

        with pytest.raises(InvalidStateTransition):
            add(circuits_engine, circuit, "member-2")
        with pytest.raises(InvalidStateTransition):
            circuits_engine.remove_member(circuit.circuit_id, "member-1", "owner-1")

    def test_circuits_for_member(self, circuits_engine, circuit):
        other = circuits_engine.create_circuit("Other", "", "owner-2")
        add(circuits_engine, circuit, "shared")
        circuits_engine.add_member_to_circuit(
            other.circuit_id, "shared", MemberRole.VIEWER, "owner-2"
        )
        ids = {c.circuit_id for c in circuits_engine.get_circuits_for_member("shared")}
        assert ids == {circuit.circuit_id, other.circuit_id}
        assert circuits_engine.get_circuits_for_member("nobody") == []


class TestMembership:
    def test_add_member(self, circuits_engine, circuit):
        updated = add(circuits_engine, circuit, "member-1", MemberRole.VIEWER)
        assert updated.members["member-1"] == MemberRole.VIEWER

    def test_add_existing_member_rejected(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "member-1")
        with pytest.raises(ValidationError):
            add(circuits_engine, circuit, "member-1", MemberRole.VIEWER)

    @pytest.mark.parametrize("role", [MemberRole.MEMBER, MemberRole.VIEWER])
    def test_non_owner_cannot_add(self, circuits_engine, circuit, role):
        add(circuits_engine, circuit, "insider", role)
        with pytest.raises(PermissionDenied):
            circuits_engine.add_member_to_circuit(
                circuit.circuit_id, "outsider", MemberRole.MEMBER, "insider"
            )
        members = circuits_engine.get_circuit(circuit.circuit_id).members
        assert set(members) == {"owner-1", "insider"}

    def test_remove_member(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "member-1")
        updated = circuits_engine.remove_member(circuit.circuit_id, "member-1", "owner-1")
        assert "member-1" not in updated.members

    def test_remove_unknown_member(self, circuits_engine, circuit):
        with pytest.raises(NotFound):
            circuits_engine.remove_member(circuit.circuit_id, "ghost", "owner-1")

    @pytest.mark.parametrize("requester", ["owner-1", "member-1", "stranger"])
    def test_sole_owner_cannot_be_removed(self, circuits_engine, circuit, requester):
        add(circuits_engine, circuit, "member-1")
        with pytest.raises(CannotRemoveSoleOwner):
            circuits_engine.remove_member(circuit.circuit_id, "owner-1", requester)
        assert circuits_engine.get_circuit(circuit.circuit_id).owner_id == "owner-1"

    def test_owner_removable_when_another_owner_exists(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "owner-2", MemberRole.OWNER)
        updated = circuits_engine.remove_member(circuit.circuit_id, "owner-1", "owner-2")
        assert updated.owner_id == "owner-2"
        assert updated.members == {"owner-2": MemberRole.OWNER}

    def test_change_role(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "member-1")
        updated = circuits_engine.change_role(
            circuit.circuit_id, "member-1", MemberRole.VIEWER, "owner-1"
        )
        assert updated.members["member-1"] == MemberRole.VIEWER

    def test_sole_owner_cannot_be_demoted(self, circuits_engine, circuit):
        with pytest.raises(CannotRemoveSoleOwner):
            circuits_engine.change_role(
                circuit.circuit_id, "owner-1", MemberRole.MEMBER, "owner-1"
            )

    def test_demoting_owner_reassigns_owner_id(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "member-1")
        circuits_engine.change_role(circuit.circuit_id, "member-1", MemberRole.OWNER, "owner-1")
        updated = circuits_engine.change_role(
            circuit.circuit_id, "owner-1", MemberRole.MEMBER, "member-1"
        )
        assert updated.owner_id == "member-1"
        assert updated.members["owner-1"] == MemberRole.MEMBER

    def test_member_cannot_change_roles(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "member-1")
        add(circuits_engine, circuit, "member-2")
        with pytest.raises(PermissionDenied):
            circuits_engine.change_role(
                circuit.circuit_id, "member-2", MemberRole.OWNER, "member-1"
            )
        members = circuits_engine.get_circuit(circuit.circuit_id).members
        assert members["member-2"] == MemberRole.MEMBER


class TestConfiguration:
    def test_set_alias_config(self, circuits_engine, circuit):
        updated = circuits_engine.set_alias_config(
            circuit.circuit_id, AliasConfig.bovine_traceability(), "owner-1"
        )
        assert updated.alias_config.required_canonical == ["sisbov"]

    def test_basic_tier_cannot_choose_stellar(self, circuits_engine, circuit):
        config = AdapterConfig(adapter_type=AdapterType.STELLAR_TESTNET_IPFS)
        with pytest.raises(PermissionDenied):
            circuits_engine.set_adapter_config(circuit.circuit_id, config, "owner-1")
        assert circuits_engine.get_circuit(circuit.circuit_id).adapter_config is None

    def test_enterprise_tier_can_choose_stellar(self, circuits_engine, circuit, storage):
        storage.store_user_account(
            UserAccount(user_id="owner-1", username="owner", tier=UserTier.ENTERPRISE)
        )
        config = AdapterConfig(adapter_type=AdapterType.STELLAR_TESTNET_IPFS)
        updated = circuits_engine.set_adapter_config(circuit.circuit_id, config, "owner-1")
        assert updated.adapter_config.adapter_type == AdapterType.STELLAR_TESTNET_IPFS

    def test_member_cannot_change_adapter(self, circuits_engine, circuit):
        add(circuits_engine, circuit, "member-1")
        with pytest.raises(PermissionDenied):
            circuits_engine.set_adapter_config(
                circuit.circuit_id, AdapterConfig(adapter_type=AdapterType.LOCAL_LOCAL), "member-1"
            )
