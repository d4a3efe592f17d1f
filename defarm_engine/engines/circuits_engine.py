"""
Circuits engine.

Owns circuit lifecycle, membership and the push/pull protocol. A push
deduplicates the incoming item against canonical identities already bound to
a DFID, mints a DFID only when none exists, commits the LID -> DFID mapping,
and only then mirrors the item through the circuit's storage adapter.

Locking:
- ``circuit:{id}`` guards read-modify-write of one circuit record.
- ``lid:{local_id}`` + ``identity:{hash}`` are taken together for the
  check-and-mint step of a push.
- ``item:{dfid}`` guards enrichment of an existing item.
No lock is acquired while another is held except through a single
multi-key ``locked()`` call.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from uuid import UUID

import structlog

from ..adapters.registry import AdapterRegistry, create_default_registry
from ..config import get_settings
from ..domain import (
    GENERIC_NAMESPACE,
    AdapterConfig,
    AdapterType,
    AliasConfig,
    Circuit,
    CircuitOperation,
    CircuitStatus,
    EventType,
    EventVisibility,
    Identifier,
    IpfsLocation,
    Item,
    MemberRole,
    MirrorResult,
    MirrorStatus,
    OperationStatus,
    OperationType,
    Permission,
    PushResult,
    PushStatus,
    StellarLocation,
    StorageMetadata,
    UserTier,
    canonical_identity_keys,
    contextual_fingerprint_key,
    identity_hash,
    lid_placeholder,
)
from ..domain.identifiers import merge_identifiers, merge_legacy_identifiers
from ..errors import (
    AdapterFailure,
    CannotRemoveSoleOwner,
    InvalidIdentifier,
    InvalidStateTransition,
    MissingRequiredIdentifier,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from ..policy import require_permission, tier_allows_adapter
from ..storage.base import StorageBackend
from .dfid_engine import DfidEngine
from .events_engine import EventsEngine
from .items_engine import item_lock_key
from .storage_history import StorageHistoryManager

logger = structlog.get_logger(__name__)

TRIGGER_PUSH = "circuit_push"
TRIGGER_RETRY = "circuit_mirror_retry"


def _blockchain_evidence(metadata: StorageMetadata) -> Optional[Tuple[str, str]]:
    """Return ``(cid, transaction_hash)`` if the adapter anchored the item on-chain."""
    location = metadata.item_location
    if isinstance(location, StellarLocation) and location.asset_id:
        return location.asset_id, location.transaction_id

    cid = location.cid if isinstance(location, IpfsLocation) else None
    tx_hash = None
    for extra in metadata.event_locations:
        if cid is None and isinstance(extra, IpfsLocation):
            cid = extra.cid
        if tx_hash is None and isinstance(extra, StellarLocation):
            tx_hash = extra.transaction_id
    if cid and tx_hash:
        return cid, tx_hash
    return None


class CircuitsEngine:
    """Circuit lifecycle, membership and push/pull."""

    def __init__(
        self,
        storage: StorageBackend,
        dfid_engine: Optional[DfidEngine] = None,
        events: Optional[EventsEngine] = None,
        history: Optional[StorageHistoryManager] = None,
        adapters: Optional[AdapterRegistry] = None,
        adapter_timeout: Optional[float] = None,
        adapter_workers: int = 4,
    ):
        self.storage = storage
        self.dfid_engine = dfid_engine or DfidEngine.for_storage(storage)
        self.events = events or EventsEngine(storage)
        self.history = history or StorageHistoryManager(storage)
        self.adapters = adapters or create_default_registry()
        self.adapter_timeout = (
            adapter_timeout
            if adapter_timeout is not None
            else get_settings().adapter_timeout_seconds
        )
        self._adapter_workers = adapter_workers
        self._executor = self._new_executor()
        self._hung: Set[Future] = set()
        self._hung_lock = threading.Lock()
        self.logger = logger.bind(engine="circuits")

    def close(self) -> None:
        """Release the adapter worker threads without waiting on stuck calls."""
        self._executor.shutdown(wait=False)

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self._adapter_workers, thread_name_prefix="defarm-adapter"
        )

    def _submit_adapter_call(self, fn, *args) -> Future:
        """Submit to the adapter pool, replacing it once every worker is stuck."""
        with self._hung_lock:
            if len(self._hung) >= self._adapter_workers:
                self.logger.warning("adapter_executor_replaced", stuck_workers=len(self._hung))
                self._executor.shutdown(wait=False)
                self._executor = self._new_executor()
                self._hung.clear()
            return self._executor.submit(fn, *args)

    def _mark_hung(self, future: Future) -> int:
        with self._hung_lock:
            if not future.done():
                self._hung.add(future)
            stuck = len(self._hung)
        future.add_done_callback(self._release_hung)
        return stuck

    def _release_hung(self, future: Future) -> None:
        with self._hung_lock:
            self._hung.discard(future)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, circuit_id: UUID) -> Circuit:
        circuit = self.storage.get_circuit(circuit_id)
        if circuit is None:
            raise NotFound(
                f"Circuit {circuit_id} not found", details={"circuit_id": str(circuit_id)}
            )
        return circuit

    @staticmethod
    def _require_active(circuit: Circuit, action: str) -> None:
        if not circuit.is_active:
            raise InvalidStateTransition(
                f"Cannot {action} while circuit {circuit.circuit_id} is {circuit.status.value}",
                details={"circuit_id": str(circuit.circuit_id), "status": circuit.status.value},
            )

    @staticmethod
    def _require_owner(circuit: Circuit, user_id: str) -> None:
        if circuit.role_of(user_id) != MemberRole.OWNER:
            raise PermissionDenied(
                f"Only an owner may change the status of circuit {circuit.circuit_id}",
                details={"circuit_id": str(circuit.circuit_id), "user_id": user_id},
            )

    @staticmethod
    def _guard_sole_owner(circuit: Circuit, member_id: str) -> None:
        if circuit.members.get(member_id) == MemberRole.OWNER and len(circuit.owners()) == 1:
            raise CannotRemoveSoleOwner(
                f"User '{member_id}' is the sole owner of circuit {circuit.circuit_id}",
                details={"circuit_id": str(circuit.circuit_id), "user_id": member_id},
            )

    def _tier_of(self, user_id: str) -> UserTier:
        account = self.storage.get_user_account(user_id)
        return account.tier if account else UserTier.BASIC

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_circuit(
        self,
        name: str,
        description: str,
        owner_id: str,
        default_namespace: Optional[str] = None,
        alias_config: Optional[AliasConfig] = None,
        adapter_config: Optional[AdapterConfig] = None,
    ) -> Circuit:
        circuit = Circuit(
            name=name,
            description=description,
            owner_id=owner_id,
            default_namespace=default_namespace or get_settings().default_namespace,
            alias_config=alias_config,
            adapter_config=adapter_config,
        )
        self.storage.store_circuit(circuit)
        self.logger.info(
            "circuit_created",
            circuit_id=str(circuit.circuit_id),
            owner_id=owner_id,
            namespace=circuit.default_namespace,
        )
        return circuit

    def get_circuit(self, circuit_id: UUID) -> Optional[Circuit]:
        return self.storage.get_circuit(circuit_id)

    def list_circuits(self, status: Optional[CircuitStatus] = None) -> List[Circuit]:
        circuits = self.storage.list_circuits()
        if status is None:
            return circuits
        return [c for c in circuits if c.status == status]

    def get_circuits_for_member(self, user_id: str) -> List[Circuit]:
        return [c for c in self.storage.list_circuits() if c.role_of(user_id) is not None]

    def get_circuit_items(self, circuit_id: UUID) -> List[str]:
        self._load(circuit_id)
        return self.storage.list_circuit_items(circuit_id)

    def get_circuit_operations(self, circuit_id: UUID) -> List[CircuitOperation]:
        self._load(circuit_id)
        return self.storage.list_circuit_operations(circuit_id)

    def archive_circuit(self, circuit_id: UUID, requester_id: str) -> Circuit:
        return self._set_status(circuit_id, requester_id, CircuitStatus.ARCHIVED)

    def unarchive_circuit(self, circuit_id: UUID, requester_id: str) -> Circuit:
        return self._set_status(circuit_id, requester_id, CircuitStatus.ACTIVE)

    def _set_status(self, circuit_id: UUID, requester_id: str, status: CircuitStatus) -> Circuit:
        with self.storage.locked(f"circuit:{circuit_id}"):
            circuit = self._load(circuit_id)
            self._require_owner(circuit, requester_id)
            if circuit.status == status:
                raise InvalidStateTransition(
                    f"Circuit {circuit_id} is already {status.value}",
                    details={"circuit_id": str(circuit_id), "status": status.value},
                )
            circuit.status = status
            circuit.touch()
            self.storage.store_circuit(circuit)
        self.logger.info(
            "circuit_status_changed",
            circuit_id=str(circuit_id),
            status=status.value,
            requester_id=requester_id,
        )
        return circuit

    def set_alias_config(
        self, circuit_id: UUID, alias_config: Optional[AliasConfig], requester_id: str
    ) -> Circuit:
        with self.storage.locked(f"circuit:{circuit_id}"):
            circuit = self._load(circuit_id)
            require_permission(circuit, requester_id, Permission.MANAGE_ADAPTER)
            self._require_active(circuit, "change the alias config")
            circuit.alias_config = alias_config
            circuit.touch()
            self.storage.store_circuit(circuit)
        self.logger.info("circuit_alias_config_set", circuit_id=str(circuit_id))
        return circuit

    def set_adapter_config(
        self, circuit_id: UUID, adapter_config: AdapterConfig, requester_id: str
    ) -> Circuit:
        """Choose the circuit's storage adapter.

        Raises:
            PermissionDenied: Requester lacks ManageAdapter, or their account
                tier does not allow the adapter
            InvalidStateTransition: Circuit is archived
        """
        tier = self._tier_of(requester_id)
        with self.storage.locked(f"circuit:{circuit_id}"):
            circuit = self._load(circuit_id)
            require_permission(circuit, requester_id, Permission.MANAGE_ADAPTER)
            self._require_active(circuit, "change the adapter config")
            if not tier_allows_adapter(tier, adapter_config.adapter_type):
                raise PermissionDenied(
                    f"Tier '{tier.value}' may not use adapter "
                    f"'{adapter_config.adapter_type.value}'",
                    details={"tier": tier.value, "adapter_type": adapter_config.adapter_type.value},
                )
            circuit.adapter_config = adapter_config
            circuit.touch()
            self.storage.store_circuit(circuit)
        self.logger.info(
            "circuit_adapter_config_set",
            circuit_id=str(circuit_id),
            adapter_type=adapter_config.adapter_type.value,
        )
        return circuit

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add_member_to_circuit(
        self, circuit_id: UUID, member_id: str, role: MemberRole, requester_id: str
    ) -> Circuit:
        with self.storage.locked(f"circuit:{circuit_id}"):
            circuit = self._load(circuit_id)
            require_permission(circuit, requester_id, Permission.MANAGE_MEMBERS)
            self._require_active(circuit, "add members")
            if member_id in circuit.members:
                raise ValidationError(
                    f"User '{member_id}' is already a member of circuit {circuit_id}",
                    details={"circuit_id": str(circuit_id), "user_id": member_id},
                )
            circuit.members[member_id] = role
            circuit.touch()
            self.storage.store_circuit(circuit)
        self.logger.info(
            "member_added",
            circuit_id=str(circuit_id),
            member_id=member_id,
            role=role.value,
            requester_id=requester_id,
        )
        return circuit

    def remove_member(self, circuit_id: UUID, member_id: str, requester_id: str) -> Circuit:
        """Remove a member.

        The sole owner can never be removed, whoever asks; that check runs
        before the permission check.
        """
        with self.storage.locked(f"circuit:{circuit_id}"):
            circuit = self._load(circuit_id)
            if member_id not in circuit.members:
                raise NotFound(
                    f"User '{member_id}' is not a member of circuit {circuit_id}",
                    details={"circuit_id": str(circuit_id), "user_id": member_id},
                )
            self._guard_sole_owner(circuit, member_id)
            require_permission(circuit, requester_id, Permission.MANAGE_MEMBERS)
            self._require_active(circuit, "remove members")
            del circuit.members[member_id]
            if member_id == circuit.owner_id:
                circuit.owner_id = circuit.owners()[0]
            circuit.touch()
            self.storage.store_circuit(circuit)
        self.logger.info(
            "member_removed",
            circuit_id=str(circuit_id),
            member_id=member_id,
            requester_id=requester_id,
        )
        return circuit

    def change_role(
        self, circuit_id: UUID, member_id: str, new_role: MemberRole, requester_id: str
    ) -> Circuit:
        with self.storage.locked(f"circuit:{circuit_id}"):
            circuit = self._load(circuit_id)
            if member_id not in circuit.members:
                raise NotFound(
                    f"User '{member_id}' is not a member of circuit {circuit_id}",
                    details={"circuit_id": str(circuit_id), "user_id": member_id},
                )
            if new_role != MemberRole.OWNER:
                self._guard_sole_owner(circuit, member_id)
            require_permission(circuit, requester_id, Permission.MANAGE_MEMBERS)
            self._require_active(circuit, "change roles")
            circuit.members[member_id] = new_role
            if member_id == circuit.owner_id and new_role != MemberRole.OWNER:
                circuit.owner_id = circuit.owners()[0]
            circuit.touch()
            self.storage.store_circuit(circuit)
        self.logger.info(
            "member_role_changed",
            circuit_id=str(circuit_id),
            member_id=member_id,
            role=new_role.value,
            requester_id=requester_id,
        )
        return circuit

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def _prepare_identifiers(
        self, circuit: Circuit, identifiers: Sequence[Identifier], local_item: Optional[Item]
    ) -> List[Identifier]:
        """Apply the circuit's alias policy; raise before anything is written."""
        config = circuit.alias_config or AliasConfig()
        combined = merge_identifiers([], identifiers)
        if local_item is not None:
            combined = merge_identifiers(combined, local_item.enhanced_identifiers)

        if config.auto_apply_namespace:
            combined = [
                i.with_namespace(circuit.default_namespace)
                if i.namespace in ("", GENERIC_NAMESPACE)
                else i
                for i in combined
            ]

        if config.allowed_namespaces:
            allowed = {ns.lower() for ns in config.allowed_namespaces}
            for identifier in combined:
                if identifier.namespace.lower() not in allowed:
                    raise InvalidIdentifier(
                        f"Namespace '{identifier.namespace}' is not allowed in circuit "
                        f"{circuit.circuit_id}",
                        details={"namespace": identifier.namespace, "allowed": sorted(allowed)},
                    )

        canonical = {i.key.strip().lower() for i in combined if i.is_canonical}
        contextual = {i.key.strip().lower() for i in combined if not i.is_canonical}
        missing = [k for k in config.required_canonical if k.strip().lower() not in canonical]
        missing += [k for k in config.required_contextual if k.strip().lower() not in contextual]
        if missing:
            raise MissingRequiredIdentifier(
                f"Missing required identifiers for circuit {circuit.circuit_id}: "
                f"{', '.join(missing)}",
                details={"circuit_id": str(circuit.circuit_id), "missing": missing},
            )

        for identifier in combined:
            identifier.validate_format()
        return combined

    @staticmethod
    def _identity_keys(circuit: Circuit, identifiers: Sequence[Identifier]) -> List[str]:
        """Identity keys for a push: one per canonical identifier, else the fingerprint."""
        keys = canonical_identity_keys(identifiers, circuit.default_namespace)
        config = circuit.alias_config
        if not keys and config is not None and config.use_fingerprint:
            fingerprint = contextual_fingerprint_key(
                identifiers, config.required_contextual, circuit.default_namespace
            )
            if fingerprint:
                keys = [fingerprint]
        return keys

    def push_local_item_to_circuit(
        self,
        local_id: UUID,
        identifiers: Sequence[Identifier],
        enriched_data: Optional[Dict[str, Any]],
        circuit_id: UUID,
        requester_id: str,
        source_entry: Optional[UUID] = None,
        visibility: Optional[EventVisibility] = None,
        timeout: Optional[float] = None,
    ) -> PushResult:
        """Admit a local item to a circuit, tokenizing or deduplicating it.

        Identifiers and enriched data already stored on the local item (if one
        was created with ``ItemsEngine.create_local_item``) are combined with
        the ones passed in; passed-in values win.

        Args:
            local_id: Local id of the item being pushed
            identifiers: Namespaced identifiers; canonical ones drive dedup
            enriched_data: Data to attach to the resulting DFID item
            circuit_id: Target circuit
            requester_id: Acting user; needs Push permission
            source_entry: Provenance reference appended to the item
            visibility: Visibility of the PushedToCircuit event
            timeout: Adapter call timeout in seconds

        Returns:
            PushResult. Adapter problems are reported in ``mirror_status`` and
            ``mirror_error``; the DFID and mapping stay committed.

        Raises:
            NotFound: Unknown circuit
            PermissionDenied: Requester lacks Push permission
            InvalidStateTransition: Circuit archived, or the identity resolves
                to a DFID the local id cannot map to
            MissingRequiredIdentifier: Required identifiers absent
            InvalidIdentifier: Namespace not allowed or registry format invalid
        """
        circuit = self._load(circuit_id)
        require_permission(circuit, requester_id, Permission.PUSH)
        self._require_active(circuit, "push")

        local_item = self.storage.get_item_by_dfid(lid_placeholder(local_id))
        prepared = self._prepare_identifiers(circuit, identifiers, local_item)
        data: Dict[str, Any] = dict(local_item.enriched_data) if local_item else {}
        data.update(enriched_data or {})
        identity_keys = self._identity_keys(circuit, prepared)

        dfid, created = self._resolve_or_mint(
            local_id, identity_keys, prepared, data, source_entry, local_item
        )
        push_log = self.logger.bind(
            circuit_id=str(circuit_id), local_id=str(local_id), dfid=dfid, requester_id=requester_id
        )
        if created:
            push_log.info("item_tokenized")
        else:
            self._absorb(dfid, prepared, data, source_entry, local_item, requester_id)
            push_log.info("push_deduplicated")
        if local_item is not None:
            self.storage.remove_item(local_item.dfid)

        return self._complete_push(
            circuit,
            dfid,
            local_id,
            PushStatus.CREATED if created else PushStatus.DEDUPLICATED,
            requester_id,
            visibility,
            timeout,
        )

    def _resolve_or_mint(
        self,
        local_id: UUID,
        identity_keys: List[str],
        identifiers: List[Identifier],
        data: Dict[str, Any],
        source_entry: Optional[UUID],
        local_item: Optional[Item],
    ) -> Tuple[str, bool]:
        """Atomic check-and-mint. Returns ``(dfid, created)``.

        Every identity key is resolved on its own; the push reuses the DFID
        any of them is bound to, and all unbound keys are then bound to it.
        """
        hashes = {identity_hash(key): key for key in identity_keys}
        lock_keys = [f"lid:{local_id}"] + [f"identity:{h}" for h in sorted(hashes)]

        with self.storage.locked(*lock_keys):
            mapped = self.storage.get_dfid_by_lid(local_id)
            bindings = {h: self.storage.get_dfid_by_canonical_identity(h) for h in hashes}
            bound = {dfid for dfid in bindings.values() if dfid is not None}
            if len(bound) > 1:
                raise InvalidStateTransition(
                    f"Identifiers of local item {local_id} belong to different DFIDs: "
                    f"{', '.join(sorted(bound))}",
                    details={"local_id": str(local_id), "dfids": sorted(bound)},
                )
            bound_dfid = bound.pop() if bound else None
            if mapped and bound_dfid and mapped != bound_dfid:
                raise InvalidStateTransition(
                    f"Local item {local_id} is mapped to {mapped} but its identity "
                    f"belongs to {bound_dfid}",
                    details={"local_id": str(local_id), "mapped": mapped, "identity": bound_dfid},
                )
            unbound = [h for h, dfid in bindings.items() if dfid is None]

            target = mapped or bound_dfid
            if target is None:
                new_dfid = self.dfid_engine.generate_dfid()
                winner = new_dfid
                if unbound:
                    first = unbound[0]
                    winner = self.storage.claim_canonical_identity(first, hashes[first], new_dfid)
                if winner == new_dfid:
                    self._bind(unbound[1:], hashes, new_dfid)
                    self.storage.store_item(
                        self._tokenize(new_dfid, identifiers, data, source_entry, local_item)
                    )
                    self._map(local_id, new_dfid)
                    return new_dfid, True
                target = winner
                unbound = unbound[1:]

            existing = self.storage.get_item_by_dfid(target)
            if existing is not None and existing.status.is_terminal:
                raise InvalidStateTransition(
                    f"Identity resolves to {target}, which is {existing.status.value}",
                    details={"dfid": target, "merged_into": existing.merged_into},
                )
            self._bind(unbound, hashes, target)
            self._map(local_id, target)
            return target, False

    def _bind(self, unbound: Sequence[str], hashes: Dict[str, str], dfid: str) -> None:
        for id_hash in unbound:
            claimed = self.storage.claim_canonical_identity(id_hash, hashes[id_hash], dfid)
            if claimed != dfid:
                raise InvalidStateTransition(
                    f"Identity {hashes[id_hash]} was bound to {claimed} while resolving {dfid}",
                    details={"dfid": dfid, "identity": claimed},
                )

    def _map(self, local_id: UUID, dfid: str) -> None:
        stored = self.storage.store_lid_dfid_mapping(local_id, dfid)
        if stored != dfid:
            raise InvalidStateTransition(
                f"Local item {local_id} is already mapped to {stored}",
                details={"local_id": str(local_id), "dfid": stored},
            )

    @staticmethod
    def _tokenize(
        dfid: str,
        identifiers: List[Identifier],
        data: Dict[str, Any],
        source_entry: Optional[UUID],
        local_item: Optional[Item],
    ) -> Item:
        item = Item(
            dfid=dfid,
            identifiers=list(local_item.identifiers) if local_item else [],
            enhanced_identifiers=identifiers,
            enriched_data=data,
            source_entries=list(local_item.source_entries) if local_item else [],
            confidence_score=local_item.confidence_score if local_item else 1.0,
        )
        if local_item is not None:
            item.creation_timestamp = local_item.creation_timestamp
        item.add_source_entry(source_entry)
        return item

    def _absorb(
        self,
        dfid: str,
        identifiers: List[Identifier],
        data: Dict[str, Any],
        source_entry: Optional[UUID],
        local_item: Optional[Item],
        requester_id: str,
    ) -> None:
        """Merge a deduplicated push into the item that already owns the DFID."""
        with self.storage.locked(item_lock_key(dfid)):
            item = self.storage.get_item_by_dfid(dfid)
            if item is None:
                # Identity bound but item never written; materialize it now
                self.storage.store_item(
                    self._tokenize(dfid, identifiers, data, source_entry, local_item)
                )
                return
            before = (len(item.enhanced_identifiers), len(item.identifiers), dict(item.enriched_data))
            item.enhanced_identifiers = merge_identifiers(item.enhanced_identifiers, identifiers)
            if local_item is not None:
                item.identifiers = merge_legacy_identifiers(item.identifiers, local_item.identifiers)
                for entry in local_item.source_entries:
                    item.add_source_entry(entry)
            item.enriched_data.update(data)
            item.add_source_entry(source_entry)
            changed = before != (
                len(item.enhanced_identifiers),
                len(item.identifiers),
                item.enriched_data,
            )
            item.touch()
            self.storage.store_item(item)
        if changed:
            self.events.create_event(
                dfid,
                EventType.ENRICHED,
                requester_id,
                metadata={"enriched_keys": sorted(data), "via": TRIGGER_PUSH},
            )

    def push_item_to_circuit(
        self,
        dfid: str,
        circuit_id: UUID,
        requester_id: str,
        visibility: Optional[EventVisibility] = None,
        timeout: Optional[float] = None,
    ) -> PushResult:
        """Share an already tokenized item with a circuit.

        No DFID is minted, so the push status is always Deduplicated.
        """
        circuit = self._load(circuit_id)
        require_permission(circuit, requester_id, Permission.PUSH)
        self._require_active(circuit, "push")
        item = self.storage.get_item_by_dfid(dfid)
        if item is None or item.is_local:
            raise NotFound(f"Item {dfid} not found", details={"dfid": dfid})
        if item.status.is_terminal:
            raise InvalidStateTransition(
                f"Cannot push item {dfid} with status {item.status.value}",
                details={"dfid": dfid, "status": item.status.value},
            )
        return self._complete_push(
            circuit, dfid, None, PushStatus.DEDUPLICATED, requester_id, visibility, timeout
        )

    def _complete_push(
        self,
        circuit: Circuit,
        dfid: str,
        local_id: Optional[UUID],
        push_status: PushStatus,
        requester_id: str,
        visibility: Optional[EventVisibility],
        timeout: Optional[float],
    ) -> PushResult:
        self.storage.add_circuit_item(circuit.circuit_id, dfid, requester_id)
        mirror = self._mirror(circuit, dfid, requester_id, timeout, TRIGGER_PUSH)

        operation = CircuitOperation(
            circuit_id=circuit.circuit_id,
            dfid=dfid,
            operation_type=OperationType.PUSH,
            requester_id=requester_id,
            status=(
                OperationStatus.DEGRADED
                if mirror.mirror_status == MirrorStatus.FAILED
                else OperationStatus.COMPLETED
            ),
        )
        self.storage.store_circuit_operation(operation)
        self.events.create_circuit_operation_event(
            dfid,
            circuit.circuit_id,
            OperationType.PUSH,
            requester_id,
            visibility,
            metadata={
                "operation_id": str(operation.operation_id),
                "push_status": push_status.value,
                "mirror_status": mirror.mirror_status.value,
                "local_id": str(local_id) if local_id else None,
            },
        )
        return PushResult(
            dfid=dfid,
            local_id=local_id,
            circuit_id=circuit.circuit_id,
            push_status=push_status,
            operation_id=operation.operation_id,
            storage=mirror.storage,
            mirror_status=mirror.mirror_status,
            mirror_error=mirror.mirror_error,
        )

    # ------------------------------------------------------------------
    # Mirroring
    # ------------------------------------------------------------------

    def mirror_item(
        self,
        dfid: str,
        circuit_id: UUID,
        requester_id: str,
        timeout: Optional[float] = None,
    ) -> MirrorResult:
        """Retry adapter mirroring for a DFID already in the circuit."""
        circuit = self._load(circuit_id)
        require_permission(circuit, requester_id, Permission.PUSH)
        if not self.storage.is_item_in_circuit(circuit_id, dfid):
            raise NotFound(
                f"Item {dfid} is not in circuit {circuit_id}",
                details={"dfid": dfid, "circuit_id": str(circuit_id)},
            )
        return self._mirror(circuit, dfid, requester_id, timeout, TRIGGER_RETRY)

    def _mirror(
        self,
        circuit: Circuit,
        dfid: str,
        requester_id: str,
        timeout: Optional[float],
        triggered_by: str,
    ) -> MirrorResult:
        """Best-effort copy to the circuit's adapter. Never raises for adapter faults."""
        config = circuit.adapter_config
        result = MirrorResult(
            dfid=dfid, circuit_id=circuit.circuit_id, mirror_status=MirrorStatus.SKIPPED
        )
        if config is None or config.adapter_type == AdapterType.NONE:
            return result

        mirror_log = self.logger.bind(
            circuit_id=str(circuit.circuit_id), dfid=dfid, adapter_type=config.adapter_type.value
        )
        if not config.sponsor_adapter_access:
            tier = self._tier_of(requester_id)
            if not tier_allows_adapter(tier, config.adapter_type):
                mirror_log.info("adapter_mirror_skipped", tier=tier.value)
                result.mirror_error = PermissionDenied(
                    f"Tier '{tier.value}' may not use adapter '{config.adapter_type.value}'",
                    details={"tier": tier.value},
                ).to_dict()
                return result

        adapter = self.adapters.get(config.adapter_type)
        item = self.storage.get_item_by_dfid(dfid)
        if adapter is None or item is None:
            reason = "no adapter registered" if adapter is None else "item missing"
            result.mirror_status = MirrorStatus.FAILED
            result.mirror_error = AdapterFailure(
                f"Cannot mirror {dfid} via {config.adapter_type.value}: {reason}"
            ).to_dict()
            mirror_log.warning("adapter_mirror_failed", reason=reason)
            return result

        timeout = timeout if timeout is not None else self.adapter_timeout
        future = self._submit_adapter_call(adapter.store_item, item)
        try:
            adapter_result = future.result(timeout=timeout)
        except FuturesTimeout:
            stuck = 0 if future.cancel() else self._mark_hung(future)
            result.mirror_status = MirrorStatus.FAILED
            result.mirror_error = AdapterFailure(
                f"Adapter {config.adapter_type.value} timed out after {timeout}s",
                details={"timeout": timeout},
            ).to_dict()
            mirror_log.warning("adapter_mirror_timeout", timeout=timeout, stuck_workers=stuck)
            return result
        except Exception as exc:
            result.mirror_status = MirrorStatus.FAILED
            result.mirror_error = AdapterFailure(
                f"Adapter {config.adapter_type.value} failed: {exc}",
                details={"exception": type(exc).__name__},
            ).to_dict()
            mirror_log.warning("adapter_mirror_failed", error=str(exc))
            return result

        metadata = adapter_result.metadata
        self.history.record_item_storage(
            dfid,
            config.adapter_type,
            metadata.item_location,
            triggered_by,
            {"circuit_id": str(circuit.circuit_id), "requester_id": requester_id},
        )
        evidence = _blockchain_evidence(metadata)
        if evidence is not None:
            cid, tx_hash = evidence
            self.history.add_cid_to_timeline(
                dfid, cid, tx_hash, int(metadata.updated_at.timestamp()), config.adapter_type.network
            )
        result.mirror_status = MirrorStatus.MIRRORED
        result.storage = metadata
        mirror_log.info("adapter_mirrored")
        return result

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull_item_from_circuit(
        self,
        dfid: str,
        circuit_id: UUID,
        requester_id: str,
        visibility: Optional[EventVisibility] = None,
    ) -> Tuple[Item, CircuitOperation]:
        """Read the current state of a circuit item and log the pull."""
        circuit = self._load(circuit_id)
        require_permission(circuit, requester_id, Permission.PULL)
        if not self.storage.is_item_in_circuit(circuit_id, dfid):
            raise NotFound(
                f"Item {dfid} is not in circuit {circuit_id}",
                details={"dfid": dfid, "circuit_id": str(circuit_id)},
            )
        item = self.storage.get_item_by_dfid(dfid)
        if item is None:
            raise NotFound(f"Item {dfid} not found", details={"dfid": dfid})

        operation = CircuitOperation(
            circuit_id=circuit_id,
            dfid=dfid,
            operation_type=OperationType.PULL,
            requester_id=requester_id,
        )
        self.storage.store_circuit_operation(operation)
        self.events.create_circuit_operation_event(
            dfid,
            circuit_id,
            OperationType.PULL,
            requester_id,
            visibility,
            metadata={"operation_id": str(operation.operation_id)},
        )
        self.logger.info(
            "item_pulled", circuit_id=str(circuit_id), dfid=dfid, requester_id=requester_id
        )
        return item, operation
