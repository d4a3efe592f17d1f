"""Concurrent pushes against one shared storage backend."""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from defarm_engine.domain import (
    AliasConfig,
    Identifier,
    MemberRole,
    PushStatus,
    canonical_identity_key,
    identity_hash,
)
from defarm_engine.engines import CircuitsEngine, DfidEngine, EventsEngine

SISBOV = "BR123456789012"
WORKERS = 16


@pytest.fixture
def circuit(circuits_engine):
    circuit = circuits_engine.create_circuit(
        "Bovinos", "", "owner-1", "bovino", AliasConfig.bovine_traceability()
    )
    circuits_engine.add_member_to_circuit(
        circuit.circuit_id, "producer", MemberRole.MEMBER, "owner-1"
    )
    return circuit


def run_concurrently(fn, args):
    barrier = threading.Barrier(len(args))

    def worker(arg):
        barrier.wait()
        return fn(arg)

    with ThreadPoolExecutor(max_workers=len(args)) as pool:
        return list(pool.map(worker, args))


class TestConcurrentPush:
    def test_same_identity_mints_one_dfid(self, circuits_engine, circuit, storage):
        local_ids = [uuid.uuid4() for _ in range(WORKERS)]
        identifier = Identifier.canonical("bovino", "sisbov", SISBOV)

        def push(local_id):
            return circuits_engine.push_local_item_to_circuit(
                local_id, [identifier], {"worker": str(local_id)}, circuit.circuit_id, "producer"
            )

        results = run_concurrently(push, local_ids)

        dfids = {r.dfid for r in results}
        assert len(dfids) == 1
        dfid = dfids.pop()
        assert [r.push_status for r in results].count(PushStatus.CREATED) == 1
        assert all(storage.get_dfid_by_lid(lid) == dfid for lid in local_ids)

        key = canonical_identity_key([identifier])
        assert storage.get_dfid_by_canonical_identity(identity_hash(key)) == dfid
        assert [i.dfid for i in storage.list_items()] == [dfid]
        assert circuits_engine.get_circuit_items(circuit.circuit_id) == [dfid]

    def test_same_local_id_maps_once(self, circuits_engine, circuit, storage):
        local_id = uuid.uuid4()
        identifier = Identifier.canonical("bovino", "sisbov", SISBOV)

        results = run_concurrently(
            lambda _: circuits_engine.push_local_item_to_circuit(
                local_id, [identifier], {}, circuit.circuit_id, "producer"
            ),
            list(range(WORKERS)),
        )

        assert len({r.dfid for r in results}) == 1
        assert storage.get_dfid_by_lid(local_id) == results[0].dfid

    def test_distinct_identities_get_distinct_dfids(self, circuits_engine, circuit, storage):
        values = [f"BR{n:012d}" for n in range(1, WORKERS + 1)]

        results = run_concurrently(
            lambda value: circuits_engine.push_local_item_to_circuit(
                uuid.uuid4(),
                [Identifier.canonical("bovino", "sisbov", value)],
                {},
                circuit.circuit_id,
                "producer",
            ),
            values,
        )

        assert len({r.dfid for r in results}) == WORKERS
        assert len(storage.list_items()) == WORKERS

    def test_engines_sharing_a_backend_agree(self, storage, circuit, adapters):
        engines = [
            CircuitsEngine(
                storage,
                dfid_engine=DfidEngine.for_storage(storage, instance_id=""),
                events=EventsEngine(storage),
                adapters=adapters,
            )
            for _ in range(4)
        ]
        identifier = Identifier.canonical("bovino", "sisbov", SISBOV)
        try:
            results = run_concurrently(
                lambda n: engines[n % len(engines)].push_local_item_to_circuit(
                    uuid.uuid4(), [identifier], {}, circuit.circuit_id, "producer"
                ),
                list(range(WORKERS)),
            )
        finally:
            for engine in engines:
                engine.close()

        assert len({r.dfid for r in results}) == 1
        assert len(storage.list_items()) == 1
