"""Test configuration and fixtures."""

import threading
import time
from typing import Generator, List, Optional

import pytest

from defarm_engine.adapters import AdapterRegistry, LocalAdapter, StorageAdapter
from defarm_engine.db.base import create_db_engine
from defarm_engine.domain import (
    AdapterResult,
    AdapterType,
    IpfsLocation,
    Item,
    StellarLocation,
    StorageMetadata,
    SyncStatus,
)
from defarm_engine.engines import (
    CircuitsEngine,
    DfidEngine,
    EventsEngine,
    ItemsEngine,
    StorageHistoryManager,
)
from defarm_engine.storage import InMemoryStorage, SqlStorage


# =============================================================================
# Fake adapters
# =============================================================================


class StellarRecordingAdapter(StorageAdapter):
    """Pretends to pin to IPFS and anchor the CID on Stellar testnet."""

    adapter_type = AdapterType.STELLAR_TESTNET_IPFS

    def __init__(self) -> None:
        self.stored: List[Item] = []
        self._lock = threading.Lock()

    def store_item(self, item: Item) -> AdapterResult:
        with self._lock:
            self.stored.append(item)
            n = len(self.stored)
        return AdapterResult(
            metadata=StorageMetadata(
                adapter_type=self.adapter_type,
                item_location=IpfsLocation(cid=f"bafy{n:04d}"),
                event_locations=[
                    StellarLocation(
                        transaction_id=f"tx{n:04d}", contract_address="CCONTRACT"
                    )
                ],
            )
        )

    def get_item(self, location_key: str) -> Optional[Item]:
        return None

    def health_check(self) -> bool:
        return True

    def sync_status(self) -> SyncStatus:
        return SyncStatus(adapter_type=self.adapter_type, is_synced=True)


class FailingAdapter(StorageAdapter):
    adapter_type = AdapterType.IPFS_IPFS

    def __init__(self) -> None:
        self.calls = 0

    def store_item(self, item: Item) -> AdapterResult:
        self.calls += 1
        raise ConnectionError("ipfs node unreachable")

    def get_item(self, location_key: str) -> Optional[Item]:
        return None

    def health_check(self) -> bool:
        return False

    def sync_status(self) -> SyncStatus:
        return SyncStatus(adapter_type=self.adapter_type, is_synced=False, error_count=self.calls)


class SlowAdapter(LocalAdapter):
    """Local adapter that blocks long enough to trip a short timeout."""

    def __init__(self, delay: float = 0.5) -> None:
        super().__init__()
        self.delay = delay

    def store_item(self, item: Item) -> AdapterResult:
        time.sleep(self.delay)
        return super().store_item(item)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage(lock_shards=16)


@pytest.fixture
def sql_storage() -> SqlStorage:
    """SQL storage over a fresh in-memory SQLite database."""
    return SqlStorage(create_db_engine("sqlite://"))


@pytest.fixture
def events_engine(storage) -> EventsEngine:
    return EventsEngine(storage)


@pytest.fixture
def items_engine(storage, events_engine) -> ItemsEngine:
    return ItemsEngine(storage, events_engine)


@pytest.fixture
def history(storage) -> StorageHistoryManager:
    return StorageHistoryManager(storage)


@pytest.fixture
def stellar_adapter() -> StellarRecordingAdapter:
    return StellarRecordingAdapter()


@pytest.fixture
def failing_adapter() -> FailingAdapter:
    return FailingAdapter()


@pytest.fixture
def adapters(stellar_adapter, failing_adapter) -> AdapterRegistry:
    registry = AdapterRegistry()
    registry.register(LocalAdapter())
    registry.register(stellar_adapter)
    registry.register(failing_adapter)
    return registry


@pytest.fixture
def circuits_engine(
    storage, events_engine, history, adapters
) -> Generator[CircuitsEngine, None, None]:
    engine = CircuitsEngine(
        storage,
        dfid_engine=DfidEngine.for_storage(storage, instance_id=""),
        events=events_engine,
        history=history,
        adapters=adapters,
        adapter_timeout=5.0,
    )
    yield engine
    engine.close()


@pytest.fixture
def slow_adapter() -> SlowAdapter:
    return SlowAdapter(delay=1.0)
