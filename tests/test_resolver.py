from __future__ import annotations

import asyncio

import pytest

from hqtrack._constants import DEFAULT_VEHICLE_KEY, DEFAULT_VEHICLE_NAME
from hqtrack.exceptions import StorageError
from hqtrack.models.vehicle import Vehicle
from hqtrack.resolver import DeviceResolver, vehicle_key
from hqtrack.storage.memory import InMemoryStorage


class _SlowStorage(InMemoryStorage):
    """Yields to the event loop before every vehicle read and write."""

    def __init__(self) -> None:
        super().__init__()
        self.lookups = 0
        self.creates = 0

    async def get_vehicle_by_imei(self, imei: str) -> Vehicle | None:
        self.lookups += 1
        await asyncio.sleep(0)
        return await super().get_vehicle_by_imei(imei)

    async def create_vehicle(self, imei: str, *, name: str, type: str) -> Vehicle:
        self.creates += 1
        await asyncio.sleep(0)
        return await super().create_vehicle(imei, name=name, type=type)


class _BrokenStorage(InMemoryStorage):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def get_vehicle_by_imei(self, imei: str) -> Vehicle | None:
        await asyncio.sleep(0)
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("database unavailable")
        return await super().get_vehicle_by_imei(imei)


def test_vehicle_key_defaults_blank_identifiers() -> None:
    assert vehicle_key("") == DEFAULT_VEHICLE_KEY
    assert vehicle_key(None) == DEFAULT_VEHICLE_KEY
    assert vehicle_key("  ") == DEFAULT_VEHICLE_KEY
    assert vehicle_key(" 123 ") == "123"


@pytest.mark.asyncio
async def test_first_contact_creates_vehicle() -> None:
    storage = InMemoryStorage()
    resolver = DeviceResolver(storage)

    vehicle_id = await resolver.resolve("9170000001")

    vehicle = await storage.get_vehicle(vehicle_id)
    assert vehicle is not None
    assert vehicle.imei == "9170000001"
    assert vehicle.name == "Device 9170000001"
    assert vehicle.type == "Motorbike"


@pytest.mark.asyncio
async def test_blank_identifier_maps_to_default_vehicle() -> None:
    storage = InMemoryStorage()
    resolver = DeviceResolver(storage)

    first = await resolver.resolve("")
    second = await resolver.resolve(None)

    assert first == second
    vehicle = await storage.get_vehicle(first)
    assert vehicle is not None
    assert vehicle.name == DEFAULT_VEHICLE_NAME


@pytest.mark.asyncio
async def test_concurrent_first_contacts_create_one_vehicle() -> None:
    storage = _SlowStorage()
    resolver = DeviceResolver(storage)

    results = await asyncio.gather(*(resolver.resolve("9170000001") for _ in range(10)))

    assert len(set(results)) == 1
    assert await storage.count_vehicles() == 1
    assert storage.creates == 1


@pytest.mark.asyncio
async def test_cached_mapping_skips_storage() -> None:
    storage = _SlowStorage()
    resolver = DeviceResolver(storage)

    await resolver.resolve("9170000001")
    lookups = storage.lookups
    await resolver.resolve("9170000001")

    assert storage.lookups == lookups


@pytest.mark.asyncio
async def test_duplicate_from_another_resolver_reads_existing_vehicle() -> None:
    # Two resolvers over one storage behave like two service processes.
    storage = _SlowStorage()
    first = DeviceResolver(storage)
    second = DeviceResolver(storage)

    a, b = await asyncio.gather(first.resolve("9170000001"), second.resolve("9170000001"))

    assert a == b
    assert await storage.count_vehicles() == 1
    assert storage.creates == 2


@pytest.mark.asyncio
async def test_storage_failure_propagates_and_is_not_cached() -> None:
    storage = _BrokenStorage(failures=1)
    resolver = DeviceResolver(storage)

    with pytest.raises(StorageError):
        await resolver.resolve("9170000001")

    vehicle_id = await resolver.resolve("9170000001")
    assert await storage.get_vehicle(vehicle_id) is not None


@pytest.mark.asyncio
async def test_concurrent_waiters_see_the_same_failure() -> None:
    storage = _BrokenStorage(failures=1)
    resolver = DeviceResolver(storage)

    results = await asyncio.gather(
        resolver.resolve("9170000001"),
        resolver.resolve("9170000001"),
        return_exceptions=True,
    )

    assert all(isinstance(result, StorageError) for result in results)
    assert storage.failures == 0


class _BlockingStorage(InMemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def get_vehicle_by_imei(self, imei: str) -> Vehicle | None:
        await self.release.wait()
        return await super().get_vehicle_by_imei(imei)


@pytest.mark.asyncio
async def test_cancelled_lookup_fails_waiters_with_retryable_error() -> None:
    storage = _BlockingStorage()
    resolver = DeviceResolver(storage)

    owner = asyncio.create_task(resolver.resolve("9170000001"))
    await asyncio.sleep(0)
    waiter = asyncio.create_task(resolver.resolve("9170000001"))
    await asyncio.sleep(0)
    owner.cancel()

    with pytest.raises(asyncio.CancelledError):
        await owner
    with pytest.raises(StorageError) as excinfo:
        await waiter
    assert excinfo.value.retryable

    storage.release.set()
    assert await resolver.resolve("9170000001")
