"""
Shared fixtures.

Provides:
- settings: Settings with the production pricing defaults
- restaurant / menu: a small catalog (Pasta Place, owner 100)
- store: FakeOrderStore seeded with the catalog
- publisher: RecordingPublisher
- notifier: OrderEventNotifier over the two, closed after the test
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from food_ordering.core.config import EnvironmentMode, Settings
from food_ordering.services.assembler import OrderAssembler
from food_ordering.services.events.notifier import OrderEventNotifier
from food_ordering.services.numbering import OrderNumberAllocator
from tests.fakes import (
    NOW,
    FakeOrderStore,
    RecordingPublisher,
    make_menu_item,
    make_restaurant,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        env_mode=EnvironmentMode.DEVELOPMENT,
        database_url="sqlite+aiosqlite:///:memory:",
        tax_rate=Decimal("0.08"),
        schedule_min_lead_minutes=15,
        order_number_prefix="ORD",
        order_number_max_attempts=3,
        strict_status_transitions=True,
    )


@pytest.fixture
def restaurant():
    return make_restaurant()


@pytest.fixture
def menu():
    return [
        make_menu_item(1, name="Lasagna", price="25.00"),
        make_menu_item(2, name="Garlic Bread", price="4.00"),
        make_menu_item(3, name="Tiramisu", price="8.00"),
        make_menu_item(4, name="Seasonal Risotto", price="18.00", is_available=False),
        make_menu_item(5, restaurant_id=2, name="Burger", price="12.00"),
    ]


@pytest.fixture
def store(restaurant, menu) -> FakeOrderStore:
    other = make_restaurant(id=2, owner_id=200, name="Burger Barn")
    closed = make_restaurant(id=3, owner_id=300, name="Closed Bistro", is_active=False)
    return FakeOrderStore(restaurants=[restaurant, other, closed], menu_items=menu)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest_asyncio.fixture
async def notifier(publisher, store):
    notifier = OrderEventNotifier(publisher, store, clock=lambda: NOW + timedelta(minutes=1))
    yield notifier
    await notifier.close()


@pytest.fixture
def allocator() -> OrderNumberAllocator:
    return OrderNumberAllocator(prefix="ORD", clock=lambda: NOW)


@pytest.fixture
def assembler(store, notifier, settings, allocator) -> OrderAssembler:
    return OrderAssembler(
        store,
        notifier,
        settings=settings,
        clock=lambda: NOW,
        allocator=allocator,
    )
