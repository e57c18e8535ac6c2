from decimal import Decimal

import pytest
from chalice.test import Client

from app import app
from chalicelib.menu_items import MenuItem
from chalicelib.orders import OrderLifecycleManager
from chalicelib.item_statuses import ItemStatusTracker
from chalicelib.access_gate import PaymentAccessGate
from chalicelib.users import User, Role, Session
from chalicelib.utils import app as utils_app
from chalicelib.utils.logger import logger
from test.utils.memory_store import InMemoryDataStore

MENU = [
    ('Latte', 'Drinks', '4.50'),
    ('Mocha', 'Drinks', '5.25'),
    ('Espresso', 'Drinks', '2.75'),
    ('Bagel', 'Bakery', '3.00'),
    ('Muffin', 'Bakery', '3.40'),
]

USERS = [
    ('alice', Role.CUSTOMER),
    ('bob', Role.CUSTOMER),
    ('emma', Role.EMPLOYEE),
    ('max', Role.MANAGER),
]

alice = Session('alice', Role.CUSTOMER)
bob = Session('bob', Role.CUSTOMER)
emma = Session('emma', Role.EMPLOYEE)
max_ = Session('max', Role.MANAGER)


def seed_store(store):
    for name, type_, price in MENU:
        MenuItem(store, name, type_=type_, price=Decimal(price), description=f"{name} of the day")._create_db_record()
    for login, role in USERS:
        User(store, login, role=role)._create_db_record()
    logger.debug(f'seed_store ::: menu={len(MENU)} users={len(USERS)}')
    return store


@pytest.fixture
def store() -> InMemoryDataStore:
    yield seed_store(InMemoryDataStore())


@pytest.fixture
def manager(store) -> OrderLifecycleManager:
    return OrderLifecycleManager(store)


@pytest.fixture
def tracker(store) -> ItemStatusTracker:
    return ItemStatusTracker(store)


@pytest.fixture
def gate(store) -> PaymentAccessGate:
    return PaymentAccessGate(store)


@pytest.fixture
def chalice_client(store, monkeypatch):
    monkeypatch.setattr(utils_app, '_DATA_STORE', store)
    with Client(app) as client:
        yield client
