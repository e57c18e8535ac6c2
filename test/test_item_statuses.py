from datetime import datetime, timezone

import pytest

from chalicelib import item_statuses, orders
from chalicelib.constants.constants import ORDERS_TABLE
from chalicelib.item_states import ItemState, can_transition
from chalicelib.utils import exceptions
from chalicelib.utils.data import parse_iso
from test.utils.fixtures import store, manager, tracker, alice, bob, emma, max_


@pytest.fixture
def order_id(manager):
    return manager.place_order(alice, ['Latte', 'Bagel']).value['order_id']


@pytest.mark.parametrize('src, dst, force, allowed', [
    (ItemState.NOT_STARTED, ItemState.STARTED, False, True),
    (ItemState.STARTED, ItemState.FINISHED, False, True),
    (ItemState.NOT_STARTED, ItemState.FINISHED, False, False),
    (ItemState.STARTED, ItemState.NOT_STARTED, False, False),
    (ItemState.FINISHED, ItemState.STARTED, False, False),
    (ItemState.NOT_STARTED, ItemState.FINISHED, True, True),
    (ItemState.STARTED, ItemState.FINISHED, True, True),
    (ItemState.FINISHED, ItemState.FINISHED, True, False),
    (ItemState.NOT_STARTED, ItemState.STARTED, True, False),
])
def test_transitions(src, dst, force, allowed):
    assert can_transition(src, dst, force) is allowed


@pytest.mark.parametrize('value, state', [
    ('not-started', ItemState.NOT_STARTED),
    ('Not Started', ItemState.NOT_STARTED),
    ('FINISHED', ItemState.FINISHED),
    (ItemState.STARTED, ItemState.STARTED),
])
def test_parse_state(value, state):
    assert ItemState.parse(value) is state


def test_item_goes_through_its_lifecycle(tracker, store, order_id, monkeypatch):
    monkeypatch.setattr(item_statuses, 'now_iso', lambda: '2030-01-01T10:00:00')

    started = tracker.advance_status(emma, order_id, 'Latte', 'started')
    assert started.ok, started
    assert started.value['status'] == 'started'
    assert started.value['last_updated'] == '2030-01-01T10:00:00'

    finished = tracker.advance_status(emma, order_id, 'Latte', 'finished', comment='extra hot')
    assert finished.value['status'] == 'finished'
    assert finished.value['comment'] == 'extra hot'

    statuses = {item.item_name: item.status for item in tracker.items_of_order(order_id)}
    assert statuses == {'Latte': ItemState.FINISHED, 'Bagel': ItemState.NOT_STARTED}
    assert store.get(ORDERS_TABLE, {'order_id': order_id})['version'] == 2


def test_finished_item_cannot_move_back(tracker, order_id):
    tracker.advance_status(emma, order_id, 'Latte', 'started')
    tracker.advance_status(emma, order_id, 'Latte', 'finished')

    result = tracker.advance_status(emma, order_id, 'Latte', 'started')

    assert isinstance(result.error, exceptions.InvalidStatusTransition)
    assert result.kind == 'conflict'


def test_skipping_started_needs_force(tracker, order_id):
    result = tracker.advance_status(emma, order_id, 'Bagel', 'finished')
    assert isinstance(result.error, exceptions.InvalidStatusTransition)

    forced = tracker.advance_status(max_, order_id, 'Bagel', 'finished', force=True)
    assert forced.ok, forced
    assert forced.value['status'] == 'finished'


def test_only_manager_can_force(tracker, order_id):
    result = tracker.advance_status(emma, order_id, 'Bagel', 'finished', force=True)

    assert result.kind == 'access_denied'
    assert tracker.items_of_order(order_id)[1].status is ItemState.NOT_STARTED


def test_force_does_not_reopen_finished_items(tracker, order_id):
    assert tracker.advance_status(max_, order_id, 'Latte', 'finished', force=True).ok

    assert tracker.advance_status(max_, order_id, 'Latte', 'finished', force=True).kind == 'conflict'
    assert tracker.advance_status(max_, order_id, 'Latte', 'started', force=True).kind == 'conflict'


def test_customer_cannot_advance(tracker, order_id):
    result = tracker.advance_status(alice, order_id, 'Latte', 'started')

    assert result.kind == 'access_denied'
    assert isinstance(result.error, exceptions.AccessDenied)


@pytest.mark.parametrize('item_name, status, kind', [
    ('Latte', 'cooking', 'invalid_input'),
    ('Espresso', 'started', 'not_found'),
])
def test_advance_rejects_bad_input(tracker, order_id, item_name, status, kind):
    assert tracker.advance_status(emma, order_id, item_name, status).kind == kind


def test_duplicates_advance_one_line_at_a_time(manager, tracker):
    order_id = manager.place_order(alice, ['Latte', 'Latte']).value['order_id']

    first = tracker.advance_status(emma, order_id, 'Latte', 'started')
    second = tracker.advance_status(emma, order_id, 'Latte', 'started')
    third = tracker.advance_status(emma, order_id, 'Latte', 'started')

    assert (first.value['line_no'], second.value['line_no']) == (1, 2)
    assert third.kind == 'conflict'


def test_advance_of_line_changed_concurrently(tracker, store, order_id):
    def start_latte(current_store):
        current_store.before_commit = None
        current_store.update('item_statuses', {'status': 'started'}, {'order_id': order_id, 'line_no': 1})
    store.before_commit = start_latte

    result = tracker.advance_status(emma, order_id, 'Latte', 'started')

    assert isinstance(result.error, exceptions.ConcurrentModification)


def test_recent_history_is_capped_and_newest_first(manager, tracker):
    for items in (['Latte', 'Bagel'], ['Mocha', 'Muffin'], ['Espresso', 'Latte']):
        manager.place_order(alice, items)
    manager.place_order(bob, ['Bagel'])

    result = tracker.recent_history(alice)

    assert result.ok, result
    assert len(result.value) == 5
    assert [row['item_name'] for row in result.value] == ['Espresso', 'Latte', 'Mocha', 'Muffin', 'Latte']
    assert {row['login'] for row in result.value} == {'alice'}
    assert result.value[0]['order_id'] == 3


def test_recent_history_shorter_than_limit(manager, tracker):
    manager.place_order(alice, ['Latte'])

    assert len(tracker.recent_history(alice, limit=10).value) == 1
    assert tracker.recent_history(bob).value == []


def test_recent_history_of_someone_else(manager, tracker):
    manager.place_order(alice, ['Latte', 'Bagel'])

    assert tracker.recent_history(bob, 'alice').kind == 'access_denied'
    assert len(tracker.recent_history(emma, 'alice').value) == 2


@pytest.mark.parametrize('limit', [0, -3, 'many'])
def test_recent_history_limit_must_be_positive(tracker, limit):
    assert tracker.recent_history(alice, limit=limit).kind == 'invalid_input'


def test_window_history(manager, tracker, monkeypatch):
    monkeypatch.setattr(orders, 'now_iso', lambda: '2030-01-01T09:00:00')
    manager.place_order(alice, ['Latte'])
    monkeypatch.setattr(orders, 'now_iso', lambda: '2030-01-02T12:00:00')
    manager.place_order(bob, ['Bagel', 'Muffin'])

    result = tracker.window_history(emma, '2030-01-02T00:00:00', '2030-01-03T00:00:00')

    assert result.ok, result
    assert [row['item_name'] for row in result.value] == ['Bagel', 'Muffin']
    assert tracker.window_history(emma, '2030-01-01T09:00:00', '2030-01-02T12:00:00').value[0]['item_name'] == 'Latte'
    assert len(tracker.window_history(emma, '2030-01-01T09:00:00', '2030-01-02T12:00:00').value) == 1


def test_window_history_follows_status_updates(manager, tracker, monkeypatch):
    monkeypatch.setattr(orders, 'now_iso', lambda: '2030-01-01T09:00:00')
    order_id = manager.place_order(alice, ['Latte', 'Bagel']).value['order_id']
    monkeypatch.setattr(item_statuses, 'now_iso', lambda: '2030-01-05T08:30:00')
    tracker.advance_status(emma, order_id, 'Bagel', 'started')

    result = tracker.window_history(max_, '2030-01-05T08:00:00', '2030-01-05T09:00:00')

    assert [(row['item_name'], row['status']) for row in result.value] == [('Bagel', 'started')]


@pytest.mark.parametrize('start, end', [
    ('2030-01-02T00:00:00', '2030-01-01T00:00:00'),
    ('2030-01-01T00:00:00', '2030-01-01T00:00:00'),
    ('yesterday', '2030-01-01T00:00:00'),
    ('2030-01-01T00:00:00', '2030-03-01T00:00:00'),
])
def test_window_history_rejects_bad_window(tracker, start, end):
    assert tracker.window_history(emma, start, end).kind == 'invalid_input'


def test_window_history_is_for_staff(tracker):
    assert tracker.window_history(alice, '2030-01-01T00:00:00', '2030-01-02T00:00:00').kind == 'access_denied'


def test_recent_history_reads_no_more_orders_than_limit(manager, tracker, store, monkeypatch):
    for _ in range(4):
        manager.place_order(alice, ['Latte'])
    selects = []
    select = store.select

    def recording_select(table, filter_=None, **kwargs):
        selects.append((table, kwargs.get('limit')))
        return select(table, filter_, **kwargs)
    monkeypatch.setattr(store, 'select', recording_select)

    assert len(tracker.recent_history(alice, limit=2).value) == 2
    assert selects[0] == (ORDERS_TABLE, 2)


@pytest.mark.parametrize('start, end', [
    ('2030-01-01T08:30:00+00:00', '2030-01-01T09:30:00+00:00'),
    ('2030-01-01T03:30:00-05:00', '2030-01-01T04:30:00-05:00'),
    ('2030-01-01T08:30:00Z', '2030-01-01T09:30:00Z'),
])
def test_window_history_with_offsets(manager, tracker, monkeypatch, start, end):
    local_nine_utc = datetime(2030, 1, 1, 9, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    monkeypatch.setattr(orders, 'now_iso', lambda: local_nine_utc.isoformat(timespec='seconds'))
    manager.place_order(alice, ['Latte'])

    assert [row['item_name'] for row in tracker.window_history(emma, start, end).value] == ['Latte']
    assert tracker.window_history(emma, '2030-01-01T09:30:00+00:00', '2030-01-01T10:30:00+00:00').value == []


@pytest.mark.parametrize('value, expected', [
    ('2030-01-01T09:00:00', '2030-01-01T09:00:00'),
    ('2030-01-01T09:00:00.750', '2030-01-01T09:00:00'),
    ('2030-01-01', '2030-01-01T00:00:00'),
    (datetime(2030, 1, 1, 9, 15), '2030-01-01T09:15:00'),
])
def test_parse_iso_of_local_timestamps(value, expected):
    assert parse_iso(value, 'from') == expected


def test_parse_iso_converts_offsets_to_local_time():
    local = datetime(2030, 6, 1, 12, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

    assert parse_iso('2030-06-01T12:00:00Z', 'from') == local.isoformat(timespec='seconds')
    assert parse_iso('2030-06-01T14:00:00+02:00', 'from') == local.isoformat(timespec='seconds')


@pytest.mark.parametrize('value', ['yesterday', '', None, 20300101])
def test_parse_iso_rejects_garbage(value):
    with pytest.raises(exceptions.InvalidInput):
        parse_iso(value, 'from')
