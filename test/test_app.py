import json
from datetime import datetime, timedelta

from chalice.test import Client

from app import app
from chalicelib.utils import exceptions
from test.utils.fixtures import store, chalice_client


def call(client, method, path, login=None, body=None):
    headers = {'Content-Type': 'application/json'}
    if login:
        headers['Authorization'] = login
    payload = json.dumps(body).encode() if body is not None else b''
    return getattr(client.http, method)(path, headers=headers, body=payload)


def place(client, login='alice', items=('Latte', 'Bagel')):
    response = call(client, 'post', '/orders', login, {'items': list(items)})
    assert response.status_code == 201, response.json_body
    return response.json_body


def test_index():
    with Client(app) as client:
        response = client.http.get('/health-check', headers={'Authorization': 'health-check'})
        assert response.json_body == {'health': 'check'}


def test_menu_is_public(chalice_client):
    response = chalice_client.http.get('/menu')

    assert response.status_code == 200
    assert {item['name'] for item in response.json_body} == {'Latte', 'Mocha', 'Espresso', 'Bagel', 'Muffin'}
    latte = next(item for item in response.json_body if item['name'] == 'Latte')
    assert latte['type'] == 'Drinks'
    assert latte['price'] == 4.5


def test_menu_search(chalice_client):
    bakery = chalice_client.http.get('/menu?type=Bakery')
    assert bakery.status_code == 200
    assert sorted(item['name'] for item in bakery.json_body) == ['Bagel', 'Muffin']

    latte = chalice_client.http.get('/menu?name=latte&type=drinks')
    assert [item['name'] for item in latte.json_body] == ['Latte']
    assert chalice_client.http.get('/menu?name=Cortado').json_body == []


def test_place_order(chalice_client):
    order = place(chalice_client)

    assert order['login'] == 'alice'
    assert order['total'] == 7.5
    assert [item['status'] for item in order['items']] == ['not-started', 'not-started']


def test_place_order_needs_known_user(chalice_client):
    assert call(chalice_client, 'post', '/orders', None, {'items': ['Latte']}).status_code == 401

    response = call(chalice_client, 'post', '/orders', 'mallory', {'items': ['Latte']})
    assert response.status_code == 401
    assert response.json_body['kind'] == 'not_authorized'


def test_place_order_rejects_bad_body(chalice_client):
    response = chalice_client.http.post('/orders', headers={'Authorization': 'alice', 'Content-Type': 'application/json'},
                                        body=b'{"items": [')
    assert response.status_code == 400
    assert response.json_body['kind'] == 'invalid_input'

    response = call(chalice_client, 'post', '/orders', 'alice', {'items': ['Unicorn Frappe']})
    assert response.status_code == 400


def test_replace_item_of_paid_order_conflicts(chalice_client):
    order = place(chalice_client)
    order_path = f"/orders/{order['order_id']}"

    replaced = call(chalice_client, 'put', f'{order_path}/items', 'alice',
                    {'old_item_name': 'Latte', 'new_item_name': 'Mocha'})
    assert replaced.status_code == 200
    assert replaced.json_body['total'] == 8.25

    assert call(chalice_client, 'put', f'{order_path}/paid', 'emma', {'paid': True}).status_code == 200

    response = call(chalice_client, 'put', f'{order_path}/items', 'alice',
                    {'old_item_name': 'Mocha', 'new_item_name': 'Latte'})
    assert response.status_code == 409
    assert response.json_body['kind'] == 'conflict'
    assert response.json_body['exception'] == 'OrderAlreadyPaid'


def test_replace_item_needs_both_names(chalice_client):
    order = place(chalice_client)

    response = call(chalice_client, 'put', f"/orders/{order['order_id']}/items", 'alice', {'old_item_name': 'Latte'})

    assert response.status_code == 400


def test_advance_status_is_for_staff(chalice_client):
    order = place(chalice_client)
    path = f"/orders/{order['order_id']}/items/status"

    assert call(chalice_client, 'put', path, 'alice', {'item_name': 'Latte', 'status': 'started'}).status_code == 403
    assert call(chalice_client, 'put', path, 'emma',
                {'item_name': 'Latte', 'status': 'finished', 'force': True}).status_code == 403

    response = call(chalice_client, 'put', path, 'max', {'item_name': 'Latte', 'status': 'finished', 'force': True})
    assert response.status_code == 200
    assert response.json_body['status'] == 'finished'


def test_get_order_of_another_customer(chalice_client):
    order = place(chalice_client)

    assert call(chalice_client, 'get', f"/orders/{order['order_id']}", 'bob').status_code == 404
    assert call(chalice_client, 'get', f"/orders/{order['order_id']}", 'emma').status_code == 200


def test_list_orders(chalice_client):
    place(chalice_client)
    place(chalice_client, items=['Muffin'])

    response = call(chalice_client, 'get', '/orders', 'alice')

    assert response.status_code == 200
    assert len(response.json_body) == 2
    assert call(chalice_client, 'get', '/orders?login=alice', 'bob').status_code == 403


def test_history_endpoints(chalice_client):
    place(chalice_client)
    place(chalice_client, items=['Mocha', 'Muffin', 'Espresso', 'Latte'])

    recent = call(chalice_client, 'get', '/orders/history/recent', 'alice')
    assert recent.status_code == 200
    assert len(recent.json_body) == 5

    assert len(call(chalice_client, 'get', '/orders/history/recent?limit=2', 'alice').json_body) == 2
    assert call(chalice_client, 'get', '/orders/history/window', 'alice').status_code == 403

    now = datetime.now()
    start = (now - timedelta(days=1)).isoformat(timespec='seconds')
    end = (now + timedelta(days=1)).isoformat(timespec='seconds')
    window = call(chalice_client, 'get', f'/orders/history/window?from={start}&to={end}', 'emma')
    assert window.status_code == 200
    assert len(window.json_body) == 6

    too_long = call(chalice_client, 'get',
                    '/orders/history/window?from=2030-01-01T00:00:00&to=2030-06-01T00:00:00', 'emma')
    assert too_long.status_code == 400


def test_partial_failure_is_reported(chalice_client, store):
    store.fail_commits = {2}

    response = call(chalice_client, 'post', '/orders', 'alice', {'items': ['Espresso'] * 150})

    assert response.status_code == 500
    assert response.json_body['kind'] == 'partial_failure'
    assert response.json_body['written'] == 99
    assert response.json_body['expected'] == 150


def test_store_outage_is_service_unavailable(chalice_client, store, monkeypatch):
    def unavailable(*args, **kwargs):
        raise exceptions.StoreUnavailable('connection refused')
    monkeypatch.setattr(store, 'select', unavailable)

    response = call(chalice_client, 'get', '/orders/history/recent', 'alice')

    assert response.status_code == 503
    assert response.json_body['exception'] == 'StoreUnavailable'
