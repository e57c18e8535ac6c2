from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List

from chalice import Response
from chalice.app import Request

from chalicelib import access_gate
from chalicelib.access_gate import Capability
from chalicelib.base_class_entity import EntityBase
from chalicelib.constants.constants import ITEM_STATUSES_TABLE, ORDERS_TABLE, RECENT_HISTORY_LIMIT, \
    WINDOW_HISTORY_HOURS, WINDOW_HISTORY_MAX_DAYS
from chalicelib.data_store import DataStore, WriteTransaction
from chalicelib.item_states import ItemState, can_transition
from chalicelib.menu_items import MenuItem
from chalicelib.users import Session
from chalicelib.utils import exceptions, app as utils_app, auth as utils_auth, data as utils_data
from chalicelib.utils.data import now_iso, parse_iso, to_int, to_price
from chalicelib.utils.logger import logger
from chalicelib.utils.results import returns_result


class ItemStatus(EntityBase):
    table = ITEM_STATUSES_TABLE

    required_immutable_fields_validation = {
        'order_id': lambda x: isinstance(x, int) and x > 0,
        'line_no': lambda x: isinstance(x, int) and x > 0
    }

    required_mutable_fields_validation = {
        'item_name': lambda x: isinstance(x, str) and len(x) > 0,
        'price': lambda x: isinstance(x, Decimal) and x >= 0,
        'last_updated': lambda x: isinstance(x, str),
        'status': lambda x: x in [state.value for state in ItemState]
    }

    optional_fields_validation = {
        'comment_': lambda x: isinstance(x, str)
    }

    def __init__(self, store: DataStore, order_id, line_no, **kwargs):
        EntityBase.__init__(self, store)

        self.order_id: int = int(order_id)
        self.line_no: int = int(line_no)
        self.item_name: str = kwargs.get('item_name')
        self.price: Decimal = to_price(kwargs['price']) if kwargs.get('price') is not None else None
        self.last_updated: str = kwargs.get('last_updated') or now_iso()
        self.status: ItemState = ItemState.parse(kwargs.get('status', ItemState.NOT_STARTED))
        self.comment_: str = kwargs.get('comment_')

    @classmethod
    def init_new(cls, store: DataStore, order_id: int, line_no: int, menu_item: MenuItem, timestamp: str):
        return cls(store, order_id, line_no, item_name=menu_item.name, price=menu_item.price,
                   last_updated=timestamp, status=ItemState.NOT_STARTED)

    def _key(self) -> Dict:
        return {'order_id': self.order_id, 'line_no': self.line_no}

    def _to_dict(self) -> Dict:
        return {
            'order_id': self.order_id,
            'line_no': self.line_no,
            'item_name': self.item_name,
            'price': self.price,
            'last_updated': self.last_updated,
            'status': self.status.value,
            'comment_': self.comment_
        }

    def add_replacement(self, transaction: WriteTransaction, menu_item: MenuItem, timestamp: str):
        """
        Swap the line to another menu item, only while nobody started preparing it
        """
        transaction.update(
            self.table,
            {'item_name': menu_item.name, 'price': menu_item.price, 'last_updated': timestamp},
            self._key(),
            expected={'status': ItemState.NOT_STARTED.value, 'item_name': self.item_name}
        )


class ItemStatusTracker:

    def __init__(self, store: DataStore):
        self.store = store

    def items_of_order(self, order_id) -> List[ItemStatus]:
        records = self.store.select(ITEM_STATUSES_TABLE, {'order_id': int(order_id)})
        return sorted([ItemStatus(self.store, **record) for record in records], key=lambda item: item.line_no)

    def find_items(self, order_id, item_name: str, line_no=None) -> List[ItemStatus]:
        items = [item for item in self.items_of_order(order_id) if item.item_name == item_name]
        if line_no is not None:
            items = [item for item in items if item.line_no == to_int(line_no, 'line_no')]
        if not items:
            raise exceptions.ItemStatusNotFound(f'Item {item_name} not found in order {order_id}')
        return items

    @staticmethod
    def new_items(store: DataStore, order_id: int, menu_items: List[MenuItem], timestamp: str) -> List[ItemStatus]:
        return [ItemStatus.init_new(store, order_id, line_no, menu_item, timestamp)
                for line_no, menu_item in enumerate(menu_items, start=1)]

    @returns_result
    @utils_app.log_start_finish
    def advance_status(self, session: Session, order_id, item_name: str, new_status, force: bool = False,
                       comment: str = None, line_no=None) -> Dict:
        access_gate.require(session, Capability.ADVANCE_STATUS)
        if force:
            access_gate.require(session, Capability.FORCE_FINISH)
        order_id = to_int(order_id, 'order_id')
        new_state = ItemState.parse(new_status)

        candidates = self.find_items(order_id, item_name, line_no)
        movable = [item for item in candidates if can_transition(item.status, new_state, force)]
        if not movable:
            current = ', '.join(sorted({item.status.value for item in candidates}))
            raise exceptions.InvalidStatusTransition(
                f'Item {item_name} of order {order_id} cannot move from {current} to {new_state.value}')
        item = movable[0]

        fields = {'status': new_state.value, 'last_updated': now_iso()}
        if comment:
            fields['comment_'] = comment
        transaction = self.store.transaction()
        transaction.update(ITEM_STATUSES_TABLE, fields, item._key(), expected={'status': item.status.value})
        transaction.update(ORDERS_TABLE, {}, {'order_id': order_id}, increments={'version': 1})
        try:
            transaction.commit()
        except exceptions.ConditionFailed:
            raise exceptions.ConcurrentModification(
                f'Item {item_name} of order {order_id} was modified concurrently, please retry')

        logger.info(f'advance_status ::: order {order_id} line {item.line_no} '
                    f'{item.status.value} -> {new_state.value} by {session.login} {force=}')
        item.__init__(self.store, **{**item._to_dict(), **fields})
        return item.to_ui()

    @returns_result
    @utils_app.log_start_finish
    def recent_history(self, session: Session, login: str = None, limit=RECENT_HISTORY_LIMIT) -> List[Dict]:
        """
        Latest line items of a login, newest order first.
        Order id stands in for recency as items carry no sequence of their own.
        """
        login = login or session.login
        if login == session.login:
            access_gate.require(session, Capability.VIEW_OWN_HISTORY)
        else:
            access_gate.require(session, Capability.VIEW_ANY_HISTORY)
        limit = to_int(limit, 'limit')
        if limit < 1:
            raise exceptions.InvalidInput(f'limit={limit} must be positive')

        history = []
        # every order holds at least one line, so limit orders are enough
        for order in self.store.select(ORDERS_TABLE, {'login': login}, descending=True, limit=limit):
            for item in self.items_of_order(order['order_id']):
                history.append({
                    **item.to_ui(),
                    'login': order['login'],
                    'paid': order['paid'],
                    'total': order['total'],
                    'date_created': order['date_created']
                })
                if len(history) >= limit:
                    return history
        return history

    @returns_result
    @utils_app.log_start_finish
    def window_history(self, session: Session, start, end) -> List[Dict]:
        access_gate.require(session, Capability.VIEW_WINDOW_HISTORY)
        start, end = parse_iso(start, 'from'), parse_iso(end, 'to')
        if start >= end:
            raise exceptions.InvalidInput(f'Window start {start} must be before end {end}')
        if datetime.fromisoformat(end) - datetime.fromisoformat(start) > timedelta(days=WINDOW_HISTORY_MAX_DAYS):
            raise exceptions.InvalidInput(f'Window {start} - {end} is longer than {WINDOW_HISTORY_MAX_DAYS} days')

        records = self.store.select(ITEM_STATUSES_TABLE, time_range=('last_updated', start, end))
        items = [ItemStatus(self.store, **record) for record in records]
        items.sort(key=lambda item: (item.last_updated, item.order_id, item.line_no))
        return [item.to_ui() for item in items]


@utils_auth.authenticate
@utils_app.request_exception_handler
def endpoint_advance_status(request: Request, order_id) -> Response:
    body = utils_data.parse_raw_body(request)
    if not body.get('item_name') or not body.get('status'):
        raise exceptions.MandatoryFieldsAreNotFilled('item_name and status are required')
    result = ItemStatusTracker(utils_app.get_data_store()).advance_status(
        request.session, order_id, body['item_name'], body['status'],
        force=utils_data.to_bool(body.get('force', False), 'force'),
        comment=body.get('comment'), line_no=body.get('line_no'))
    return utils_app.result_response(result)


@utils_auth.authenticate
@utils_app.request_exception_handler
def endpoint_recent_history(request: Request) -> Response:
    qp = request.query_params or {}
    result = ItemStatusTracker(utils_app.get_data_store()).recent_history(
        request.session, qp.get('login'), qp.get('limit', RECENT_HISTORY_LIMIT))
    return utils_app.result_response(result)


@utils_auth.authenticate
@utils_app.request_exception_handler
def endpoint_window_history(request: Request) -> Response:
    qp = request.query_params or {}
    end = qp.get('to') or datetime.now()
    start = qp.get('from') or datetime.now() - timedelta(hours=WINDOW_HISTORY_HOURS)
    result = ItemStatusTracker(utils_app.get_data_store()).window_history(request.session, start, end)
    return utils_app.result_response(result)
