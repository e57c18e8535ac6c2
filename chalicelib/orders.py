from decimal import Decimal
from typing import Dict, List

from chalice import Response
from chalice.app import Request

from chalicelib import access_gate
from chalicelib.access_gate import Capability
from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import status_codes
from chalicelib.constants.constants import ORDERS_TABLE, TRANSACTION_MAX_ITEMS, PRICE_QUANTUM
from chalicelib.data_store import DataStore
from chalicelib.item_statuses import ItemStatus, ItemStatusTracker
from chalicelib.menu_items import MenuCatalog, MenuItem
from chalicelib.users import Session
from chalicelib.utils import exceptions, app as utils_app, auth as utils_auth, data as utils_data
from chalicelib.utils.data import now_iso, to_int, to_bool, to_price
from chalicelib.utils.logger import logger
from chalicelib.utils.results import returns_result


class Order(EntityBase):
    table = ORDERS_TABLE

    required_immutable_fields_validation = {
        'order_id': lambda x: isinstance(x, int) and x > 0,
        'login': lambda x: isinstance(x, str) and len(x) > 0,
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'paid': lambda x: isinstance(x, bool),
        'total': lambda x: isinstance(x, Decimal) and x >= 0,
        'version': lambda x: isinstance(x, int) and x >= 0
    }

    def __init__(self, store: DataStore, order_id, login, **kwargs):
        EntityBase.__init__(self, store)

        self.order_id: int = int(order_id)
        self.login: str = login
        self.paid: bool = kwargs.get('paid', False)
        self.total: Decimal = to_price(kwargs.get('total', 0))
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.version: int = int(kwargs.get('version', 0))
        self.items: List[ItemStatus] = []

    @classmethod
    def init_by_id(cls, store: DataStore, order_id) -> 'Order':
        try:
            record = store.get(ORDERS_TABLE, {'order_id': order_id})
        except exceptions.RecordNotFound:
            raise exceptions.OrderNotFound(f'Order {order_id} not found')
        return cls(store, **record)

    def _key(self) -> Dict:
        return {'order_id': self.order_id}

    def _to_dict(self) -> Dict:
        return {
            'order_id': self.order_id,
            'login': self.login,
            'paid': self.paid,
            'total': self.total,
            'date_created': self.date_created,
            'version': self.version
        }

    def _to_ui(self) -> Dict:
        item = EntityBase._to_ui(self)
        item['items'] = [line.to_ui() for line in self.items]
        return item


def sum_prices(prices) -> Decimal:
    return sum(prices, Decimal('0')).quantize(Decimal(PRICE_QUANTUM))


class OrderLifecycleManager:
    """
    Places orders and swaps their line items while nothing is paid or started.

    Every public operation takes the caller's Session and returns a Result.
    """

    def __init__(self, store: DataStore):
        self.store = store
        self.catalog = MenuCatalog(store)
        self.tracker = ItemStatusTracker(store)

    @returns_result
    @utils_app.log_start_finish
    def place_order(self, session: Session, item_names: List[str], paid=False) -> Dict:
        access_gate.require(session, Capability.PLACE_ORDER)
        if not isinstance(item_names, list) or not item_names:
            raise exceptions.InvalidInput('items must be a non-empty list of menu item names')
        paid = to_bool(paid, 'paid')

        menu_items: List[MenuItem] = []
        rejected_items: List[Dict] = []
        for name in item_names:
            try:
                menu_items.append(self.catalog.lookup(name))
            except exceptions.MenuItemNotFound as error:
                rejected_items.append({'item_name': name, 'reason': str(error)})

        if not menu_items:
            raise exceptions.InvalidInput(
                f'None of the selected items are on the menu: {[item["item_name"] for item in rejected_items]}')

        order_id = self.store.next_id(ORDERS_TABLE)
        timestamp = now_iso()
        order = Order(self.store, order_id, session.login, paid=paid, date_created=timestamp, version=0,
                      total=sum_prices(item.price for item in menu_items))
        order.items = self.tracker.new_items(self.store, order_id, menu_items, timestamp)

        self._write_order(order)
        logger.info(f'place_order ::: order {order_id} for {session.login} total={order.total} '
                    f'items={len(order.items)} rejected={len(rejected_items)}')
        return {**order.to_ui(), 'rejected_items': rejected_items}

    def _write_order(self, order: Order):
        """
        Header and lines go in one transaction; orders longer than a transaction
        are written in chunks, a failure after the first chunk is a partial failure.
        """
        entities: List[EntityBase] = [order, *order.items]
        written = 0
        for start in range(0, len(entities), TRANSACTION_MAX_ITEMS):
            transaction = self.store.transaction()
            chunk = entities[start:start + TRANSACTION_MAX_ITEMS]
            for entity in chunk:
                entity._add_to_transaction(transaction)
            try:
                transaction.commit()
            except (exceptions.ConditionFailed, exceptions.StoreUnavailable) as error:
                if written == 0:
                    if isinstance(error, exceptions.ConditionFailed):
                        raise exceptions.DuplicateRecord(f'Order {order.order_id} already exists') from error
                    raise
                raise exceptions.PartialFailure(
                    f'Order {order.order_id} saved with {written - 1} of {len(order.items)} items: {error}',
                    order_id=order.order_id, written=written - 1, expected=len(order.items)) from error
            written += len(chunk)

    def _get_own_order(self, session: Session, order_id: int) -> Order:
        try:
            order = Order.init_by_id(self.store, order_id)
        except exceptions.OrderNotFound:
            order = None
        if order is None or order.login != session.login:
            raise exceptions.OrderNotFound(f'Order {order_id} not found or does not belong to you')
        return order

    @returns_result
    @utils_app.log_start_finish
    def replace_item(self, session: Session, order_id, old_item_name: str, new_item_name: str,
                     line_no=None) -> Dict:
        access_gate.require(session, Capability.MODIFY_OWN_ORDER)
        order_id = to_int(order_id, 'order_id')

        order = self._get_own_order(session, order_id)
        access_gate.check_modifiable(order)

        candidates = self.tracker.find_items(order_id, old_item_name, line_no)
        replaceable = [item for item in candidates if access_gate.can_replace(item)]
        if not replaceable:
            access_gate.check_replaceable(candidates[0])
        line = replaceable[0]

        new_menu_item = self.catalog.lookup(new_item_name)

        items = self.tracker.items_of_order(order_id)
        new_total = sum_prices(new_menu_item.price if item.line_no == line.line_no else item.price
                               for item in items)
        timestamp = now_iso()

        transaction = self.store.transaction()
        line.add_replacement(transaction, new_menu_item, timestamp)
        transaction.update(
            ORDERS_TABLE, {'total': new_total}, order._key(),
            expected={'paid': False, 'version': order.version}, increments={'version': 1})
        try:
            transaction.commit()
        except exceptions.ConditionFailed:
            self._explain_conflict(order_id, line)

        logger.info(f'replace_item ::: order {order_id} line {line.line_no} '
                    f'{old_item_name} -> {new_menu_item.name}, total {order.total} -> {new_total}')
        order = Order.init_by_id(self.store, order_id)
        order.items = self.tracker.items_of_order(order_id)
        return order.to_ui()

    def _explain_conflict(self, order_id: int, line: ItemStatus):
        """
        Concurrent writer won the race, report what it changed
        """
        access_gate.check_modifiable(Order.init_by_id(self.store, order_id))
        for item in self.tracker.items_of_order(order_id):
            if item.line_no == line.line_no:
                access_gate.check_replaceable(item)
        raise exceptions.ConcurrentModification(f'Order {order_id} was modified concurrently, please retry')

    @returns_result
    @utils_app.log_start_finish
    def get_order(self, session: Session, order_id) -> Dict:
        order_id = to_int(order_id, 'order_id')
        if access_gate.has_capability(session, Capability.VIEW_ANY_ORDER):
            order = Order.init_by_id(self.store, order_id)
        else:
            order = self._get_own_order(session, order_id)
        order.items = self.tracker.items_of_order(order_id)
        return order.to_ui()

    @returns_result
    @utils_app.log_start_finish
    def list_orders(self, session: Session, login: str = None) -> List[Dict]:
        login = login or session.login
        if login != session.login:
            access_gate.require(session, Capability.VIEW_ANY_HISTORY)
        records = self.store.select(ORDERS_TABLE, {'login': login}, descending=True)
        return [Order(self.store, **record).to_ui() for record in records]


@utils_auth.authenticate
@utils_app.request_exception_handler
def endpoint_place_order(request: Request) -> Response:
    body = utils_data.parse_raw_body(request)
    result = OrderLifecycleManager(utils_app.get_data_store()).place_order(
        request.session, body.get('items'), body.get('paid', False))
    return utils_app.result_response(result, status_codes.http201)


@utils_auth.authenticate
@utils_app.request_exception_handler
def endpoint_get_order(request: Request, order_id) -> Response:
    result = OrderLifecycleManager(utils_app.get_data_store()).get_order(request.session, order_id)
    return utils_app.result_response(result)


@utils_auth.authenticate
@utils_app.request_exception_handler
def endpoint_list_orders(request: Request) -> Response:
    qp = request.query_params or {}
    result = OrderLifecycleManager(utils_app.get_data_store()).list_orders(request.session, qp.get('login'))
    return utils_app.result_response(result)


@utils_auth.authenticate
@utils_app.request_exception_handler
def endpoint_replace_item(request: Request, order_id) -> Response:
    body = utils_data.parse_raw_body(request)
    if not body.get('old_item_name') or not body.get('new_item_name'):
        raise exceptions.MandatoryFieldsAreNotFilled('old_item_name and new_item_name are required')
    result = OrderLifecycleManager(utils_app.get_data_store()).replace_item(
        request.session, order_id, body['old_item_name'], body['new_item_name'], body.get('line_no'))
    return utils_app.result_response(result)
