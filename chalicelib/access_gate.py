from enum import Enum
from typing import Dict, FrozenSet

from chalice import Response
from chalice.app import Request

from chalicelib.constants.constants import ORDERS_TABLE
from chalicelib.data_store import DataStore
from chalicelib.item_states import ItemState
from chalicelib.users import Role, Session
from chalicelib.utils import exceptions, app as utils_app, auth as utils_auth, data as utils_data
from chalicelib.utils.data import to_int, to_bool
from chalicelib.utils.logger import logger
from chalicelib.utils.results import returns_result


class Capability(Enum):
    PLACE_ORDER = 'place_order'
    MODIFY_OWN_ORDER = 'modify_own_order'
    VIEW_OWN_HISTORY = 'view_own_history'
    VIEW_ANY_ORDER = 'view_any_order'
    VIEW_ANY_HISTORY = 'view_any_history'
    VIEW_WINDOW_HISTORY = 'view_window_history'
    CHANGE_PAID_STATUS = 'change_paid_status'
    ADVANCE_STATUS = 'advance_status'
    FORCE_FINISH = 'force_finish'


_CUSTOMER_CAPABILITIES = frozenset({
    Capability.PLACE_ORDER,
    Capability.MODIFY_OWN_ORDER,
    Capability.VIEW_OWN_HISTORY,
})

_EMPLOYEE_CAPABILITIES = _CUSTOMER_CAPABILITIES | frozenset({
    Capability.VIEW_ANY_ORDER,
    Capability.VIEW_ANY_HISTORY,
    Capability.VIEW_WINDOW_HISTORY,
    Capability.CHANGE_PAID_STATUS,
    Capability.ADVANCE_STATUS,
})

ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.CUSTOMER: _CUSTOMER_CAPABILITIES,
    Role.EMPLOYEE: _EMPLOYEE_CAPABILITIES,
    Role.MANAGER: _EMPLOYEE_CAPABILITIES | frozenset({Capability.FORCE_FINISH}),
}


def has_capability(session: Session, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(session.role, frozenset())


def require(session: Session, capability: Capability):
    if not has_capability(session, capability):
        logger.warning(f'require ::: {session} lacks {capability.value}')
        raise exceptions.AccessDenied(f"Role {session.role.value} is not allowed to {capability.value.replace('_', ' ')}")


def can_modify_items(order) -> bool:
    return order.paid is False


def can_replace(item_status) -> bool:
    return item_status.status is ItemState.NOT_STARTED


def check_modifiable(order):
    if not can_modify_items(order):
        raise exceptions.OrderAlreadyPaid(f'Order {order.order_id} already paid')


def check_replaceable(item_status):
    if not can_replace(item_status):
        raise exceptions.ItemAlreadyStarted(
            f'Item {item_status.item_name} of order {item_status.order_id} already {item_status.status.value}')


class PaymentAccessGate:

    def __init__(self, store: DataStore):
        self.store = store

    @returns_result
    @utils_app.log_start_finish
    def set_paid_status(self, session: Session, order_id, paid) -> Dict:
        """
        Administrative flip of the paid flag, no state machine involved.
        Line items and total are left as they are.
        """
        require(session, Capability.CHANGE_PAID_STATUS)
        order_id = to_int(order_id, 'order_id')
        paid = to_bool(paid, 'paid')
        affected = self.store.update(
            ORDERS_TABLE, {'paid': paid}, {'order_id': order_id}, increments={'version': 1})
        if not affected:
            raise exceptions.OrderNotFound(f'Order {order_id} not found')
        logger.info(f'set_paid_status ::: order {order_id} paid={paid} by {session.login}')
        return {'order_id': order_id, 'paid': paid}


@utils_auth.authenticate
@utils_app.request_exception_handler
def endpoint_set_paid_status(request: Request, order_id) -> Response:
    body = utils_data.parse_raw_body(request)
    if 'paid' not in body:
        raise exceptions.MandatoryFieldsAreNotFilled('paid is required')
    result = PaymentAccessGate(utils_app.get_data_store()).set_paid_status(request.session, order_id, body['paid'])
    return utils_app.result_response(result)
