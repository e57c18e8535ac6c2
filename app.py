from chalice import Chalice

from chalicelib import orders, item_statuses, access_gate, menu_items

app = Chalice(app_name='cafe-orders')

app.debug = True


@app.route('/health-check', methods=['GET'])
def health_check():
    return {'health': 'check'}


# MENU
@app.route('/menu', methods=['GET'], cors=True)
def get_menu():
    return menu_items.endpoint_get_menu(app.current_request)


# ORDERS
@app.route('/orders', methods=['POST'], cors=True)
def place_order():
    """
    any authenticated user, body {"items": [...], "paid": false}
    unknown item names are reported back in rejected_items
    """
    return orders.endpoint_place_order(app.current_request)


@app.route('/orders', methods=['GET'], cors=True)
def list_orders():
    """
    user can get his orders
    employee and manager can pass ?login= to get orders of another user
    """
    return orders.endpoint_list_orders(app.current_request)


@app.route('/orders/{order_id}', methods=['GET'], cors=True)
def get_order(order_id):
    """
    user can get details only of his orders
    employee and manager can get details of any order
    """
    return orders.endpoint_get_order(app.current_request, order_id)


@app.route('/orders/{order_id}/items', methods=['PUT'], cors=True)
def replace_item(order_id):
    """
    owner of an unpaid order swaps a not started item,
    body {"old_item_name": ..., "new_item_name": ..., "line_no": optional}
    """
    return orders.endpoint_replace_item(app.current_request, order_id)


@app.route('/orders/{order_id}/items/status', methods=['PUT'], cors=True)
def advance_item_status(order_id):
    """
    employee / manager operation, body {"item_name": ..., "status": ..., "force": false, "comment": ...}
    only manager can force an item to finished
    """
    return item_statuses.endpoint_advance_status(app.current_request, order_id)


@app.route('/orders/{order_id}/paid', methods=['PUT'], cors=True)
def set_paid_status(order_id):
    """
    employee / manager operation, body {"paid": true}
    """
    return access_gate.endpoint_set_paid_status(app.current_request, order_id)


# HISTORY
@app.route('/orders/history/recent', methods=['GET'], cors=True)
def get_recent_history():
    """
    last line items of the user (?limit=5),
    employee and manager can pass ?login=
    """
    return item_statuses.endpoint_recent_history(app.current_request)


@app.route('/orders/history/window', methods=['GET'], cors=True)
def get_window_history():
    """
    employee / manager operation, ?from=...&to=... ISO timestamps,
    defaults to the last day
    """
    return item_statuses.endpoint_window_history(app.current_request)
