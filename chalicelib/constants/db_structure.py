USER = {
    'login': None,
    'role': None,
    'phone': None,
    'fav_items': None
}

MENU_ITEM = {
    'name': None,
    'type_': None,
    'price': None,
    'description': None,
    'image_url': None
}

ORDER = {
    'order_id': None,
    'login': None,
    'paid': None,
    'total': None,
    'date_created': None,
    'version': None
}

ITEM_STATUS = {
    'order_id': None,
    'line_no': None,
    'item_name': None,
    'price': None,
    'last_updated': None,
    'status': None,
    'comment_': None
}
