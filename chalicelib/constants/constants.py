import os

USERS_TABLE = 'users'
MENU_ITEMS_TABLE = 'menu_items'
ORDERS_TABLE = 'orders'
ITEM_STATUSES_TABLE = 'item_statuses'

USER_ORDERS_INDEX = 'user_orders-index'
STATUS_DAY_INDEX = 'status_day-index'

# DynamoDB refuses transactions above this size
TRANSACTION_MAX_ITEMS = 100

RECENT_HISTORY_LIMIT = int(os.environ.get('RECENT_HISTORY_LIMIT', 5))
WINDOW_HISTORY_HOURS = int(os.environ.get('WINDOW_HISTORY_HOURS', 24))
WINDOW_HISTORY_MAX_DAYS = int(os.environ.get('WINDOW_HISTORY_MAX_DAYS', 31))

PRICE_QUANTUM = '1.00'
