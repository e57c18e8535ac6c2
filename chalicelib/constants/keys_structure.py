users_pk = 'users'
users_sk = '{login}'

menu_items_pk = 'menu_items'
menu_items_sk = '{name}'

orders_pk = 'orders'
orders_sk = '{order_id:010d}'

item_statuses_pk = 'item_statuses'
item_statuses_sk = '{order_id:010d}_{line_no:03d}'
item_statuses_order_prefix = '{order_id:010d}_'

counters_pk = 'counters'
counters_sk = '{table}'

gsi_user_orders_pk = 'orders_{login}'
gsi_user_orders_sk = '{order_id:010d}'

gsi_status_day_pk = 'item_statuses_{last_updated:.10}'
gsi_status_day_sk = '{last_updated}_{order_id:010d}_{line_no:03d}'
