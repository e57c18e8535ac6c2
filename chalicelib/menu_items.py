from decimal import Decimal
from typing import Dict, List

from chalice import Response
from chalice.app import Request

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants.constants import MENU_ITEMS_TABLE
from chalicelib.constants.status_codes import http200
from chalicelib.data_store import DataStore
from chalicelib.utils import exceptions, app as utils_app
from chalicelib.utils.data import to_price
from chalicelib.utils.logger import logger


class MenuItem(EntityBase):
    table = MENU_ITEMS_TABLE

    required_immutable_fields_validation = {
        'name': lambda x: isinstance(x, str) and len(x) > 0
    }

    required_mutable_fields_validation = {
        'price': lambda x: isinstance(x, Decimal) and x >= 0
    }

    optional_fields_validation = {
        'type_': lambda x: isinstance(x, str),
        'description': lambda x: isinstance(x, str),
        'image_url': lambda x: isinstance(x, str)
    }

    def __init__(self, store: DataStore, name, **kwargs):
        EntityBase.__init__(self, store)

        self.name: str = name
        self.type_: str = kwargs.get('type_')
        self.price: Decimal = to_price(kwargs['price']) if kwargs.get('price') is not None else None
        self.description: str = kwargs.get('description')
        self.image_url: str = kwargs.get('image_url')

    @classmethod
    def init_get_by_name(cls, store: DataStore, name) -> 'MenuItem':
        c = cls(store, name)
        c.__init__(store, **c._get_db_item())
        return c

    def _key(self) -> Dict:
        return {'name': self.name}

    def _to_dict(self) -> Dict:
        return {
            'name': self.name,
            'type_': self.type_,
            'price': self.price,
            'description': self.description,
            'image_url': self.image_url
        }


class MenuCatalog:
    """
    Read-only name -> price lookup over the menu
    """

    def __init__(self, store: DataStore):
        self.store = store

    def lookup(self, name: str) -> MenuItem:
        if not isinstance(name, str) or not name.strip():
            raise exceptions.MenuItemNotFound(f'Menu item name={name!r} is not valid')
        try:
            return MenuItem.init_get_by_name(self.store, name.strip())
        except exceptions.RecordNotFound:
            logger.info(f'MenuCatalog.lookup ::: {name=} is not on the menu')
            raise exceptions.MenuItemNotFound(f'Menu item {name} is not on the menu')

    def exists(self, name: str) -> bool:
        try:
            self.lookup(name)
        except exceptions.MenuItemNotFound:
            return False
        return True

    def list_items(self) -> List[MenuItem]:
        return [MenuItem(self.store, **record) for record in self.store.select(MENU_ITEMS_TABLE)]

    def search(self, name: str = None, type_: str = None) -> List[MenuItem]:
        """
        Items matching the name and / or the type, case-insensitive; the full menu when neither is given
        """
        items = self.list_items()
        if name:
            items = [item for item in items if item.name.lower() == name.strip().lower()]
        if type_:
            items = [item for item in items if (item.type_ or '').lower() == type_.strip().lower()]
        return items


@utils_app.request_exception_handler
@utils_app.log_start_finish
def endpoint_get_menu(request: Request) -> Response:
    qp = request.query_params or {}
    catalog = MenuCatalog(utils_app.get_data_store())
    menu_items = [item.to_ui() for item in catalog.search(qp.get('name'), qp.get('type'))]
    logger.info(f"endpoint_get_menu ::: returning menu items={[item['name'] for item in menu_items]}")
    return Response(status_code=http200, body=menu_items)
