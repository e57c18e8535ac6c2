from enum import Enum
from typing import Dict

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants.constants import USERS_TABLE
from chalicelib.data_store import DataStore
from chalicelib.utils import exceptions
from chalicelib.utils.logger import logger


class Role(Enum):
    CUSTOMER = 'Customer'
    EMPLOYEE = 'Employee'
    MANAGER = 'Manager'

    @classmethod
    def parse(cls, value) -> 'Role':
        if isinstance(value, cls):
            return value
        for role in cls:
            if isinstance(value, str) and role.value.lower() == value.strip().lower():
                return role
        raise exceptions.ValidationException(f'Unknown role={value!r}')

    @property
    def is_staff(self) -> bool:
        return self in (Role.EMPLOYEE, Role.MANAGER)


class User(EntityBase):
    """
    Account record. Created and edited outside of the ordering core, read-only here.
    """
    table = USERS_TABLE

    required_immutable_fields_validation = {
        'login': lambda x: isinstance(x, str) and len(x) > 0,
        'role': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'phone': lambda x: isinstance(x, str),
        'fav_items': lambda x: isinstance(x, str)
    }

    def __init__(self, store: DataStore, login, **kwargs):
        EntityBase.__init__(self, store)

        self.login: str = login
        self.role: Role = Role.parse(kwargs.get('role', Role.CUSTOMER))
        self.phone: str = kwargs.get('phone')
        self.fav_items: str = kwargs.get('fav_items')

    @classmethod
    def init_by_login(cls, store: DataStore, login) -> 'User':
        logger.info(f"init_by_login ::: {login=}")
        c = cls(store, login)
        try:
            record = c._get_db_item()
        except exceptions.RecordNotFound:
            raise exceptions.UserNotFound(f'User login={login} not found')
        c.__init__(store, **record)
        return c

    def _key(self) -> Dict:
        return {'login': self.login}

    def _to_dict(self) -> Dict:
        return {
            'login': self.login,
            'role': self.role.value,
            'phone': self.phone,
            'fav_items': self.fav_items
        }


class Session:
    """
    Identity of the caller for the duration of one operation
    """

    def __init__(self, login: str, role: Role):
        self.login = login
        self.role = Role.parse(role)

    @classmethod
    def from_user(cls, user: User) -> 'Session':
        return cls(user.login, user.role)

    def __repr__(self):
        return f'Session(login={self.login!r}, role={self.role.value})'
