from typing import Dict, Any

from chalicelib.constants.substitute_keys import from_db
from chalicelib.data_store import DataStore, WriteTransaction
from chalicelib.utils import exceptions
from chalicelib.utils.data import substitute_keys
from chalicelib.utils.logger import logger


class EntityBase:
    table = None

    required_immutable_fields_validation = {}
    required_mutable_fields_validation = {}
    optional_fields_validation = {}

    def __init__(self, store: DataStore):
        self.store = store
        self.record_type: str = self.table or ''

    def _key(self) -> Dict:
        """
        Should be re-implemented in each child class
        :return:
        filter identifying the entity's record
        """
        return {}

    def _get_db_item(self) -> Dict:
        return self.store.get(self.table, self._key())

    def _to_dict(self) -> Dict:
        """
        Should be re-implemented in each child class
        :return:
        dict of item's attributes as stored
        """
        return {}

    def _db_record(self) -> Dict:
        return {key: value for key, value in self._to_dict().items() if value is not None}

    @staticmethod
    def raise_validation_error(key, value):
        message = f'Validation error occurred while validating the field={key}, value={value!r}'
        logger.error(f"raise_validation_error ::: {message}")
        raise exceptions.ValidationException(message)

    def _validate_mandatory_fields(self):
        """
        Validates mandatory fields if all fields have correct type to put to db
        Raise ValidationException in case if a field is not valid
        """
        record = self._to_dict()
        for key, validator_func in {
            **self.required_immutable_fields_validation,
            **self.required_mutable_fields_validation
        }.items():
            if validator_func(record.get(key)) is False:
                self.raise_validation_error(key, record.get(key))

    def _validate_optional_fields(self):
        record = self._to_dict()
        for key, validator_func in self.optional_fields_validation.items():
            if record.get(key) is not None and validator_func(record.get(key)) is False:
                self.raise_validation_error(key, record.get(key))

    def _validate(self):
        self._validate_mandatory_fields()
        self._validate_optional_fields()

    def _create_db_record(self) -> Any:
        """
        Creates entity db record
        :return:
        key of the created record
        """
        self._validate()
        key = self.store.insert(self.table, self._db_record())
        logger.info(f"_create_db_record ::: {self.record_type=} {key=} successfully created")
        return key

    def _add_to_transaction(self, transaction: WriteTransaction) -> None:
        self._validate()
        transaction.insert(self.table, self._db_record())

    def _to_ui(self) -> Dict:
        item = self._to_dict()
        substitute_keys(dict_to_process=item, base_keys=from_db)
        return item

    def to_ui(self) -> Dict:
        return self._to_ui()
