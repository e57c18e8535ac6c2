from chalicelib.constants import status_codes

__all__ = ["CafeError", "NotFound", "Conflict", "InvalidInput", "AccessDenied", "PartialFailure",
           "RecordNotFound", "OrderNotFound", "ItemStatusNotFound", "UserNotFound", "MenuItemNotFound",
           "OrderAlreadyPaid", "ItemAlreadyStarted", "InvalidStatusTransition", "DuplicateRecord",
           "ConcurrentModification", "ValidationException", "MandatoryFieldsAreNotFilled",
           "NotAuthorizedException", "StoreUnavailable", "NumberOfRetriesExceeded", "ConditionFailed"]


class CafeError(Exception):
    """
    Base of every error the core reports back to the caller as a typed result
    """
    KIND = 'error'
    LEVEL = 'warning'
    STATUS_CODE = status_codes.http400


# Generic Exceptions
class NotFound(CafeError):
    KIND = 'not_found'
    STATUS_CODE = status_codes.http404


class Conflict(CafeError):
    KIND = 'conflict'
    STATUS_CODE = status_codes.http409


class InvalidInput(CafeError):
    KIND = 'invalid_input'
    STATUS_CODE = status_codes.http400


class AccessDenied(CafeError):
    KIND = 'access_denied'
    STATUS_CODE = status_codes.http403


class NotAuthorizedException(AccessDenied):
    KIND = 'not_authorized'
    STATUS_CODE = status_codes.http401


class PartialFailure(CafeError):
    """
    Multi-record write stopped after some records were persisted.
    """
    KIND = 'partial_failure'
    LEVEL = 'error'
    STATUS_CODE = status_codes.http500

    def __init__(self, message, order_id=None, written=0, expected=0):
        super(PartialFailure, self).__init__(message)
        self.order_id = order_id
        self.written = written
        self.expected = expected


# DynamoDB exceptions
class RecordNotFound(NotFound):
    pass


class DuplicateRecord(Conflict):
    pass


# Domain exceptions
class OrderNotFound(NotFound):
    pass


class ItemStatusNotFound(NotFound):
    pass


class UserNotFound(NotFound):
    pass


class MenuItemNotFound(InvalidInput):
    pass


class OrderAlreadyPaid(Conflict):
    pass


class ItemAlreadyStarted(Conflict):
    pass


class InvalidStatusTransition(Conflict):
    pass


class ConcurrentModification(Conflict):
    pass


# Validations exceptions
class ValidationException(InvalidInput):
    pass


class MandatoryFieldsAreNotFilled(InvalidInput):
    pass


# Store availability, never turned into a result
class StoreUnavailable(Exception):
    LEVEL = 'error'
    STATUS_CODE = status_codes.http503


# DB Performance Exception
class NumberOfRetriesExceeded(StoreUnavailable):
    pass


class ConditionFailed(Exception):
    """
    Conditional write rejected by the store. Carries the indexes of the failed
    operations when raised from a transaction.
    """
    LEVEL = 'info'

    def __init__(self, message, failed_indexes=None):
        super(ConditionFailed, self).__init__(message)
        self.failed_indexes = failed_indexes or []
