"""
Typed failures raised by the store, menu, cart and order operations.

Three families exist: NotFoundError (a document, order or menu item is
absent), ValidationError (malformed or out-of-range input) and StorageError
(the underlying read, write or rename failed). The HTTP layer maps each
family to a status code.
"""


class DelishError(Exception):
    message = "Request failed"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


# Not found

class NotFoundError(DelishError):
    message = "Not found"


class OrderNotFound(NotFoundError):
    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class MenuItemNotFound(NotFoundError):
    def __init__(self, category, index):
        super().__init__(f"Item {index} not found in category {category}")
        self.category = category
        self.index = index


# Validation

class ValidationError(DelishError):
    message = "Invalid request"


class InvalidItem(ValidationError):
    message = "Invalid item ID"


class InvalidQuantity(ValidationError):
    message = "Invalid quantity"


class EmptyCart(ValidationError):
    message = "Cart is empty"


class ItemsInvalid(ValidationError):
    message = "Some items are invalid or do not match the menu"


class InvalidTotal(ValidationError):
    message = "Invalid total format"


class TotalMismatch(ValidationError):
    def __init__(self, server_total, client_total):
        super().__init__(
            f"Total mismatch: server {server_total:.2f}, client {client_total:.2f}"
        )
        self.server_total = server_total
        self.client_total = client_total


class MissingField(ValidationError):
    def __init__(self, field):
        super().__init__(f"Missing required field: {field}")
        self.field = field


class InvalidStatus(ValidationError):
    def __init__(self, status):
        super().__init__(f"Invalid status: {status}")
        self.status = status


class InvalidDocumentName(ValidationError):
    def __init__(self, name):
        super().__init__(f"Invalid document name: {name!r}")
        self.name = name


class DuplicateMenuItem(ValidationError):
    def __init__(self, category, item_id):
        super().__init__(f"Item {item_id} already exists in category {category}")
        self.category = category
        self.item_id = item_id


# Storage

class StorageError(DelishError):
    message = "Storage failure"


class ReadFailure(StorageError):
    def __init__(self, name, reason):
        super().__init__(f"Failed to read {name}: {reason}")
        self.name = name


class WriteFailure(StorageError):
    def __init__(self, name, reason):
        super().__init__(f"Failed to write {name}: {reason}")
        self.name = name
