"""
Domain errors raised by the service layer.

Each carries the HTTP status it maps to and a message in the storefront's
display language; main.py renders them as {"error": message}.
"""


class ShopError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(ShopError):
    """Missing or malformed input."""
    status_code = 400


class BusinessRuleViolation(ShopError):
    """Input is well-formed but the current state forbids the operation."""
    status_code = 400


class InsufficientStock(BusinessRuleViolation):
    def __init__(self, product_name: str):
        super().__init__(f'Sản phẩm "{product_name}" không đủ số lượng trong kho')
        self.product_name = product_name


class NotFound(ShopError):
    status_code = 404


class AuthenticationFailed(ShopError):
    status_code = 401


class PermissionDenied(ShopError):
    status_code = 403


class ServiceUnavailable(ShopError):
    status_code = 503
