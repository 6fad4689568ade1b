"""Custom exceptions for the POS application."""


class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class PromoCodeError(BusinessLogicError):
    """Raised when a promo code cannot be applied to the current cart."""

    NOT_FOUND = 'NOT_FOUND'
    INACTIVE = 'INACTIVE'
    NOT_YET_VALID = 'NOT_YET_VALID'
    EXPIRED = 'EXPIRED'
    USAGE_LIMIT = 'USAGE_LIMIT'
    BELOW_MINIMUM = 'BELOW_MINIMUM'
    DUPLICATE = 'DUPLICATE'
    LIMIT_REACHED = 'LIMIT_REACHED'

    def __init__(self, reason, message, code=None, payload=None):
        data = dict(payload or ())
        data['reason'] = reason
        if code:
            data['code'] = code
        super().__init__(message, status_code=400, payload=data)
        self.reason = reason
        self.code = code


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock.

    ``shortages`` lists every failing product as dicts with
    ``product_id``, ``name``, ``requested`` and ``available``.
    """
    def __init__(self, shortages):
        self.shortages = list(shortages)
        parts = [
            f"{s['name']}: se requieren {_fmt_qty(s['requested'])}, disponible {_fmt_qty(s['available'])}"
            for s in self.shortages
        ]
        message = "Stock insuficiente para " + "; ".join(parts)
        super().__init__(message, status_code=409, payload={'shortages': self.shortages})


class SaleCommitError(PosError):
    """Unexpected failure while persisting a sale. Nothing was written."""
    def __init__(self, message="Error al confirmar la venta"):
        super().__init__(message, 500)
