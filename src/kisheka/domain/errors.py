"""Domain exceptions raised by the supplier response flow.

Routes translate these into HTTP status codes; everything that is merely
"could not apply" is returned as a result object instead of raised.
"""


class KishekaError(Exception):
    """Base class for all service errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TransactionFailedError(KishekaError):
    """Raised when the atomic accept unit (status + ledger + audit) fails."""

    status_code = 500

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Transaction failed for purchase order {order_id}: {reason}")


class InvalidPayloadError(KishekaError):
    """Raised when a webhook body cannot be decoded."""

    status_code = 400
