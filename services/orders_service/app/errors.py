class OrderServiceError(Exception):
    """Base for errors that map to an HTTP response with a JSON ``error`` body."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(OrderServiceError):
    status_code = 400


class ProductNotFound(OrderServiceError):
    status_code = 404

    def __init__(self, message: str = "Product not found"):
        super().__init__(message)


class UpstreamUnavailable(OrderServiceError):
    status_code = 503

    def __init__(self, message: str = "Unable to verify product. Service unavailable."):
        super().__init__(message)


class OrderNotFound(OrderServiceError):
    status_code = 404

    def __init__(self, message: str = "Order not found"):
        super().__init__(message)


class InternalError(OrderServiceError):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
