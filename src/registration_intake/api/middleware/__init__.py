from .access_log import AccessLogMiddleware
from .catchall import CatchAllExceptionMiddleware
from .request_size_limit import RequestSizeLimitMiddleware
from .timeout import BodyReadTimeoutMiddleware, HandlerTimeoutMiddleware

__all__ = [
    "AccessLogMiddleware",
    "BodyReadTimeoutMiddleware",
    "CatchAllExceptionMiddleware",
    "HandlerTimeoutMiddleware",
    "RequestSizeLimitMiddleware",
]
