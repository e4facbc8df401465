"""Logging filters for enriching log records with request context.

Adding ``RequestIdFilter`` to a handler makes ``%(request_id)s`` available
to formatters, so JSON log lines from views, services and adapters can be
correlated per request.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    The value comes from ``REQUEST_ID_CTX`` set by ``RequestIdMiddleware``;
    outside a request (management commands, startup) it is ``"-"``.
    """

    def filter(self, record: LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = REQUEST_ID_CTX.get()
        return True
