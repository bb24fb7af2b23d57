from __future__ import annotations

import logging
from typing import Any

# Always rendered, in this order, even when unknown.
_BASE_FIELDS = ("trace_id", "user_id", "recipient_id")


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every line with ``key=value`` request context.

    ``trace_id``, ``user_id`` and ``recipient_id`` are always present (``-``
    when unknown); fields added later through :meth:`with_context`, such as
    the persisted ``run_id``, follow them.
    """

    def process(self, msg: Any, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        parts = [f"{name}={self.extra.get(name) or '-'}" for name in _BASE_FIELDS]
        parts.extend(
            f"{name}={value}" for name, value in self.extra.items() if name not in _BASE_FIELDS and value is not None
        )
        return f'{" ".join(parts)} msg="{msg}"', kwargs

    def with_context(self, **fields: Any) -> "RequestLoggerAdapter":
        return RequestLoggerAdapter(self.logger, {**self.extra, **fields})


def get_request_logger(
    logger: logging.Logger | str,
    *,
    trace_id: str | None,
    user_id: str | None,
    recipient_id: str | None = None,
) -> RequestLoggerAdapter:
    base_logger = logging.getLogger(logger) if isinstance(logger, str) else logger
    return RequestLoggerAdapter(
        base_logger,
        {"trace_id": trace_id, "user_id": user_id, "recipient_id": recipient_id},
    )
