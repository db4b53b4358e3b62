# src/datalayer/core/logging/
# ├─ __init__.py            # public API: setup_logging, operation id helpers
# ├─ builder.py             # make_dict_config(settings) + setup_logging(settings)
# ├─ formatters.py          # JsonFormatter, ColorFormatter
# ├─ filters.py             # OperationIdFilter (+ contextvar helpers), RedactFilter
# └─ handlers.py            # handler dict factories (console / file / error)


from .builder import setup_logging, make_dict_config
from .filters import (
    set_operation_id,
    get_operation_id,
    reset_operation_id,
    operation_context,
    OperationIdFilter,
    RedactFilter,
)

__all__ = [
    "setup_logging",
    "make_dict_config",
    "set_operation_id",
    "get_operation_id",
    "reset_operation_id",
    "operation_context",
    "OperationIdFilter",
    "RedactFilter",
]
