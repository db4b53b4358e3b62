
# datalayer/
# │
# ├── exceptions/
# │   ├── __init__.py
# │   ├── base.py          # Error taxonomy raised by repositories (ValidationError, NotFoundError, ...)
# │   ├── classifier.py    # Raw remote failures -> stable error codes
# │   └── mapper.py        # handle_error(): any failure -> taxonomy member
from .base import (
    RepositoryError,
    ValidationError,
    NotFoundError,
    DatabaseError,
    ConfigurationError,
)

__all__ = [
    "RepositoryError",
    "ValidationError",
    "NotFoundError",
    "DatabaseError",
    "ConfigurationError",
]
