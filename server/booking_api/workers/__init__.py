"""Background workers for the booking service.

Concrete workers are imported from their modules; the package itself stays
free of database imports so the partner client can reuse ``BaseWorker``.
"""

from .base import BaseWorker

__all__ = ["BaseWorker"]
