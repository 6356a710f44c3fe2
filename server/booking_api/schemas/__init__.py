"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .problem import *  # noqa: F403
from .cron import *  # noqa: F403
from .health import *  # noqa: F403
from .wallet import *  # noqa: F403
