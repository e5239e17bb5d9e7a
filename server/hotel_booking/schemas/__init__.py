"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .hold import *  # noqa: F403
from .inventory import *  # noqa: F403
from .pricing import *  # noqa: F403
