"""Modules that back the public :mod:`bpfvlog` API."""

from . import constants as _constants
from . import engine as _engine
from .constants import *  # noqa: F401,F403
from .engine import *  # noqa: F401,F403

__all__ = []
__all__ += getattr(_constants, "__all__", [])
__all__ += getattr(_engine, "__all__", [])
