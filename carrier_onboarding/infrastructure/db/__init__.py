from . import models  # noqa: F401
from .base import Base
from .session import configure_session_factory, get_session_factory

__all__ = ["Base", "configure_session_factory", "get_session_factory"]
