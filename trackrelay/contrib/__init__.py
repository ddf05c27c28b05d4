"""Optional helpers built on the trackrelay middleware contract."""

from trackrelay.contrib.debug import debug_middleware

__all__ = ["debug_middleware"]
