"""Public test-support utilities for cellwatch.

Re-exports test doubles and factories so that consumer test suites
can import everything from a single ``cellwatch.testing`` namespace
instead of reaching into private modules.

Provided symbols:

- :class:`MockBus`: in-memory broker double with retained messages.
- :class:`NullBus`: silent no-op bus adapter.
- :func:`make_settings`: factory for ``Settings`` without ``.env`` files.
"""

from cellwatch._bus import MockBus, NullBus
from cellwatch.testing._settings import make_settings

__all__ = [
    "MockBus",
    "NullBus",
    "make_settings",
]
