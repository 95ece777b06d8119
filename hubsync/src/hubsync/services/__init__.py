"""Service layer for the worker.

Store adapters over the shared :class:`Database` and the background
loops built on them.
"""

from .action_queue import ActionQueue  # noqa: F401
from .credential_store import CredentialStore  # noqa: F401
from .database import Database  # noqa: F401
from .known_entities import KnownEntities  # noqa: F401
from .registry import SubscriptionRegistry  # noqa: F401
from .wake_signal import WakeSignal  # noqa: F401
