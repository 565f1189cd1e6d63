"""Client-side session lifecycle and inactivity logout for ZYRA.

Hosts call ``configure_logging`` and ``init_sentry`` once at startup, then
run a ``SessionController`` for the lifetime of the app.
"""

from .activity import ACTIVITY_EVENTS, ActivityMonitor
from .client import ZyraBackendClient
from .config import Settings
from .controller import SessionController
from .gotrue import GoTrueIdentityProvider
from .models import AppProfile, AuthChangeEvent, AuthResult, AuthState, Identity, Session
from .observability import configure_logging, init_sentry
from .timers import InactivityTimer, TimerState

__all__ = [
    "ACTIVITY_EVENTS",
    "ActivityMonitor",
    "AppProfile",
    "AuthChangeEvent",
    "AuthResult",
    "AuthState",
    "GoTrueIdentityProvider",
    "Identity",
    "InactivityTimer",
    "SessionController",
    "Session",
    "Settings",
    "TimerState",
    "ZyraBackendClient",
    "configure_logging",
    "init_sentry",
]
