from .token_generator import TokenGenerator
from .credential_store import CredentialStore
from .session_store import SessionStore
from .session_manager import SessionManager
from .ceremony_engine import CeremonyEngine, WebAuthnCeremonyEngine
from .ceremony_coordinator import CeremonyCoordinator, CeremonyStart, LoginResult

__all__ = [
    "TokenGenerator",
    "CredentialStore",
    "SessionStore",
    "SessionManager",
    "CeremonyEngine",
    "WebAuthnCeremonyEngine",
    "CeremonyCoordinator",
    "CeremonyStart",
    "LoginResult"
]
