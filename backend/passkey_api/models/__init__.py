from .credential import Credential
from .user import User
from .session import CeremonySession, AuthSession, REGISTRATION, LOGIN

__all__ = [
    "Credential",
    "User",
    "CeremonySession",
    "AuthSession",
    "REGISTRATION",
    "LOGIN"
]
