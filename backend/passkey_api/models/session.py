from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any

REGISTRATION = "registration"
LOGIN = "login"
CEREMONY_TYPES = (REGISTRATION, LOGIN)


@dataclass
class CeremonySession:
    """Pending ceremony state between a begin and a finish call"""
    token: str
    user_id: bytes
    ceremony: str
    state: Dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class AuthSession:
    """Authenticated session issued after a successful login"""
    token: str
    user_id: bytes
    created_at: datetime
    last_activity: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
