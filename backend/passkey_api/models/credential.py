from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

from webauthn.helpers import base64url_to_bytes, bytes_to_base64url


@dataclass
class Credential:
    """A registered public-key credential.

    Apart from ``credential_id`` (the update key) and ``clone_warning``
    everything here is authenticator payload passed through from the
    ceremony engine.
    """
    credential_id: bytes
    public_key: bytes
    sign_count: int = 0
    aaguid: str = ""
    attestation_type: str = "none"
    transports: List[str] = field(default_factory=list)
    attachment: Optional[str] = None
    user_present: bool = True
    user_verified: bool = False
    backup_eligible: bool = False
    backup_state: bool = False
    clone_warning: bool = False
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary for storage"""
        return {
            "id": bytes_to_base64url(self.credential_id),
            "public_key": bytes_to_base64url(self.public_key),
            "sign_count": self.sign_count,
            "aaguid": self.aaguid,
            "attestation_type": self.attestation_type,
            "transports": list(self.transports),
            "attachment": self.attachment,
            "flags": {
                "user_present": self.user_present,
                "user_verified": self.user_verified,
                "backup_eligible": self.backup_eligible,
                "backup_state": self.backup_state
            },
            "clone_warning": self.clone_warning,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        """Create Credential from its stored dictionary"""
        flags = data.get("flags") or {}
        created_at = data.get("created_at")
        last_used_at = data.get("last_used_at")
        return cls(
            credential_id=base64url_to_bytes(data["id"]),
            public_key=base64url_to_bytes(data["public_key"]),
            sign_count=int(data.get("sign_count") or 0),
            aaguid=data.get("aaguid") or "",
            attestation_type=data.get("attestation_type") or "none",
            transports=list(data.get("transports") or []),
            attachment=data.get("attachment"),
            user_present=bool(flags.get("user_present", True)),
            user_verified=bool(flags.get("user_verified", False)),
            backup_eligible=bool(flags.get("backup_eligible", False)),
            backup_state=bool(flags.get("backup_state", False)),
            clone_warning=bool(data.get("clone_warning", False)),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            last_used_at=datetime.fromisoformat(last_used_at) if last_used_at else None
        )
