import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

from webauthn.helpers import bytes_to_base64url

from ..core.exceptions import AlreadyExistsError
from .credential import Credential


@dataclass
class User:
    """User identity with its registered credentials"""
    id: bytes
    name: str
    display_name: str
    credentials: List[Credential] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def id_b64(self) -> str:
        return bytes_to_base64url(self.id)

    def credential_ids(self) -> List[bytes]:
        return [c.credential_id for c in self.credentials]

    def get_credential(self, credential_id: bytes) -> Optional[Credential]:
        for credential in self.credentials:
            if credential.credential_id == credential_id:
                return credential
        return None

    def add_credential(self, credential: Credential):
        """Append a newly registered credential.

        A credential id may appear only once per user.
        """
        if self.get_credential(credential.credential_id) is not None:
            raise AlreadyExistsError("Credential already registered")
        self.credentials.append(credential)

    def update_credential(self, credential: Credential) -> bool:
        """Replace the entry with the same credential id.

        Returns False and leaves the list untouched when nothing matches.
        """
        for i, existing in enumerate(self.credentials):
            if existing.credential_id == credential.credential_id:
                self.credentials[i] = credential
                return True
        return False

    def credentials_blob(self) -> bytes:
        """Serialize the credential list for the users.creds column"""
        return json.dumps([c.to_dict() for c in self.credentials]).encode("utf-8")

    @staticmethod
    def parse_credentials(blob) -> List[Credential]:
        if not blob:
            return []
        if isinstance(blob, (bytes, bytearray)):
            blob = blob.decode("utf-8")
        return [Credential.from_dict(item) for item in json.loads(blob)]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        """Create User from a users table row"""
        created_at = row.get("created_at")
        return cls(
            id=bytes(row["id"]),
            name=row["name"],
            display_name=row["display_name"],
            credentials=cls.parse_credentials(row.get("creds")),
            created_at=datetime.fromisoformat(created_at) if created_at else None
        )
