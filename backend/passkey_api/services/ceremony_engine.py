"""
Ceremony engine: the cryptographic half of passkey registration and login.

The coordinator only talks to the ``CeremonyEngine`` protocol. The default
implementation delegates challenge generation and attestation/assertion
verification to py_webauthn and translates its failures into
CeremonyRejectedError.
"""

import json
import logging
from dataclasses import replace
from typing import Protocol, Tuple, Dict, Any, List, Union

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import (
    base64url_to_bytes,
    bytes_to_base64url,
    parse_authentication_credential_json,
    parse_registration_credential_json,
)
from webauthn.helpers.exceptions import (
    InvalidAuthenticationResponse,
    InvalidAuthenticatorDataStructure,
    InvalidCBORData,
    InvalidJSONStructure,
    InvalidRegistrationResponse,
)
from webauthn.helpers.structs import (
    AuthenticatorSelectionCriteria,
    CredentialDeviceType,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from ..core.exceptions import CeremonyRejectedError
from ..db.database import utcnow
from ..models.credential import Credential
from ..models.user import User

logger = logging.getLogger(__name__)

RawRequest = Union[bytes, str, Dict[str, Any]]

# Anything the client can provoke while we parse and verify its response
_CLIENT_ERRORS = (
    InvalidRegistrationResponse,
    InvalidAuthenticationResponse,
    InvalidJSONStructure,
    InvalidCBORData,
    InvalidAuthenticatorDataStructure,
    ValueError,
    KeyError,
)


class CeremonyEngine(Protocol):
    """Boundary contract consumed by the ceremony coordinator"""

    def begin_registration(self, user: User) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        ...

    def finish_registration(self, user: User, state: Dict[str, Any], raw_request: RawRequest) -> Credential:
        ...

    def begin_login(self, user: User) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        ...

    def finish_login(self, user: User, state: Dict[str, Any], raw_request: RawRequest) -> Credential:
        ...


def _enum_value(value):
    return getattr(value, "value", value)


def _decode(raw_request: RawRequest) -> Union[str, Dict[str, Any]]:
    if isinstance(raw_request, (bytes, bytearray)):
        return raw_request.decode("utf-8")
    return raw_request


class WebAuthnCeremonyEngine:
    """CeremonyEngine backed by py_webauthn"""

    def __init__(
        self,
        rp_id: str,
        rp_name: str,
        origins: List[str],
        require_user_verification: bool = False,
        timeout_ms: int = 60000
    ):
        """
        Args:
            rp_id: Relying party id, usually the site's host name
            rp_name: Name shown to users by their authenticator
            origins: Origins allowed to run ceremonies (scheme, host, port)
            require_user_verification: Demand PIN/biometrics, not only presence
            timeout_ms: Client-side ceremony timeout hint
        """
        self.rp_id = rp_id
        self.rp_name = rp_name
        self.origins = list(origins)
        self.require_user_verification = require_user_verification
        self.timeout_ms = timeout_ms

    @property
    def user_verification(self) -> UserVerificationRequirement:
        if self.require_user_verification:
            return UserVerificationRequirement.REQUIRED
        return UserVerificationRequirement.PREFERRED

    def _state(self, challenge: bytes, user: User, allowed: List[bytes] = None) -> Dict[str, Any]:
        return {
            "challenge": bytes_to_base64url(challenge),
            "user_id": user.id_b64,
            "user_verification": self.user_verification.value,
            "allowed_credentials": [bytes_to_base64url(c) for c in (allowed or [])]
        }

    def _check_owner(self, user: User, state: Dict[str, Any]):
        if state.get("user_id") != user.id_b64:
            raise CeremonyRejectedError("Ceremony state does not belong to this user")

    # Registration

    def begin_registration(self, user: User) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        options = generate_registration_options(
            rp_id=self.rp_id,
            rp_name=self.rp_name,
            user_id=user.id,
            user_name=user.name,
            user_display_name=user.display_name,
            timeout=self.timeout_ms,
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=self.user_verification,
            ),
            exclude_credentials=[
                PublicKeyCredentialDescriptor(id=credential_id)
                for credential_id in user.credential_ids()
            ],
        )
        return json.loads(options_to_json(options)), self._state(options.challenge, user)

    def finish_registration(self, user: User, state: Dict[str, Any], raw_request: RawRequest) -> Credential:
        self._check_owner(user, state)
        try:
            credential = parse_registration_credential_json(_decode(raw_request))
            verification = verify_registration_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(state["challenge"]),
                expected_rp_id=self.rp_id,
                expected_origin=self.origins,
                require_user_verification=self.require_user_verification,
            )
        except _CLIENT_ERRORS as e:
            logger.info(f"Registration response rejected for '{user.name}': {e}")
            raise CeremonyRejectedError("Registration could not be verified") from e

        transports = credential.response.transports or []
        return Credential(
            credential_id=verification.credential_id,
            public_key=verification.credential_public_key,
            sign_count=verification.sign_count,
            aaguid=str(verification.aaguid),
            attestation_type=str(_enum_value(verification.fmt)),
            transports=[str(_enum_value(t)) for t in transports],
            attachment=_enum_value(credential.authenticator_attachment),
            user_verified=verification.user_verified,
            backup_eligible=verification.credential_device_type == CredentialDeviceType.MULTI_DEVICE,
            backup_state=verification.credential_backed_up,
            created_at=utcnow()
        )

    # Login

    def begin_login(self, user: User) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        credential_ids = user.credential_ids()
        options = generate_authentication_options(
            rp_id=self.rp_id,
            timeout=self.timeout_ms,
            allow_credentials=[
                PublicKeyCredentialDescriptor(id=credential_id)
                for credential_id in credential_ids
            ],
            user_verification=self.user_verification,
        )
        return json.loads(options_to_json(options)), self._state(options.challenge, user, credential_ids)

    def finish_login(self, user: User, state: Dict[str, Any], raw_request: RawRequest) -> Credential:
        """Verify an assertion and return the stored credential, updated.

        A sign counter that fails to advance is reported through
        ``clone_warning`` instead of failing the ceremony; the stored counter
        is left as it was in that case.
        """
        self._check_owner(user, state)
        try:
            credential = parse_authentication_credential_json(_decode(raw_request))
        except _CLIENT_ERRORS as e:
            logger.info(f"Malformed login response for '{user.name}': {e}")
            raise CeremonyRejectedError("Login could not be verified") from e

        allowed = state.get("allowed_credentials") or []
        if allowed and bytes_to_base64url(credential.raw_id) not in allowed:
            raise CeremonyRejectedError("Credential not allowed for this login")

        stored = user.get_credential(credential.raw_id)
        if stored is None:
            raise CeremonyRejectedError("Credential not registered")

        user_handle = credential.response.user_handle
        if user_handle and user_handle != user.id:
            raise CeremonyRejectedError("Credential belongs to a different user")

        try:
            # Counter comparison happens below, so py_webauthn never raises on it
            verification = verify_authentication_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(state["challenge"]),
                expected_rp_id=self.rp_id,
                expected_origin=self.origins,
                credential_public_key=stored.public_key,
                credential_current_sign_count=0,
                require_user_verification=self.require_user_verification,
            )
        except _CLIENT_ERRORS as e:
            logger.info(f"Login response rejected for '{user.name}': {e}")
            raise CeremonyRejectedError("Login could not be verified") from e

        new_count = verification.new_sign_count
        clone_warning = (new_count != 0 or stored.sign_count != 0) and new_count <= stored.sign_count

        return replace(
            stored,
            sign_count=stored.sign_count if clone_warning else new_count,
            clone_warning=clone_warning,
            user_verified=verification.user_verified,
            backup_state=verification.credential_backed_up,
            last_used_at=utcnow()
        )
