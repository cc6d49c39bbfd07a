"""
Two-phase passkey ceremonies.

Registration and login each move NONE -> PENDING -> COMPLETED | ABANDONED.
``begin_*`` creates the PENDING session and hands its token to the caller;
``finish_*`` consumes that session exactly once, whatever the outcome, so a
token can never be replayed against later ceremony state.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from ..core.exceptions import (
    CeremonyRejectedError,
    InvalidInputError,
    NotAuthenticatedError,
    NotFoundError,
    SessionNotFoundError,
    StorageUnavailableError,
)
from ..db.database import utcnow
from ..models.credential import Credential
from ..models.session import AuthSession, CeremonySession, REGISTRATION, LOGIN
from ..models.user import User
from .ceremony_engine import CeremonyEngine, RawRequest
from .credential_store import CredentialStore
from .session_manager import SessionManager
from .session_store import SessionStore
from .token_generator import TokenGenerator

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("passkey_api.security")

CLONE_POLICY_WARN = "warn"
CLONE_POLICY_REJECT = "reject"


@dataclass
class CeremonyStart:
    """Result of a begin call"""
    token: str
    options: Dict[str, Any]
    expires_at: datetime


@dataclass
class LoginResult:
    """Result of a successful finish_login"""
    user: User
    credential: Credential
    session: AuthSession


class CeremonyCoordinator:
    """Orchestrates begin/finish for registration and login"""

    def __init__(
        self,
        credential_store: CredentialStore,
        session_store: SessionStore,
        session_manager: SessionManager,
        engine: CeremonyEngine,
        token_generator: TokenGenerator,
        ceremony_ttl: timedelta = timedelta(hours=1),
        clone_policy: str = CLONE_POLICY_WARN,
        save_attempts: int = 3,
        save_backoff: float = 0.1,
        username_max_length: int = 64
    ):
        if clone_policy not in (CLONE_POLICY_WARN, CLONE_POLICY_REJECT):
            raise ValueError(f"Unknown clone warning policy: {clone_policy}")
        self.credential_store = credential_store
        self.session_store = session_store
        self.session_manager = session_manager
        self.engine = engine
        self.token_generator = token_generator
        self.ceremony_ttl = ceremony_ttl
        self.clone_policy = clone_policy
        self.save_attempts = max(1, save_attempts)
        self.save_backoff = save_backoff
        self.username_max_length = username_max_length

    def _validate_username(self, username: Optional[str]) -> str:
        if username is None or not username.strip():
            raise InvalidInputError("Username is required")
        username = username.strip()
        if len(username) > self.username_max_length:
            raise InvalidInputError("Username is too long")
        return username

    async def _start_session(
        self,
        user: User,
        ceremony: str,
        options: Dict[str, Any],
        state: Dict[str, Any],
        new_user: bool = False
    ) -> CeremonyStart:
        """Mint the token and persist the pending session.

        A ``new_user`` is inserted in the same transaction as its session,
        so a failed begin leaves no trace of the user.
        """
        token = self.token_generator.generate()
        expires_at = utcnow() + self.ceremony_ttl
        async with self.session_store.database.connection() as conn:
            if new_user:
                await self.credential_store.insert_user(user, conn=conn)
            await self.session_store.save(token, user.id, ceremony, state, expires_at, conn=conn)
        return CeremonyStart(token=token, options=options, expires_at=expires_at)

    async def _consume_session(self, token: Optional[str], ceremony: str) -> CeremonySession:
        """Take the pending session for ``token``; it is deleted either way"""
        if not token:
            raise SessionNotFoundError()

        session = await self.session_store.take(token)
        if session is None:
            logger.info(f"No pending session for token {token[:8]}...")
            raise SessionNotFoundError()

        if session.ceremony != ceremony:
            logger.warning(f"Token {token[:8]}... belongs to a {session.ceremony} ceremony, not {ceremony}")
            raise SessionNotFoundError()

        if session.is_expired(utcnow()):
            logger.info(f"{ceremony.capitalize()} session {token[:8]}... expired")
            raise SessionNotFoundError("Session expired")

        return session

    async def _resolve_owner(self, session: CeremonySession) -> User:
        try:
            return await self.credential_store.get_user_by_session_owner(session.user_id)
        except NotFoundError:
            logger.warning(f"Orphaned {session.ceremony} session {session.token[:8]}...")
            raise

    async def _save_credentials(self, user: User):
        """Persist credentials, retrying StorageUnavailableError with backoff"""
        for attempt in range(self.save_attempts):
            try:
                await self.credential_store.save_credentials(user)
                return
            except StorageUnavailableError as e:
                if attempt == self.save_attempts - 1:
                    logger.error(f"Saving credentials for '{user.name}' failed after {self.save_attempts} attempts")
                    raise
                wait_time = self.save_backoff * (2 ** attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.save_attempts} to save credentials for '{user.name}' "
                    f"failed: {e}. Retrying in {wait_time:.2f}s..."
                )
                await asyncio.sleep(wait_time)

    # Registration

    async def begin_registration(self, username: Optional[str]) -> CeremonyStart:
        """Create the user and open a registration ceremony"""
        username = self._validate_username(username)
        user = self.credential_store.new_user(username)

        options, state = self.engine.begin_registration(user)
        start = await self._start_session(user, REGISTRATION, options, state, new_user=True)

        logger.info(f"Registration started for '{username}'")
        return start

    async def finish_registration(self, token: Optional[str], client_response: RawRequest) -> User:
        """Verify the attestation and store the new credential"""
        session = await self._consume_session(token, REGISTRATION)
        user = await self._resolve_owner(session)

        try:
            credential = self.engine.finish_registration(user, session.state, client_response)
        except CeremonyRejectedError:
            logger.info(f"Registration abandoned for '{user.name}'")
            raise

        user.add_credential(credential)
        await self._save_credentials(user)

        logger.info(f"Registration completed for '{user.name}' ({len(user.credentials)} credential(s))")
        return user

    # Login

    async def begin_login(self, username: Optional[str]) -> CeremonyStart:
        """Open a login ceremony for an existing user"""
        username = self._validate_username(username)
        user = await self.credential_store.get_user_by_name(username)

        options, state = self.engine.begin_login(user)
        start = await self._start_session(user, LOGIN, options, state)

        logger.info(f"Login started for '{username}'")
        return start

    async def finish_login(self, token: Optional[str], client_response: RawRequest) -> LoginResult:
        """Verify the assertion, record the counter and open an authenticated session"""
        session = await self._consume_session(token, LOGIN)
        user = await self._resolve_owner(session)

        try:
            credential = self.engine.finish_login(user, session.state, client_response)
        except CeremonyRejectedError:
            logger.info(f"Login abandoned for '{user.name}'")
            raise

        if credential.clone_warning:
            self._report_clone_warning(user, credential)

        if not user.update_credential(credential):
            logger.warning(f"Verified credential is no longer stored for '{user.name}'")
        await self._save_credentials(user)

        auth_session = await self.session_manager.create_session(user.id)

        logger.info(f"Login completed for '{user.name}'")
        return LoginResult(user=user, credential=credential, session=auth_session)

    def _report_clone_warning(self, user: User, credential: Credential):
        rejected = self.clone_policy == CLONE_POLICY_REJECT
        security_logger.warning(
            "event=passkey_clone_warning user=%s credential=%s sign_count=%d action=%s",
            user.name,
            credential.credential_id.hex()[:16],
            credential.sign_count,
            "rejected" if rejected else "allowed"
        )
        if rejected:
            raise CeremonyRejectedError("Authenticator may be cloned")

    # Authenticated sessions

    async def current_user(self, auth_token: Optional[str]) -> User:
        """Resolve the user behind an authenticated session token"""
        is_valid, session = await self.session_manager.validate_session(auth_token)
        if not is_valid:
            raise NotAuthenticatedError("Invalid or expired session")
        try:
            return await self.credential_store.get_user_by_session_owner(session.user_id)
        except NotFoundError:
            await self.session_manager.end_session(auth_token)
            raise NotAuthenticatedError("Invalid or expired session")

    async def logout(self, auth_token: Optional[str]) -> bool:
        """End an authenticated session"""
        if not auth_token:
            return False
        return await self.session_manager.end_session(auth_token)
