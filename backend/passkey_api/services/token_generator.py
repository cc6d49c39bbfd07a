import logging
import secrets

from ..core.exceptions import EntropyUnavailableError

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # 256 bits of entropy


class TokenGenerator:
    """Produces unguessable, URL-safe session tokens"""

    def __init__(self, nbytes: int = TOKEN_BYTES):
        self.nbytes = nbytes

    def generate(self) -> str:
        """Return a fresh random token (base64url, ~43 characters)"""
        try:
            return secrets.token_urlsafe(self.nbytes)
        except (OSError, NotImplementedError) as e:
            logger.critical(f"System random source unavailable: {e}")
            raise EntropyUnavailableError() from e
