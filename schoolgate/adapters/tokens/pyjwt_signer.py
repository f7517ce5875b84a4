"""
JWT token signer - Implements the TokenSigner protocol with PyJWT.
"""

from dataclasses import dataclass
from typing import Any

import jwt

from schoolgate.domain.exceptions import InvalidAccessToken


@dataclass(frozen=True)
class PyJWTTokenSigner:
    """Signs and verifies access tokens with a shared server secret."""

    secret_key: str
    algorithm: str = "HS256"

    def encode(self, claims: dict[str, Any]) -> str:
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def decode(self, token: str) -> dict[str, Any] | None:
        """
        Verify signature and expiry.

        Expiry yields None; every other failure raises InvalidAccessToken.
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError as exc:
            raise InvalidAccessToken(str(exc)) from exc
