"""
Bearer-token helpers: turn an Authorization header into a verified Principal.
"""

import logging
from typing import Optional

from firebase_admin import auth as firebase_auth

from safety_alerts.config import firebase
from safety_alerts.core.errors import AuthenticationError
from safety_alerts.models.user import Principal

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from 'Bearer <token>', or None when the header is absent."""
    if authorization is None:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Unauthorized - Missing or invalid token")
    return token.strip()


def principal_from_token(id_token: str) -> Principal:
    """
    Verify a Firebase ID token and build the Principal it asserts.

    Raises:
        AuthenticationError: token malformed, expired, revoked or unverifiable
    """
    try:
        claims = firebase.verify_id_token(id_token)
    except firebase_auth.ExpiredIdTokenError:
        raise AuthenticationError("Unauthorized - Token has expired")
    except firebase_auth.RevokedIdTokenError:
        raise AuthenticationError("Unauthorized - Token has been revoked")
    except (firebase_auth.InvalidIdTokenError, ValueError) as e:
        raise AuthenticationError(f"Unauthorized - Invalid token: {e}")
    except firebase_auth.CertificateFetchError as e:
        logger.error(f"Could not fetch token signing certificates: {e}")
        raise AuthenticationError("Unauthorized - Token could not be verified")

    if not (claims.get("uid") or claims.get("user_id") or claims.get("sub")):
        raise AuthenticationError("Unauthorized - Token has no uid")
    return Principal.from_token_claims(claims)
