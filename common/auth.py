"""Bearer JWT handling shared by every service that authenticates callers."""

from datetime import datetime, timedelta, timezone

import jwt

USER_CLAIM = "userId"


class CredentialError(Exception):
    pass


class MissingCredential(CredentialError):
    pass


class InvalidCredential(CredentialError):
    pass


class CredentialVerifier:
    """Validates bearer credentials against a verification key given at construction."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    def verify(self, credential: str | None) -> str:
        if not credential:
            raise MissingCredential("missing auth")

        scheme, _, token = credential.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise InvalidCredential("malformed authorization header")

        try:
            payload = jwt.decode(token.strip(), self._secret, algorithms=[self._algorithm])
        except jwt.PyJWTError as exc:
            raise InvalidCredential("invalid token") from exc

        user_id = payload.get(USER_CLAIM)
        if user_id is None or user_id == "":
            raise InvalidCredential("token carries no user id")
        return str(user_id)


def issue_token(
    user_id: str,
    secret: str,
    algorithm: str = "HS256",
    username: str | None = None,
    expires_in: timedelta = timedelta(hours=2),
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        USER_CLAIM: user_id,
        "username": username or user_id,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def bearer(token: str) -> str:
    return f"Bearer {token}"
