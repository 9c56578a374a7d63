from datetime import timedelta

from common import auth as common_auth
from common.auth import bearer

from order_service.config import Settings
from order_service.errors import InvalidCredential, MissingCredential

__all__ = ["CredentialVerifier", "bearer", "issue_token"]


class CredentialVerifier(common_auth.CredentialVerifier):
    """Raises checkout errors so a failed check surfaces as ``unauthorized``."""

    def verify(self, credential: str | None) -> str:
        try:
            return super().verify(credential)
        except common_auth.MissingCredential as exc:
            raise MissingCredential(str(exc)) from exc
        except common_auth.InvalidCredential as exc:
            raise InvalidCredential(str(exc)) from exc


def issue_token(
    user_id: str,
    settings: Settings,
    username: str | None = None,
    expires_in: timedelta = timedelta(hours=2),
) -> str:
    return common_auth.issue_token(user_id, settings.jwt_secret, settings.jwt_algorithm, username, expires_in)
