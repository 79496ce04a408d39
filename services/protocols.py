"""
Service Protocol Definitions

This module defines typing.Protocol interfaces for services used by the feed
client. These protocols enable loose coupling, dependency injection, and
easier testing.

Protocols defined:
- IdentityProvider: Interface for the external identity provider
  (session restoration, sign-in, sign-up, sign-out)
"""

from typing import Protocol, Optional

from data.models import Principal


class IdentityProvider(Protocol):
    """Protocol defining the interface for the external identity provider.

    Implementations are synchronous and own any persisted session; the
    AccountService runs them in worker threads and mirrors their results
    into the IdentityGate.
    """

    def restore_session(self) -> Optional[Principal]:
        """Restore the session persisted by a previous process, if any.

        Returns:
            The restored principal, or None when nobody is signed in.
        """
        ...

    def sign_in(self, email: str, password: str) -> Principal:
        """Sign in with email and password.

        Raises:
            AuthError: If the credentials are rejected.
        """
        ...

    def sign_up(self, display_name: str, email: str, password: str) -> Principal:
        """Create an account, set its display name and sign it in.

        Raises:
            AuthError: If the account cannot be created.
        """
        ...

    def sign_out(self) -> None:
        """Forget the current session, including its persisted copy."""
        ...

    @property
    def id_token(self) -> Optional[str]:
        """Token the stores use to authenticate the current principal."""
        ...
