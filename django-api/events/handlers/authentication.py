"""Authentication via the identity gateway header.

The upstream gateway authenticates the caller and forwards the account id;
this service only resolves it to an Account row.
"""

from uuid import UUID

from rest_framework import authentication, exceptions
from rest_framework.request import Request

from events.domain import Actor
from events.models import Account
from events.stores.django_store import DjangoAccountStore

ACCOUNT_HEADER = "X-Account-Id"


class AccountHeaderAuthentication(authentication.BaseAuthentication):
    """Resolve request.user from the X-Account-Id header."""

    def authenticate(self, request: Request) -> tuple[Account, None] | None:
        raw = request.headers.get(ACCOUNT_HEADER)
        if not raw:
            return None
        try:
            account_id = UUID(raw)
        except ValueError as exc:
            raise exceptions.AuthenticationFailed("Malformed account id") from exc
        account = Account.objects.filter(pk=account_id).first()
        if account is None:
            raise exceptions.AuthenticationFailed("Unknown account")
        return account, None

    def authenticate_header(self, request: Request) -> str:
        return ACCOUNT_HEADER


def current_actor(request: Request) -> Actor | None:
    """Return the caller as a domain Actor, or None when anonymous."""
    user = request.user
    if not isinstance(user, Account):
        return None
    return DjangoAccountStore.to_actor(user)
