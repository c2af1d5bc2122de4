"""ACME client errors."""
import typing
from typing import Any
from typing import List
from typing import Mapping

# We import acmeclient.messages only during type check to avoid circular
# dependencies. Type references to acmeclient.messages.* must be quoted.
if typing.TYPE_CHECKING:
    from acmeclient import messages  # pragma: no cover


class Error(Exception):
    """Generic ACME client error."""


class ClientError(Error):
    """Network error."""


class TransportError(ClientError):
    """The server could not be reached at all.

    Raised for DNS, connection and timeout failures. It is never the
    result of a server response and is not retried by this package.

    """


class DecodingError(ClientError):
    """A successful server response could not be decoded."""


class UnexpectedUpdate(ClientError):
    """Unexpected update error."""


class UnexpectedStatus(ClientError):
    """Resource is in a status the protocol does not allow at that point.

    :ivar resource: The offending resource.
    :ivar status: Status reported by the server.

    """
    def __init__(self, resource: Any, status: Any) -> None:
        self.resource = resource
        self.status = status
        super().__init__()

    def __str__(self) -> str:
        return 'Unexpected status {0!r} of {1}'.format(
            getattr(self.status, 'name', self.status),
            getattr(self.resource, 'uri', self.resource))


class NonceError(ClientError):
    """Server response nonce error."""


class MissingNonce(NonceError):
    """Missing nonce error.

    The server did not include a ``Replay-Nonce`` header in its response
    to the nonce request. This is raised whatever the response status was.

    :ivar str url: URL the nonce was requested from.
    :ivar headers: Mapping of HTTP headers

    """
    def __init__(self, url: str, headers: Mapping, *args: Any) -> None:
        super().__init__(*args)
        self.url = url
        self.headers = dict(headers)

    def __str__(self) -> str:
        return ('Server response to {0} did not include a replay '
                'nonce, headers: {1} (This may be a service outage)'.format(
                    self.url, self.headers))


class NoSupportedChallenge(Error):
    """None of the offered challenge combinations can be satisfied."""

    def __init__(self, authzr: 'messages.AuthorizationResource') -> None:
        self.authzr = authzr
        super().__init__()

    def __str__(self) -> str:
        offered = ', '.join(
            str(challb.typ) for challb in self.authzr.body.challenges or ())
        return 'No supported challenge found for {0} (offered: {1})'.format(
            self.authzr.body.identifier.value, offered or 'none')


class ValidationError(Error):
    """Error for authorization failures. Contains a list of authorization
    resources, each of which is invalid and should have an error field.
    """
    def __init__(self, failed_authzrs: List['messages.AuthorizationResource']) -> None:
        self.failed_authzrs = failed_authzrs
        super().__init__()

    def __str__(self) -> str:
        msg = []
        for authzr in self.failed_authzrs:
            msg.append('\n Authorization for identifier {0} failed.'.format(
                authzr.body.identifier.value))
            for challb in authzr.body.challenges or ():
                if challb.error is not None:
                    msg.append('\n Challenge Type: {0}\n Error: {1}'.format(
                        challb.typ, challb.error))
        return ''.join(msg)


class TimeoutError(Error):  # pylint: disable=redefined-builtin
    """Error for when polling an authorization or a certificate times out."""


class AuthorizationAborted(Error):
    """Polling stopped because authorizing another domain failed."""


class SolverError(Error):
    """A challenge could not be set up for validation."""


class StorageError(Error):
    """Account could not be read from or written to disk."""


class AccountNotFound(StorageError):
    """No account has been saved yet."""
