"""Account persistence."""
import logging
import os
from typing import Optional
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric import rsa
import josepy as jose

from acmeclient import crypto_util
from acmeclient import errors
from acmeclient import messages

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = os.path.join('~', '.config', 'acme')
DEFAULT_ACCOUNT_PATH = os.path.join(DEFAULT_CONFIG_DIR, 'account.json')


class Account(jose.JSONObjectWithFields):
    """Locally saved account.

    :ivar str uri: Account URI, its identity on the server.
    :ivar tuple contact: Contact URIs.
    :ivar str agreement: Terms of service the account agreed to.
    :ivar str terms: Current terms of service of the server.
    :ivar str authz: ``new-authorization`` URI advertised at registration.
    :ivar str authorizations:
    :ivar str certificates:
    :ivar messages.Directory endpoint: Directory the account belongs to.

    """
    uri: str = jose.field('uri', omitempty=True)
    contact: Tuple[str, ...] = jose.field(
        'contact', omitempty=True, default=(), decoder=tuple)
    agreement: str = jose.field('agreement', omitempty=True)
    terms: str = jose.field('terms', omitempty=True)
    authz: str = jose.field('authz', omitempty=True)
    authorizations: str = jose.field('authorizations', omitempty=True)
    certificates: str = jose.field('certificates', omitempty=True)
    endpoint: messages.Directory = jose.field(
        'endpoint', omitempty=True, decoder=messages.Directory.from_json)

    @classmethod
    def from_regr(cls, regr: messages.RegistrationResource,
                  endpoint: Optional[messages.Directory] = None) -> 'Account':
        """Build the saved form of a Registration Resource."""
        return cls(
            uri=regr.uri, contact=regr.body.contact,
            agreement=regr.body.agreement, terms=regr.terms_of_service,
            authz=regr.new_authzr_uri,
            authorizations=regr.body.authorizations,
            certificates=regr.body.certificates, endpoint=endpoint)

    def to_regr(self) -> messages.RegistrationResource:
        """Rebuild the Registration Resource of this account."""
        return messages.RegistrationResource(
            uri=self.uri, new_authzr_uri=self.authz,
            terms_of_service=self.terms,
            body=messages.Registration(
                contact=self.contact, agreement=self.agreement,
                authorizations=self.authorizations,
                certificates=self.certificates))


class AccountStorage:
    """Account stored in a JSON file.

    The key lives next to the account file, with the same name and a
    ``.key`` extension (``account.json`` pairs with ``account.key``), as
    a PEM "RSA PRIVATE KEY". Both are only readable by their owner.

    :ivar str account_path:

    """

    def __init__(self, account_path: str = DEFAULT_ACCOUNT_PATH) -> None:
        self.account_path = os.path.expanduser(account_path)

    @property
    def config_dir(self) -> str:
        """Directory holding the account."""
        return os.path.dirname(os.path.abspath(self.account_path))

    @property
    def key_path(self) -> str:
        """Path of the account key."""
        return os.path.splitext(self.account_path)[0] + '.key'

    def _prepare(self) -> None:
        os.makedirs(self.config_dir, 0o700, exist_ok=True)

    def load(self) -> Account:
        """Load the account.

        :raises .AccountNotFound: if no account has been saved.
        :raises .StorageError: if it cannot be read.

        """
        try:
            with open(self.account_path) as account_file:
                return Account.json_loads(account_file.read())
        except FileNotFoundError:
            raise errors.AccountNotFound(
                'Account at {0} does not exist'.format(self.account_path))
        except (OSError, ValueError, jose.DeserializationError) as error:
            raise errors.StorageError(
                'Unable to read {0}: {1}'.format(self.account_path, error))

    def save(self, account: Account) -> None:
        """Write the account, replacing any previous one."""
        try:
            self._prepare()
            fd = os.open(self.account_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'w') as account_file:
                account_file.write(account.json_dumps(indent=2))
        except OSError as error:
            raise errors.StorageError(
                'Unable to write {0}: {1}'.format(self.account_path, error))
        logger.debug('Saved account %s to %s', account.uri, self.account_path)

    def load_key(self) -> jose.JWKRSA:
        """Load the account key.

        :raises .StorageError: if the key is missing or invalid.

        """
        try:
            with open(self.key_path, 'rb') as key_file:
                return jose.JWKRSA(key=crypto_util.load_private_key(key_file.read()))
        except (OSError, ValueError) as error:
            raise errors.StorageError(
                'Unable to read key {0}: {1}'.format(self.key_path, error))

    def save_key(self, key: rsa.RSAPrivateKey) -> None:
        """Write a new account key. An existing key is never overwritten.

        :raises .StorageError: if the key exists or cannot be written.

        """
        try:
            self._prepare()
            fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, 'wb') as key_file:
                key_file.write(crypto_util.dump_private_key(key))
        except OSError as error:
            raise errors.StorageError(
                'Unable to write key {0}: {1}'.format(self.key_path, error))
        logger.info('Generated account key %s', self.key_path)
