"""Command line interface.

Exit status is 0 on success, 1 on any operational error and 2 on usage
errors.
"""
import argparse
import datetime
import logging
import os
import re
import sys
from typing import Callable
from typing import IO
from typing import List
from typing import Optional
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding
import josepy as jose
import pytz

from acmeclient import auth_handler
from acmeclient import client as acme_client
from acmeclient import crypto_util
from acmeclient import errors
from acmeclient import messages
from acmeclient import solvers
from acmeclient import storage

logger = logging.getLogger(__name__)

DEFAULT_DIRECTORY_URL = 'https://acme-staging.api.letsencrypt.org/directory'
DEFAULT_HTTP01_ADDRESS = '127.0.0.1:8080'
DEFAULT_CERT_EXPIRY = datetime.timedelta(hours=365 * 12)
CERT_TIMEOUT = datetime.timedelta(minutes=30)
CHALLENGE_DIR_ENV = 'ACME_CHALLENGE_DIR'

_DURATION_RE = re.compile(r'^(\d+)([smhd]?)$')
_DURATION_UNITS = {'': 'seconds', 's': 'seconds', 'm': 'minutes',
                   'h': 'hours', 'd': 'days'}


def _duration_type(arg: str) -> datetime.timedelta:
    match = _DURATION_RE.match(arg.strip())
    if match is None:
        raise argparse.ArgumentTypeError(
            'invalid duration {0!r}, use e.g. 90d or 4380h'.format(arg))
    count, unit = match.groups()
    return datetime.timedelta(**{_DURATION_UNITS[unit]: int(count)})


def _address_type(arg: str) -> Tuple[str, int]:
    host, sep, port = arg.rpartition(':')
    if not sep or not port.isdigit():
        raise argparse.ArgumentTypeError(
            'invalid address {0!r}, use host:port'.format(arg))
    return host, int(port)


def print_account(out: IO[str], account: storage.Account, key_path: str) -> None:
    """Display an account the way ``whoami`` does."""
    agreed = account.agreement or 'no'
    if account.agreement and account.agreement == account.terms:
        agreed = 'yes'
    rows = [('URI', account.uri), ('Key', key_path),
            ('Contact', ', '.join(account.contact)),
            ('Terms', account.terms), ('Accepted', agreed)]
    for name, value in rows:
        out.write('{0:<10}{1}\n'.format(name + ':', value or ''))


class CLI:
    """ACME client CLI."""

    def __init__(self, args: argparse.Namespace, out: Optional[IO[str]] = None,
                 prompt: Callable[[str], str] = input) -> None:
        self.args = args
        self.out = sys.stdout if out is None else out
        self.prompt = prompt
        self.storage = storage.AccountStorage(args.config)

    def _network(self, key: jose.JWK) -> acme_client.ClientNetwork:
        return acme_client.ClientNetwork(key)

    def _client(self, net: acme_client.ClientNetwork,
                account: Optional[storage.Account] = None) -> acme_client.Client:
        directory_url = getattr(self.args, 'directory', None)
        if account is not None and account.endpoint is not None and directory_url is None:
            return acme_client.Client(account.endpoint, net)
        directory_url = directory_url or DEFAULT_DIRECTORY_URL
        logger.debug('Discovering %s', directory_url)
        return acme_client.Client(
            acme_client.Client.get_directory(directory_url, net), net)

    def _load(self) -> Tuple[storage.Account, jose.JWK]:
        account = self.storage.load()
        return account, self.storage.load_key()

    def reg(self) -> None:
        """Register a new account."""
        if not os.path.exists(self.storage.key_path):
            if not self.args.gen:
                raise errors.StorageError(
                    'No account key at {0}, use --gen to create one'.format(
                        self.storage.key_path))
            self.storage.save_key(crypto_util.make_key())
        key = self.storage.load_key()

        net = self._network(key)
        acme = self._client(net)
        regr = acme.register(messages.NewRegistration(contact=tuple(self.args.contact)))
        account = storage.Account.from_regr(regr, acme.directory)
        self.storage.save(account)
        print_account(self.out, account, self.storage.key_path)

    def whoami(self) -> None:
        """Display the account as the server knows it."""
        account, key = self._load()
        net = self._network(key)
        regr = self._client(net, account).query_registration(account.to_regr())
        print_account(self.out, storage.Account.from_regr(regr, account.endpoint),
                      self.storage.key_path)

    def update(self) -> None:
        """Update contacts and accept the current terms of service."""
        account, key = self._load()
        net = self._network(key)
        acme = self._client(net, account)
        regr = account.to_regr()
        if self.args.accept:
            regr = acme.query_registration(regr)
            regr = regr.update(body=regr.body.update(agreement=regr.terms_of_service))
        if self.args.contact:
            regr = regr.update(body=regr.body.update(contact=tuple(self.args.contact)))
        regr = acme.update_registration(regr)
        account = storage.Account.from_regr(regr, account.endpoint)
        self.storage.save(account)
        print_account(self.out, account, self.storage.key_path)

    def _solver(self) -> solvers.Solver:
        if self.args.manual:
            return solvers.ManualSolver(os.environ.get(CHALLENGE_DIR_ENV) or None,
                                        prompt=self.prompt)
        return solvers.StandaloneSolver(self.args.address)

    def _cert_key(self, path: str) -> rsa.RSAPrivateKey:
        if os.path.exists(path):
            with open(path, 'rb') as key_file:
                return crypto_util.load_private_key(key_file.read())
        key = crypto_util.make_key()
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, 'wb') as key_file:
            key_file.write(crypto_util.dump_private_key(key))
        logger.info('Generated certificate key %s', path)
        return key

    def cert(self) -> None:
        """Obtain a certificate for the given domains."""
        domains = self.args.domains
        key_path = self.args.key or os.path.join(self.storage.config_dir, domains[0] + '.key')

        account, key = self._load()
        try:
            cert_key = self._cert_key(key_path)
        except (OSError, ValueError) as error:
            raise errors.StorageError('Certificate key {0}: {1}'.format(key_path, error))
        # the CSR comes first so that a bad key fails before any request
        csr = crypto_util.make_csr(cert_key, domains)

        net = self._network(key)
        acme = self._client(net, account)
        handler = auth_handler.AuthHandler(acme, self._solver())
        authzrs = handler.handle_authorizations(domains, account.authz)

        not_after = datetime.datetime.now(pytz.utc) + self.args.expiry
        certr = acme.request_issuance(csr, authzrs, not_after=not_after)
        logger.info('Certificate URL: %s', certr.uri)
        if certr.body is not None and not self.args.bundle:
            certs: Tuple[bytes, ...] = (certr.body.public_bytes(Encoding.DER),)
        else:
            certs = acme.poll_certificate(
                certr.uri, self.args.bundle, datetime.datetime.now(pytz.utc) + CERT_TIMEOUT)

        cert_path = os.path.join(os.path.dirname(os.path.abspath(key_path)),
                                 domains[0] + '.crt')
        try:
            with open(cert_path, 'wb') as cert_file:
                cert_file.write(crypto_util.dump_chain(certs))
        except OSError as error:
            raise errors.StorageError('Unable to write {0}: {1}'.format(cert_path, error))
        self.out.write('{0}\n'.format(cert_path))


def prepare_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog='acmeclient', description='ACME client for draft protocol CAs.')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log debug output, including every request.')

    config = argparse.ArgumentParser(add_help=False)
    config.add_argument(
        '-c', '--config', default=storage.DEFAULT_ACCOUNT_PATH,
        help='Account file; the account key is kept next to it (default: %(default)s).')

    subparsers = parser.add_subparsers(dest='command', metavar='command')
    subparsers.required = True

    parser_reg = subparsers.add_parser(
        'reg', parents=[config], help='new account registration')
    parser_reg.set_defaults(func=CLI.reg)
    parser_reg.add_argument('-d', '--directory', default=None,
                            help='Directory URL (default: {0}).'.format(DEFAULT_DIRECTORY_URL))
    parser_reg.add_argument('--gen', action='store_true',
                            help='Generate the account key if it does not exist.')
    parser_reg.add_argument('contact', nargs='*', help='e.g. mailto:admin@example.com')

    parser_whoami = subparsers.add_parser(
        'whoami', parents=[config], help='display info about the key holder')
    parser_whoami.set_defaults(func=CLI.whoami)

    parser_update = subparsers.add_parser(
        'update', parents=[config], help='update account data')
    parser_update.set_defaults(func=CLI.update)
    parser_update.add_argument('--accept', action='store_true',
                               help='Accept the current terms of service.')
    parser_update.add_argument('contact', nargs='*', help='Replace contacts.')

    parser_cert = subparsers.add_parser(
        'cert', parents=[config], help='request a new certificate')
    parser_cert.set_defaults(func=CLI.cert)
    parser_cert.add_argument('-d', '--directory', default=None,
                             help='Directory URL (default: the account one).')
    parser_cert.add_argument('-s', '--address', type=_address_type,
                             default=_address_type(DEFAULT_HTTP01_ADDRESS),
                             help='Where to serve http-01 challenges (default: {0}).'.format(
                                 DEFAULT_HTTP01_ADDRESS))
    parser_cert.add_argument('-k', '--key', default=None,
                             help='Certificate key, created if missing '
                                  '(default: <config dir>/<domain>.key).')
    parser_cert.add_argument('--expiry', type=_duration_type, default=DEFAULT_CERT_EXPIRY,
                             help='Requested validity, e.g. 90d (default: 4380h).')
    parser_cert.add_argument('--bundle', action='store_true', default=True,
                             help='Include the CA chain (default).')
    parser_cert.add_argument('--no-bundle', action='store_false', dest='bundle',
                             help='Only save the certificate itself.')
    parser_cert.add_argument('--manual', action='store_true',
                             help='Publish challenges by hand instead of running '
                                  'a local server; see ' + CHALLENGE_DIR_ENV + '.')
    parser_cert.add_argument('domains', nargs='+', metavar='domain')
    return parser


def setup_logging(verbose: bool) -> None:
    """Send log messages to stderr."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(levelname)s:%(name)s:%(message)s'))
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def main(cli_args: Optional[List[str]] = None) -> int:
    """Run the command line client.

    :returns: exit status

    """
    if cli_args is None:
        cli_args = sys.argv[1:]
    args = prepare_parser().parse_args(cli_args)
    setup_logging(args.verbose)

    try:
        args.func(CLI(args))
    except errors.Error as error:
        logger.debug('Exiting with error', exc_info=True)
        sys.stderr.write('{0}: {1}\n'.format(args.command, error))
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())  # pragma: no cover
