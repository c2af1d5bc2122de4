"""Tests for acmeclient.cli."""
import argparse
import datetime
import io
import os
import shutil
import sys
import tempfile
import unittest
from unittest import mock

from cryptography import x509
import pytest

from acmeclient import errors
from acmeclient import messages
from acmeclient import storage
from acmeclient._internal.tests import test_util

DIRECTORY = messages.Directory(
    new_reg='https://ca.example/acme/new-reg',
    new_authz='https://ca.example/acme/new-authz',
    new_cert='https://ca.example/acme/new-cert')
CERT_DER = test_util.make_cert('example.com', issuer='ca', key_name='leaf')
ISSUER_DER = test_util.make_cert('ca', key_name='ca')


class ArgumentTypesTest(unittest.TestCase):
    """Tests for the argument parsing helpers."""

    def test_duration(self):
        from acmeclient.cli import _duration_type
        assert _duration_type('90d') == datetime.timedelta(days=90)
        assert _duration_type('4380h') == datetime.timedelta(hours=4380)
        assert _duration_type('15m') == datetime.timedelta(minutes=15)
        assert _duration_type('30') == datetime.timedelta(seconds=30)

    def test_duration_invalid(self):
        from acmeclient.cli import _duration_type
        with pytest.raises(argparse.ArgumentTypeError):
            _duration_type('3 weeks')

    def test_address(self):
        from acmeclient.cli import _address_type
        assert _address_type('127.0.0.1:8080') == ('127.0.0.1', 8080)
        assert _address_type(':80') == ('', 80)

    def test_address_invalid(self):
        from acmeclient.cli import _address_type
        with pytest.raises(argparse.ArgumentTypeError):
            _address_type('localhost')


class ParserTest(unittest.TestCase):
    """Tests for acmeclient.cli.prepare_parser."""

    def _parse(self, args):
        from acmeclient.cli import prepare_parser
        return prepare_parser().parse_args(args)

    def test_command_required(self):
        with mock.patch('sys.stderr', new_callable=io.StringIO):
            with pytest.raises(SystemExit) as exc_info:
                self._parse([])
        assert exc_info.value.code == 2

    def test_cert_requires_domain(self):
        with mock.patch('sys.stderr', new_callable=io.StringIO):
            with pytest.raises(SystemExit) as exc_info:
                self._parse(['cert'])
        assert exc_info.value.code == 2

    def test_cert_defaults(self):
        from acmeclient.cli import DEFAULT_CERT_EXPIRY
        args = self._parse(['cert', 'example.com', 'www.example.com'])
        assert args.domains == ['example.com', 'www.example.com']
        assert args.address == ('127.0.0.1', 8080)
        assert args.expiry == DEFAULT_CERT_EXPIRY
        assert args.bundle
        assert not args.manual
        assert args.directory is None
        assert args.config == storage.DEFAULT_ACCOUNT_PATH

    def test_cert_options(self):
        args = self._parse(['cert', '-c', 'acct.json', '-s', ':80', '--no-bundle',
                            '--expiry', '90d', '--manual', 'example.com'])
        assert args.config == 'acct.json'
        assert args.address == ('', 80)
        assert not args.bundle
        assert args.expiry == datetime.timedelta(days=90)
        assert args.manual

    def test_reg(self):
        args = self._parse(['reg', '--gen', 'mailto:admin@example.com'])
        assert args.gen
        assert args.contact == ['mailto:admin@example.com']


class CLITestBase(unittest.TestCase):
    """Base for tests running acmeclient.cli.main."""

    def setUp(self):
        self.tempdir = tempfile.mkdtemp()
        self.config = os.path.join(self.tempdir, 'account.json')
        self.storage = storage.AccountStorage(self.config)

        self.regr = messages.RegistrationResource(
            uri='https://ca.example/acme/reg/1',
            new_authzr_uri='https://ca.example/acme/new-authz',
            terms_of_service='https://ca.example/terms',
            body=messages.Registration(contact=('mailto:admin@example.com',)))

        patchers = [
            mock.patch('acmeclient.cli.acme_client.Client'),
            mock.patch('acmeclient.cli.acme_client.ClientNetwork'),
            mock.patch('acmeclient.cli.crypto_util.make_key',
                       side_effect=lambda: test_util.load_rsa_private_key('generated')),
            mock.patch('acmeclient.cli.setup_logging'),
            mock.patch('sys.stdout', new_callable=io.StringIO),
            mock.patch('sys.stderr', new_callable=io.StringIO),
        ]
        (self.mock_client_cls, self.mock_net_cls, self.mock_make_key, _,
         self.stdout, self.stderr) = [patcher.start() for patcher in patchers]
        for patcher in patchers:
            self.addCleanup(patcher.stop)

        self.mock_client_cls.get_directory.return_value = DIRECTORY
        self.acme = self.mock_client_cls.return_value
        self.acme.directory = DIRECTORY

    def tearDown(self):
        shutil.rmtree(self.tempdir)

    def _call(self, *args):
        from acmeclient.cli import main
        return main([args[0], '-c', self.config] + list(args[1:]))

    def _save_account(self, **kwargs):
        self.storage.save(storage.Account.from_regr(
            self.regr.update(**kwargs), DIRECTORY))
        self.storage.save_key(test_util.load_rsa_private_key())


class RegTest(CLITestBase):
    """Tests for the reg command."""

    def test_no_key(self):
        assert self._call('reg', 'mailto:admin@example.com') == 1
        assert 'use --gen' in self.stderr.getvalue()
        assert self.stderr.getvalue().startswith('reg: ')
        assert not self.acme.register.called

    def test_gen(self):
        self.acme.register.return_value = self.regr
        assert self._call('reg', '--gen', 'mailto:admin@example.com') == 0

        new_reg = self.acme.register.call_args[0][0]
        assert new_reg.contact == ('mailto:admin@example.com',)
        self.mock_client_cls.get_directory.assert_called_once_with(
            'https://acme-staging.api.letsencrypt.org/directory', self.mock_net_cls.return_value)

        account = self.storage.load()
        assert account.uri == self.regr.uri
        assert account.endpoint == DIRECTORY
        assert self.storage.load_key().key.private_numbers() == \
            test_util.load_rsa_private_key('generated').private_numbers()
        assert 'URI:      https://ca.example/acme/reg/1' in self.stdout.getvalue()
        assert 'Accepted: no' in self.stdout.getvalue()

    def test_custom_directory(self):
        self.acme.register.return_value = self.regr
        assert self._call('reg', '--gen', '-d', 'https://other.example/directory') == 0
        assert self.mock_client_cls.get_directory.call_args[0][0] == \
            'https://other.example/directory'

    def test_server_error(self):
        self.acme.register.side_effect = messages.Error.with_code(
            'malformed', detail='Registration key is already in use')
        assert self._call('reg', '--gen') == 1
        assert 'Registration key is already in use' in self.stderr.getvalue()
        with pytest.raises(errors.AccountNotFound):
            self.storage.load()


class WhoamiTest(CLITestBase):
    """Tests for the whoami command."""

    def test_whoami(self):
        self._save_account()
        self.acme.query_registration.return_value = self.regr.update(
            body=self.regr.body.update(agreement='https://ca.example/terms'))
        assert self._call('whoami') == 0
        assert not self.mock_client_cls.get_directory.called
        self.mock_client_cls.assert_called_once_with(DIRECTORY, self.mock_net_cls.return_value)
        assert self.acme.query_registration.call_args[0][0].uri == self.regr.uri

        out = self.stdout.getvalue()
        assert 'URI:      https://ca.example/acme/reg/1' in out
        assert 'Contact:  mailto:admin@example.com' in out
        assert 'Terms:    https://ca.example/terms' in out
        assert 'Accepted: yes' in out
        assert self.storage.key_path in out

    def test_no_account(self):
        assert self._call('whoami') == 1
        assert 'does not exist' in self.stderr.getvalue()


class UpdateTest(CLITestBase):
    """Tests for the update command."""

    def setUp(self):
        super().setUp()
        self._save_account()
        self.acme.query_registration.return_value = self.regr.update(
            terms_of_service='https://ca.example/terms/v2')
        self.acme.update_registration.side_effect = lambda regr: regr

    def test_accept(self):
        assert self._call('update', '--accept') == 0
        regr = self.acme.update_registration.call_args[0][0]
        assert regr.body.agreement == 'https://ca.example/terms/v2'
        assert self.storage.load().agreement == 'https://ca.example/terms/v2'
        assert 'Accepted: yes' in self.stdout.getvalue()

    def test_contact(self):
        assert self._call('update', 'mailto:new@example.com') == 0
        assert not self.acme.query_registration.called
        regr = self.acme.update_registration.call_args[0][0]
        assert regr.body.contact == ('mailto:new@example.com',)
        assert self.storage.load().contact == ('mailto:new@example.com',)


class CertTest(CLITestBase):
    """Tests for the cert command."""

    def setUp(self):
        super().setUp()
        self._save_account()
        patcher = mock.patch('acmeclient.cli.auth_handler.AuthHandler')
        self.mock_handler_cls = patcher.start()
        self.addCleanup(patcher.stop)
        self.authzrs = [mock.MagicMock()]
        self.mock_handler_cls.return_value.handle_authorizations.return_value = self.authzrs

        self.certr = messages.CertificateResource(uri='https://ca.example/acme/cert/1')
        self.acme.request_issuance.return_value = self.certr
        self.acme.poll_certificate.return_value = (CERT_DER, ISSUER_DER)

    def test_cert(self):
        assert self._call('cert', 'example.com', 'www.example.com') == 0

        self.mock_handler_cls.return_value.handle_authorizations.assert_called_once_with(
            ['example.com', 'www.example.com'], 'https://ca.example/acme/new-authz')
        csr_der, authzrs = self.acme.request_issuance.call_args[0]
        assert authzrs == self.authzrs
        csr = x509.load_der_x509_csr(csr_der)
        assert csr.subject.get_attributes_for_oid(
            x509.NameOID.COMMON_NAME)[0].value == 'example.com'
        not_after = self.acme.request_issuance.call_args[1]['not_after']
        assert not_after.tzinfo is not None

        uri, bundle, _ = self.acme.poll_certificate.call_args[0]
        assert uri == self.certr.uri
        assert bundle

        cert_path = os.path.join(self.tempdir, 'example.com.crt')
        assert self.stdout.getvalue() == cert_path + '\n'
        with open(cert_path, 'rb') as cert_file:
            certs = x509.load_pem_x509_certificates(cert_file.read())
        assert [cert.subject.rfc4514_string() for cert in certs] == [
            'CN=example.com', 'CN=ca']
        assert os.path.exists(os.path.join(self.tempdir, 'example.com.key'))

    def test_cert_body_no_bundle(self):
        from acmeclient import crypto_util
        self.acme.request_issuance.return_value = self.certr.update(
            body=crypto_util.load_der_cert(CERT_DER))
        assert self._call('cert', '--no-bundle', 'example.com') == 0
        assert not self.acme.poll_certificate.called
        with open(os.path.join(self.tempdir, 'example.com.crt'), 'rb') as cert_file:
            assert len(x509.load_pem_x509_certificates(cert_file.read())) == 1

    def test_cert_existing_key(self):
        from acmeclient import crypto_util
        key_path = os.path.join(self.tempdir, 'my.key')
        key = test_util.load_rsa_private_key('cert')
        with open(key_path, 'wb') as key_file:
            key_file.write(crypto_util.dump_private_key(key))
        assert self._call('cert', '-k', key_path, 'example.com') == 0
        csr = x509.load_der_x509_csr(self.acme.request_issuance.call_args[0][0])
        assert csr.public_key().public_numbers() == key.public_key().public_numbers()
        assert not self.mock_make_key.called

    def test_cert_bad_key(self):
        key_path = os.path.join(self.tempdir, 'my.key')
        with open(key_path, 'wb') as key_file:
            key_file.write(b'garbage')
        assert self._call('cert', '-k', key_path, 'example.com') == 1
        assert not self.mock_handler_cls.called
        assert not self.acme.request_issuance.called

    def test_cert_authorization_failure(self):
        self.mock_handler_cls.return_value.handle_authorizations.side_effect = (
            errors.TimeoutError('Timed out'))
        assert self._call('cert', 'example.com') == 1
        assert not self.acme.request_issuance.called
        assert 'cert: Timed out' in self.stderr.getvalue()

    def test_solver(self):
        from acmeclient import solvers
        from acmeclient.cli import CLI
        args = argparse.Namespace(config=self.config, manual=False, address=('', 80))
        solver = CLI(args)._solver()  # pylint: disable=protected-access
        assert isinstance(solver, solvers.StandaloneSolver)
        assert solver.address == ('', 80)

    def test_manual_solver(self):
        from acmeclient import solvers
        from acmeclient.cli import CHALLENGE_DIR_ENV
        from acmeclient.cli import CLI
        args = argparse.Namespace(config=self.config, manual=True)
        with mock.patch.dict(os.environ, {CHALLENGE_DIR_ENV: self.tempdir}):
            solver = CLI(args)._solver()  # pylint: disable=protected-access
        assert isinstance(solver, solvers.ManualSolver)
        assert solver.challenge_dir == self.tempdir


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
