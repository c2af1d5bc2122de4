"""ACME client API."""
import base64
import datetime
from email.utils import parsedate_tz
import http.client as http_client
import logging
import re
import threading
import time
from typing import Any
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple
from typing import Type
from typing import TypeVar
from typing import Union

import josepy as jose
import pytz
import requests
from requests.adapters import HTTPAdapter
from requests.utils import parse_header_links

from acmeclient import challenges
from acmeclient import crypto_util
from acmeclient import errors
from acmeclient import jws
from acmeclient import messages

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_TIMEOUT = 45
DEFAULT_RETRY_AFTER = 3
"""Seconds to wait when the server does not send ``Retry-After``."""
MAX_CHAIN_LENGTH = 10
"""Maximum number of ``up`` links followed when bundling a certificate."""

SUCCESS_CODES = tuple(range(200, 300))

_POLLING_STATUSES = (None, messages.STATUS_UNKNOWN, messages.STATUS_PENDING,
                     messages.STATUS_PROCESSING)

GenericMessage = TypeVar('GenericMessage', bound=jose.JSONDeSerializable)


def _find_links(lines: Union[str, Iterable[str], None], rel: str) -> List[str]:
    if not lines:
        return []
    if isinstance(lines, str):
        lines = [lines]
    links = parse_header_links(', '.join(lines))
    return [l['url'] for l in links
            if 'url' in l and l.get('rel') == rel]


def parse_link_header(lines: Union[str, Iterable[str], None], rel: str) -> str:
    """Find the target of the first ``Link`` with the given relation.

    :param lines: Value of the ``Link`` header, either as a single
        (possibly comma separated) string or as a list of header lines.
    :param str rel: Relation type, matched case-sensitively.

    :returns: The link target, or an empty string if there is none.
    :rtype: str

    """
    for url in _find_links(lines, rel):
        return url
    return ''


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Client:
    """ACME client for the draft protocol (``new-reg``/``new-authz``/``new-cert``).

    :ivar messages.Directory directory:
    :ivar .ClientNetwork net: Client network.

    """

    def __init__(self, directory: messages.Directory, net: 'ClientNetwork') -> None:
        """Initialize.

        :param .messages.Directory directory: Directory fetched with
            `get_directory`.
        :param .ClientNetwork net: Client network.

        """
        self.directory = directory
        self.net = net

    @classmethod
    def get_directory(cls, url: str, net: 'ClientNetwork') -> messages.Directory:
        """Retrieve the ACME directory from the server.

        :param str url: the URL where the ACME directory is available
        :param ClientNetwork net: the ClientNetwork to use to make the request

        :returns: the ACME directory object
        :rtype: messages.Directory
        """
        response = net.get(url)
        cls._expect(response, http_client.OK)
        return cls._decode(response, messages.Directory)

    @classmethod
    def _expect(cls, response: requests.Response, *codes: int) -> None:
        if response.status_code not in codes:
            raise messages.Error.from_response(response)

    @classmethod
    def _decode(cls, response: requests.Response,
                msg_cls: Type[GenericMessage]) -> GenericMessage:
        try:
            return msg_cls.from_json(response.json())
        except (ValueError, jose.DeserializationError) as error:
            raise errors.DecodingError('Unable to decode {0} from {1}: {2}'.format(
                msg_cls.__name__, response.url, error))

    @classmethod
    def get_links(cls, response: requests.Response, rel: str) -> List[str]:
        """Retrieve all ``Link`` targets of the given relation type.

        :param requests.Response response: The requests HTTP response.
        :param str rel: The relation type to filter by.

        """
        return _find_links(response.headers.get('Link'), rel)

    @classmethod
    def _first_link(cls, response: requests.Response, rel: str) -> Optional[str]:
        return parse_link_header(response.headers.get('Link'), rel) or None

    @classmethod
    def _regr_from_response(cls, response: requests.Response, uri: Optional[str] = None,
                            new_authzr_uri: Optional[str] = None,
                            terms_of_service: Optional[str] = None
                            ) -> messages.RegistrationResource:
        return messages.RegistrationResource(
            body=cls._decode(response, messages.Registration),
            uri=response.headers.get('Location', uri),
            new_authzr_uri=cls._first_link(response, 'next') or new_authzr_uri,
            terms_of_service=cls._first_link(
                response, 'terms-of-service') or terms_of_service)

    def register(self, new_reg: Optional[messages.NewRegistration] = None
                 ) -> messages.RegistrationResource:
        """Register.

        :param .NewRegistration new_reg:

        :returns: Registration Resource.
        :rtype: `.RegistrationResource`

        """
        new_reg = messages.NewRegistration() if new_reg is None else new_reg
        response = self.net.post(self.directory[new_reg], new_reg)
        self._expect(response, http_client.CREATED)
        if 'Location' not in response.headers:
            raise errors.ClientError('"Location" Header missing')
        return self._regr_from_response(response)

    def _send_recv_regr(self, regr: messages.RegistrationResource,
                        body: messages.UpdateRegistration) -> messages.RegistrationResource:
        response = self.net.post(regr.uri, body)
        self._expect(response, *SUCCESS_CODES)
        return self._regr_from_response(
            response, uri=regr.uri, new_authzr_uri=regr.new_authzr_uri,
            terms_of_service=regr.terms_of_service)

    def query_registration(self, regr: messages.RegistrationResource
                           ) -> messages.RegistrationResource:
        """Query server about registration.

        :param messages.RegistrationResource regr: Existing Registration
            Resource.

        """
        return self._send_recv_regr(regr, messages.UpdateRegistration())

    def update_registration(self, regr: messages.RegistrationResource,
                            update: Optional[messages.Registration] = None
                            ) -> messages.RegistrationResource:
        """Update registration.

        Only ``contact`` and ``agreement`` are sent; any 2xx response is
        accepted.

        :param messages.RegistrationResource regr: Registration Resource.
        :param messages.Registration update: Updated body of the
            resource. If not provided, body will be taken from `regr`.

        :returns: Updated Registration Resource.
        :rtype: `.RegistrationResource`

        """
        update = regr.body if update is None else update
        body = messages.UpdateRegistration(
            contact=update.contact, agreement=update.agreement)
        updated_regr = self._send_recv_regr(regr, body)
        logger.debug('Updated registration %s', updated_regr.uri)
        return updated_regr

    def agree_to_tos(self, regr: messages.RegistrationResource
                     ) -> messages.RegistrationResource:
        """Agree to the terms-of-service.

        Agree to the terms-of-service in a Registration Resource.

        :param regr: Registration Resource.
        :type regr: `.RegistrationResource`

        :returns: Updated Registration Resource.
        :rtype: `.RegistrationResource`

        """
        return self.update_registration(
            regr, regr.body.update(agreement=regr.terms_of_service))

    def _authzr_from_response(self, response: requests.Response,
                              identifier: Optional[messages.Identifier] = None,
                              uri: Optional[str] = None) -> messages.AuthorizationResource:
        authzr = messages.AuthorizationResource(
            body=self._decode(response, messages.Authorization),
            uri=response.headers.get('Location', uri))
        if authzr.uri is None:
            raise errors.ClientError('"Location" Header missing')
        if identifier is not None and authzr.body.identifier != identifier:  # pylint: disable=no-member
            raise errors.UnexpectedUpdate(authzr)
        return authzr

    def request_challenges(self, identifier: messages.Identifier,
                           new_authzr_uri: Optional[str] = None
                           ) -> messages.AuthorizationResource:
        """Request challenges.

        :param .messages.Identifier identifier: Identifier to be challenged.
        :param str new_authzr_uri: ``new-authorization`` URI. If omitted,
            will default to value found in ``directory``.

        :returns: Authorization Resource.
        :rtype: `.AuthorizationResource`

        :raises .UnexpectedStatus: if the new authorization is neither
            ``pending`` nor already ``valid``.

        """
        new_authz = messages.NewAuthorization(identifier=identifier)
        if new_authzr_uri is None:
            new_authzr_uri = self.directory[new_authz]
        response = self.net.post(new_authzr_uri, new_authz)
        self._expect(response, http_client.CREATED)
        authzr = self._authzr_from_response(response, identifier)
        if authzr.body.status not in (messages.STATUS_PENDING, messages.STATUS_VALID):
            raise errors.UnexpectedStatus(authzr, authzr.body.status)
        return authzr

    def request_domain_challenges(self, domain: str, new_authzr_uri: Optional[str] = None
                                  ) -> messages.AuthorizationResource:
        """Request challenges for domain names.

        This is simply a convenience function that wraps around
        `request_challenges`, but works with domain names instead of
        generic identifiers.

        :param str domain: Domain name to be challenged.
        :param str new_authzr_uri: ``new-authorization`` URI, such as the
            ``next`` link of a registration.

        :returns: Authorization Resource.
        :rtype: `.AuthorizationResource`

        """
        return self.request_challenges(messages.Identifier(
            typ=messages.IDENTIFIER_FQDN, value=domain), new_authzr_uri)

    def _get_authorization(self, uri: str, identifier: Optional[messages.Identifier] = None
                           ) -> Tuple[messages.AuthorizationResource, requests.Response]:
        response = self.net.get(uri)
        self._expect(response, http_client.OK)
        return self._authzr_from_response(response, identifier, uri), response

    def get_authorization(self, uri: str) -> messages.AuthorizationResource:
        """Fetch the current state of an authorization (unsigned GET)."""
        return self._get_authorization(uri)[0]

    def poll(self, authzr: messages.AuthorizationResource
             ) -> Tuple[messages.AuthorizationResource, requests.Response]:
        """Poll Authorization Resource for status.

        :param authzr: Authorization Resource
        :type authzr: `.AuthorizationResource`

        :returns: Updated Authorization Resource and HTTP response.

        :rtype: (`.AuthorizationResource`, `requests.Response`)

        """
        return self._get_authorization(authzr.uri, authzr.body.identifier)

    def poll_authorization(self, authzr: messages.AuthorizationResource,
                           deadline: Optional[datetime.datetime] = None,
                           abort: Optional[threading.Event] = None
                           ) -> messages.AuthorizationResource:
        """Poll an authorization until the server reports a final status.

        Transport errors are logged and polling goes on; every other
        error is raised.

        :param authzr: Authorization Resource
        :param datetime.datetime deadline: Give up after this
            timezone-aware time. Poll forever if ``None``.
        :param threading.Event abort: Checked before every request; once
            set, polling stops.

        :returns: The ``valid`` Authorization Resource.

        :raises .ValidationError: if the authorization became ``invalid``.
        :raises .UnexpectedStatus: if it reached any other final status.
        :raises .TimeoutError: if the deadline expired first.
        :raises .AuthorizationAborted: if ``abort`` was set.

        """
        while True:
            if abort is not None and abort.is_set():
                raise errors.AuthorizationAborted(
                    'Stopped polling authorization of {0} at {1}'.format(
                        authzr.body.identifier.value, authzr.uri))
            try:
                authzr, response = self.poll(authzr)
            except errors.TransportError as error:
                logger.warning('Polling authorization %s failed: %s', authzr.uri, error)
                delay = datetime.timedelta(seconds=DEFAULT_RETRY_AFTER)
            else:
                if authzr.body.status == messages.STATUS_VALID:
                    return authzr
                if authzr.body.status == messages.STATUS_INVALID:
                    raise errors.ValidationError([authzr])
                if authzr.body.status not in _POLLING_STATUSES:
                    raise errors.UnexpectedStatus(authzr, authzr.body.status)
                delay = self.retry_after(response, DEFAULT_RETRY_AFTER)

            now = datetime.datetime.now(pytz.utc)
            if deadline is not None:
                if now >= deadline:
                    raise errors.TimeoutError(
                        'Timed out waiting for authorization of {0} at {1}'.format(
                            authzr.body.identifier.value, authzr.uri))
                delay = min(delay, deadline - now)
            logger.debug('Authorization %s still %s, sleeping %s',
                         authzr.uri, authzr.body.status, delay)
            time.sleep(delay.total_seconds())

    def answer_challenge(self, challb: messages.ChallengeBody,
                         response: Optional[challenges.ChallengeResponse] = None
                         ) -> messages.ChallengeResource:
        """Answer challenge.

        The returned resource is informational only: the status of the
        challenge must be confirmed by polling its authorization.

        :param challb: Challenge Resource body.
        :type challb: `.ChallengeBody`

        :param response: Corresponding Challenge response. Computed from
            the account key if omitted.
        :type response: `.challenges.ChallengeResponse`

        :returns: Challenge Resource with updated body.
        :rtype: `.ChallengeResource`

        :raises .UnexpectedUpdate:

        """
        if response is None:
            response = challb.chall.response(self.net.key)
        resp = self.net.post(challb.uri, response)
        # 200 per protocol, but servers are known to answer 202
        self._expect(resp, http_client.OK, http_client.ACCEPTED)
        body = self._decode(resp, messages.ChallengeBody) if resp.content else challb
        challr = messages.ChallengeResource(
            authzr_uri=self._first_link(resp, 'up'), body=body)
        if challr.uri != challb.uri:
            raise errors.UnexpectedUpdate(challr.uri)
        return challr

    def request_issuance(self, csr: bytes,
                         authzrs: Iterable[messages.AuthorizationResource] = (),
                         not_before: Optional[datetime.datetime] = None,
                         not_after: Optional[datetime.datetime] = None
                         ) -> messages.CertificateResource:
        """Request issuance.

        The server may answer with the certificate right away or with an
        empty body, in which case ``body`` is ``None`` and the returned
        ``uri`` must be polled with `fetch_certificate`.

        :param bytes csr: DER-encoded CSR.
        :param authzrs: `list` of `.AuthorizationResource`
        :param datetime.datetime not_before: Requested start of validity.
        :param datetime.datetime not_after: Requested end of validity.

        :returns: Issued certificate
        :rtype: `.messages.CertificateResource`

        """
        req = messages.CertificateRequest(
            csr=csr, not_before=not_before, not_after=not_after)
        response = self.net.post(
            self.directory[req], req,
            headers={'Accept': ClientNetwork.DER_CONTENT_TYPE})
        self._expect(response, http_client.CREATED)

        uri = response.headers.get('Location')
        if uri is None:
            raise errors.ClientError('"Location" Header missing')
        body = self._load_cert(response) if response.content else None
        return messages.CertificateResource(
            uri=uri, body=body, authzrs=tuple(authzrs),
            cert_chain_uri=self._first_link(response, 'up'))

    @classmethod
    def _load_cert(cls, response: requests.Response) -> Any:
        try:
            return crypto_util.load_der_cert(response.content)
        except ValueError as error:
            raise errors.DecodingError('Unable to parse certificate from {0}: {1}'.format(
                response.url, error))

    def _get_cert(self, uri: str) -> requests.Response:
        return self.net.get(uri, content_type=ClientNetwork.DER_CONTENT_TYPE,
                            headers={'Accept': ClientNetwork.DER_CONTENT_TYPE})

    def fetch_certificate(self, uri: str, bundle: bool = False) -> messages.FetchResult:
        """Fetch a certificate.

        :param str uri: Certificate URI, as returned by `request_issuance`.
        :param bool bundle: Also fetch the issuer chain by following
            ``Link rel="up"`` headers.

        :returns: Either the DER certificates (leaf first) or the time to
            wait before fetching again.
        :rtype: `.messages.FetchResult`

        """
        response = self._get_cert(uri)
        if response.status_code == http_client.ACCEPTED:
            return messages.FetchResult.retry(
                self.retry_after(response, DEFAULT_RETRY_AFTER))
        self._expect(response, http_client.OK)
        self._load_cert(response)
        certs = [response.content]

        up = self._first_link(response, 'up') if bundle else None
        while up is not None:
            if len(certs) > MAX_CHAIN_LENGTH:
                raise errors.ClientError(
                    'Certificate chain of {0} is too long'.format(uri))
            response = self._get_cert(up)
            self._expect(response, http_client.OK)
            self._load_cert(response)
            certs.append(response.content)
            up = self._first_link(response, 'up')
        return messages.FetchResult.ready(tuple(certs))

    def poll_certificate(self, uri: str, bundle: bool = False,
                         deadline: Optional[datetime.datetime] = None) -> Tuple[bytes, ...]:
        """Fetch a certificate, waiting as long as the server asks to.

        :param str uri: Certificate URI.
        :param bool bundle: Also fetch the issuer chain.
        :param datetime.datetime deadline: Give up after this
            timezone-aware time. Wait forever if ``None``.

        :returns: DER certificates, leaf first.

        :raises .TimeoutError: if the deadline expired first.

        """
        while True:
            result = self.fetch_certificate(uri, bundle)
            if result.is_ready:
                return result.certs
            delay = result.retry_after
            now = datetime.datetime.now(pytz.utc)
            if deadline is not None:
                if now >= deadline:
                    raise errors.TimeoutError(
                        'Timed out waiting for certificate at {0}'.format(uri))
                delay = min(delay, deadline - now)
            logger.debug('Certificate %s not ready, sleeping %s', uri, delay)
            time.sleep(delay.total_seconds())

    @classmethod
    def retry_after(cls, response: requests.Response, default: int) -> datetime.timedelta:
        """Compute how long to wait based on response ``Retry-After`` header.

        Handles integers and various datestring formats per
        https://www.w3.org/Protocols/rfc2616/rfc2616-sec14.html#sec14.37

        :param requests.Response response: Response from `poll`.
        :param int default: Default value (in seconds), used when
            ``Retry-After`` header is not present or invalid.

        :returns: Time to wait before the next request.
        :rtype: `datetime.timedelta`

        """
        retry_after = response.headers.get('Retry-After', str(default))
        try:
            seconds = int(retry_after)
        except ValueError:
            # The RFC 2822 parser handles all of RFC 2616's cases in modern
            # environments (primarily HTTP 1.1+ but also py27+)
            when = parsedate_tz(retry_after)
            if when is not None:
                try:
                    tz_secs = datetime.timedelta(seconds=when[-1] or 0)
                    moment = datetime.datetime(*when[:6]) - tz_secs
                    return max(moment - _utcnow(), datetime.timedelta(0))
                except (ValueError, OverflowError):
                    pass
            seconds = default

        return datetime.timedelta(seconds=max(seconds, 0))


class ClientNetwork:
    """Wrapper around requests that signs POSTs for authentication.

    Every POST is signed with a nonce obtained by a fresh ``HEAD``
    request to the target URL. Nonces are never reused, so one instance
    can be shared by concurrent callers.

    Also adds user agent, and handles Content-Type.
    """
    JSON_CONTENT_TYPE = 'application/json'
    JOSE_CONTENT_TYPE = 'application/jose+json'
    JSON_ERROR_CONTENT_TYPE = 'application/problem+json'
    DER_CONTENT_TYPE = 'application/pkix-cert'
    REPLAY_NONCE_HEADER = 'Replay-Nonce'

    """Initialize.

    :param josepy.JWK key: Account private key
    :param josepy.JWASignature alg: Algorithm to use in signing JWS.
    :param bool verify_ssl: Whether to verify certificates on SSL connections.
    :param str user_agent: String to send as User-Agent header.
    :param int timeout: Timeout for requests.
    """
    def __init__(self, key: jose.JWK, alg: jose.JWASignature = jose.RS256,
                 verify_ssl: bool = True, user_agent: str = 'acmeclient',
                 timeout: int = DEFAULT_NETWORK_TIMEOUT) -> None:
        self.key = key
        self.alg = alg
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent
        self.session = requests.Session()
        self._default_timeout = timeout
        adapter = HTTPAdapter()

        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def __del__(self) -> None:
        # Try to close the session, but don't show exceptions to the
        # user if the call to close() fails.
        try:
            self.session.close()
        except Exception:  # pylint: disable=broad-except
            pass

    def _wrap_in_jws(self, obj: jose.JSONDeSerializable, nonce: str) -> str:
        """Wrap `JSONDeSerializable` object in JWS.

        :param josepy.JSONDeSerializable obj:
        :param str nonce:
        :rtype: str

        """
        jobj = obj.json_dumps(indent=2).encode()
        logger.debug('JWS payload:\n%s', jobj)
        return jws.JWS.sign(
            jobj, key=self.key, alg=self.alg, nonce=nonce).json_dumps(indent=2)

    @classmethod
    def _check_response(cls, response: requests.Response,
                        content_type: Optional[str] = None) -> requests.Response:
        """Check response status and content type.

        .. note::
           Checking is not strict: wrong server response ``Content-Type``
           HTTP header is ignored, but logged.

        :param str content_type: Expected Content-Type response header.

        :raises .messages.Error: If server response is not successful.

        """
        response_ct = response.headers.get('Content-Type')
        # Strip parameters from the media-type (rfc2616#section-3.7)
        if response_ct:
            response_ct = response_ct.split(';')[0].strip()

        if not response.ok:
            if response_ct not in (cls.JSON_ERROR_CONTENT_TYPE, cls.JSON_CONTENT_TYPE):
                logger.debug('Ignoring wrong Content-Type (%r) for Error', response_ct)
            raise messages.Error.from_response(response)

        if content_type is not None and response_ct != content_type:
            logger.debug('Ignoring wrong Content-Type (%r) for response, expected %r',
                         response_ct, content_type)
        return response

    def _send_request(self, method: str, url: str, *args: Any, **kwargs: Any) -> requests.Response:
        """Send HTTP request.

        Makes sure that `verify_ssl` is respected. Logs request and
        response (with headers). For allowed parameters please see
        `requests.request`.

        :param str method: method for the new `requests.Request` object
        :param str url: URL for the new `requests.Request` object

        :raises .TransportError: if the server could not be reached

        :returns: HTTP Response
        :rtype: `requests.Response`

        """
        if method == "POST":
            logger.debug('Sending POST request to %s:\n%s',
                         url, kwargs['data'])
        else:
            logger.debug('Sending %s request to %s.', method, url)
        kwargs['verify'] = self.verify_ssl
        kwargs.setdefault('headers', {})
        kwargs['headers'].setdefault('User-Agent', self.user_agent)
        kwargs.setdefault('timeout', self._default_timeout)
        try:
            response = self.session.request(method, url, *args, **kwargs)
        except requests.exceptions.RequestException as e:
            # pylint: disable=pointless-string-statement
            """Requests response parsing

            The requests library emits exceptions with a lot of extra text.
            We parse them with a regexp to raise a more readable exceptions.

            Example:
            HTTPSConnectionPool(host='acme-v01.api.letsencrypt.org',
            port=443): Max retries exceeded with url: /directory
            (Caused by NewConnectionError('
            <requests.packages.urllib3.connection.VerifiedHTTPSConnection
            object at 0x108356c50>: Failed to establish a new connection:
            [Errno 65] No route to host',))"""

            # pylint: disable=line-too-long
            err_regex = r".*host='(\S*)'.*Max retries exceeded with url\: (\/\w*).*(\[Errno \d+\])([A-Za-z ]*)"
            m = re.match(err_regex, str(e))
            if m is None:
                raise errors.TransportError(
                    'Requesting {0}: {1}'.format(url, e)) from e
            host, path, _err_no, err_msg = m.groups()
            raise errors.TransportError(f"Requesting {host}{path}:{err_msg}") from e

        # If an Accept header was sent in the request, the response may not be
        # UTF-8 encoded. In this case, we don't set response.encoding and log
        # the base64 response instead of raw bytes to keep binary data out of the logs.
        debug_content: Union[bytes, str]
        if "Accept" in kwargs["headers"]:
            debug_content = base64.b64encode(response.content)
        else:
            # We set response.encoding so response.text knows the response is
            # UTF-8 encoded instead of trying to guess the encoding that was
            # used which is error prone.
            response.encoding = "utf-8"
            debug_content = response.text
        logger.debug('Received response:\nHTTP %d\n%s\n\n%s',
                     response.status_code,
                     "\n".join("{0}: {1}".format(k, v)
                               for k, v in response.headers.items()),
                     debug_content)
        return response

    def head(self, *args: Any, **kwargs: Any) -> requests.Response:
        """Send HEAD request without checking the response.

        Note, that `_check_response` is not called, as a nonce may be
        carried by a non successful response too.

        """
        return self._send_request('HEAD', *args, **kwargs)

    def get(self, url: str, content_type: str = JSON_CONTENT_TYPE,
            **kwargs: Any) -> requests.Response:
        """Send GET request and check response."""
        return self._check_response(
            self._send_request('GET', url, **kwargs), content_type=content_type)

    def fetch_nonce(self, url: str) -> str:
        """Obtain a fresh anti-replay nonce for a request to ``url``.

        :raises .MissingNonce: if the response, whatever its status,
            carries no ``Replay-Nonce`` header.
        :raises .TransportError: if the server could not be reached.

        """
        response = self.head(url)
        nonce = response.headers.get(self.REPLAY_NONCE_HEADER)
        if not nonce:
            raise errors.MissingNonce(url, response.headers)
        logger.debug('Using nonce: %s', nonce)
        return nonce

    def post(self, url: str, obj: jose.JSONDeSerializable,
             content_type: str = JOSE_CONTENT_TYPE, **kwargs: Any) -> requests.Response:
        """POST object wrapped in `.JWS` and check response."""
        data = self._wrap_in_jws(obj, self.fetch_nonce(url))
        kwargs.setdefault('headers', {})
        kwargs['headers'].setdefault('Content-Type', content_type)
        response = self._send_request('POST', url, data=data, **kwargs)
        return self._check_response(response)
