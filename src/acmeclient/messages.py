"""ACME protocol messages."""
import collections
import datetime
from collections.abc import Hashable
import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple
from typing import Type
from typing import Union

from cryptography import x509
import josepy as jose
import requests

from acmeclient import challenges
from acmeclient import crypto_util
from acmeclient import errors
from acmeclient import fields

logger = logging.getLogger(__name__)

ERROR_PREFIX = "urn:acme:error:"

ERROR_CODES = {
    'badCSR': 'The CSR is unacceptable (e.g., due to a short key)',
    'badNonce': 'The client sent an unacceptable anti-replay nonce',
    'connection': ('The server could not connect to the client to verify the'
                   ' domain'),
    'dnssec': 'The server could not validate a DNSSEC signed domain',
    'malformed': 'The request message was malformed',
    'rateLimited': 'There were too many requests of a given type',
    'serverInternal': 'The server experienced an internal error',
    'tls': 'The server experienced a TLS error during domain verification',
    'unauthorized': 'The client lacks sufficient authorization',
    'unknownHost': 'The server could not resolve a domain name',
}

ERROR_TYPE_DESCRIPTIONS = dict(
    (ERROR_PREFIX + name, desc) for name, desc in ERROR_CODES.items())


class Error(jose.JSONObjectWithFields, errors.Error):
    """ACME error.

    https://tools.ietf.org/html/draft-ietf-appsawg-http-problem-00

    Unrecognized or absent types are kept verbatim in `typ` (absent
    becomes the empty string).

    :ivar int status: HTTP status, as reported by the server.
    :ivar str typ:
    :ivar str title:
    :ivar str detail:

    """
    typ: str = jose.field('type', omitempty=True, default='')
    title: str = jose.field('title', omitempty=True)
    detail: str = jose.field('detail', omitempty=True)
    status: int = jose.field('status', omitempty=True)

    @classmethod
    def with_code(cls, code: str, **kwargs: Any) -> 'Error':
        """Create an Error instance with an ACME Error code.

        :str code: An ACME error code, like 'dnssec'.
        :kwargs: kwargs to pass to Error.

        """
        if code not in ERROR_CODES:
            raise ValueError("The supplied code: %s is not a known ACME error"
                             " code" % code)
        typ = ERROR_PREFIX + code
        return cls(typ=typ, **kwargs)

    @classmethod
    def from_response(cls, response: requests.Response) -> 'Error':
        """Classify an unexpected server response.

        The body is decoded as an HTTP problem document when possible;
        a ``status`` member of the document takes precedence over the
        status code of the response. Otherwise the raw body (or the
        status line, if the body is empty) becomes the detail.

        :param requests.Response response: Server response.

        :rtype: `Error`

        """
        try:
            jobj = response.json()
        except ValueError:
            jobj = None

        if isinstance(jobj, dict):
            jobj = dict(jobj)
            if jobj.get('status') is None:
                jobj['status'] = response.status_code
            try:
                return cls.from_json(jobj)
            except jose.DeserializationError as error:
                logger.debug('Unable to decode problem document: %s', error)

        detail = response.text
        if not detail:
            detail = '{0} {1}'.format(response.status_code, response.reason).strip()
        return cls(status=response.status_code, detail=detail)

    @property
    def description(self) -> Optional[str]:
        """Hardcoded error description based on its type.

        :returns: Description if standard ACME error or ``None``.
        :rtype: str

        """
        return ERROR_TYPE_DESCRIPTIONS.get(self.typ)

    @property
    def code(self) -> Optional[str]:
        """ACME error code.

        Basically self.typ without the ERROR_PREFIX.

        :returns: error code if standard ACME code or ``None``.
        :rtype: str

        """
        if self.typ in ERROR_TYPE_DESCRIPTIONS:
            return self.typ[len(ERROR_PREFIX):]
        return None

    def __str__(self) -> str:
        return b' :: '.join(
            part.encode('ascii', 'backslashreplace') for part in
            (None if self.status is None else str(self.status),
             self.typ or None, self.description, self.detail, self.title)
            if part is not None).decode()


class _Constant(jose.JSONDeSerializable, Hashable):
    """ACME constant."""
    __slots__ = ('name',)
    POSSIBLE_NAMES: Dict[str, '_Constant'] = NotImplemented

    def __init__(self, name: str) -> None:
        super().__init__()
        self.POSSIBLE_NAMES[name] = self  # pylint: disable=unsupported-assignment-operation
        self.name = name

    def to_partial_json(self) -> str:
        return self.name

    @classmethod
    def from_json(cls, jobj: str) -> '_Constant':
        if jobj not in cls.POSSIBLE_NAMES:  # pylint: disable=unsupported-membership-test
            raise jose.DeserializationError(
                '{0} not recognized'.format(cls.__name__))
        return cls.POSSIBLE_NAMES[jobj]

    def __repr__(self) -> str:
        return '{0}({1})'.format(self.__class__.__name__, self.name)

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, type(self)) and other.name == self.name

    def __hash__(self) -> int:
        return hash((self.__class__, self.name))


class Status(_Constant):
    """ACME "status" field.

    Names not known here still decode, to an instance that is equal to
    none of the ``STATUS_*`` constants, so callers can report them.

    """
    POSSIBLE_NAMES: Dict[str, _Constant] = {}

    @classmethod
    def from_json(cls, jobj: str) -> '_Constant':
        if not isinstance(jobj, str):
            raise jose.DeserializationError(
                '{0} must be a string'.format(cls.__name__))
        if jobj in cls.POSSIBLE_NAMES:
            return cls.POSSIBLE_NAMES[jobj]
        logger.debug('Unrecognized status %r', jobj)
        status = cls.__new__(cls)
        status.name = jobj
        return status


STATUS_UNKNOWN = Status('unknown')
STATUS_PENDING = Status('pending')
STATUS_PROCESSING = Status('processing')
STATUS_VALID = Status('valid')
STATUS_INVALID = Status('invalid')
STATUS_REVOKED = Status('revoked')


class IdentifierType(_Constant):
    """ACME identifier type."""
    POSSIBLE_NAMES: Dict[str, _Constant] = {}


IDENTIFIER_FQDN = IdentifierType('dns')  # IdentifierDNS in Boulder


class Identifier(jose.JSONObjectWithFields):
    """ACME identifier.

    :ivar IdentifierType typ:
    :ivar str value:

    """
    typ: IdentifierType = jose.field('type', decoder=IdentifierType.from_json)
    value: str = jose.field('value')


class Directory(jose.JSONObjectWithFields):
    """Directory.

    Resource URLs can be looked up by attribute (``directory.new_reg``),
    by resource type (``directory['new-reg']``) or by request message
    class (``directory[NewRegistration]``).

    """
    new_reg: str = jose.field('new-reg')
    new_authz: str = jose.field('new-authz')
    new_cert: str = jose.field('new-cert')
    revoke_cert: str = jose.field('revoke-cert', omitempty=True)

    @classmethod
    def _canon_key(cls, key: Union[str, Type[jose.JSONObjectWithFields]]) -> str:
        if isinstance(key, str):
            return key
        return getattr(key, 'resource_type')

    def __getitem__(self, name: Union[str, Type[jose.JSONObjectWithFields]]) -> str:
        canon = self._canon_key(name)
        for slot, field in self._fields.items():
            if canon in (slot, field.json_name):
                value = getattr(self, slot)
                if value is not None:
                    return value
        raise KeyError('Directory field "' + canon + '" not found')


class Resource(jose.JSONObjectWithFields):
    """ACME Resource.

    :ivar acmeclient.messages.ResourceBody body: Resource body.

    """
    body: "ResourceBody" = jose.field('body')


class ResourceWithURI(Resource):
    """ACME Resource with URI.

    :ivar str uri: Location of the resource.

    """
    uri: str = jose.field('uri')  # no ChallengeResource.uri


class ResourceBody(jose.JSONObjectWithFields):
    """ACME Resource Body."""


class Registration(ResourceBody):
    """Registration Resource Body.

    :ivar jose.JWK key: Public key.
    :ivar tuple contact: Contact URIs (``mailto:``, ``tel:``),
        `tuple` of `str`.
    :ivar str agreement: Terms of service the registrant agreed to.
    :ivar str authorizations: URI listing the account's authorizations.
    :ivar str certificates: URI listing the account's certificates.

    """
    # on new-reg key server ignores 'key' and populates it based on
    # JWS.signature.combined.jwk
    key: jose.JWK = jose.field('key', omitempty=True, decoder=jose.JWK.from_json)
    contact: Tuple[str, ...] = jose.field(
        'contact', omitempty=True, default=(), decoder=tuple)
    agreement: str = jose.field('agreement', omitempty=True)
    authorizations: str = jose.field('authorizations', omitempty=True)
    certificates: str = jose.field('certificates', omitempty=True)


class NewRegistration(Registration):
    """New registration."""
    resource_type = 'new-reg'
    resource: str = fields.resource(resource_type)


class UpdateRegistration(Registration):
    """Update registration."""
    resource_type = 'reg'
    resource: str = fields.resource(resource_type)


class RegistrationResource(ResourceWithURI):
    """Registration Resource.

    :ivar acmeclient.messages.Registration body:
    :ivar str new_authzr_uri: URI found in the 'next' ``Link`` header.
    :ivar str terms_of_service: URL for the CA TOS, found in the
        'terms-of-service' ``Link`` header.

    """
    body: Registration = jose.field('body', decoder=Registration.from_json)
    new_authzr_uri: str = jose.field('new_authzr_uri', omitempty=True)
    terms_of_service: str = jose.field('terms_of_service', omitempty=True)

    @property
    def agreed(self) -> bool:
        """Has the registrant agreed to the current terms of service?"""
        return bool(self.body.agreement) and (
            self.body.agreement == self.terms_of_service)  # pylint: disable=no-member


class ChallengeBody(ResourceBody):
    """Challenge Resource Body.

    :ivar acmeclient.challenges.Challenge: Wrapped challenge.
        Conveniently, all challenge fields are proxied, i.e. you can
        call ``challb.x`` to get ``challb.chall.x`` contents.
    :ivar str uri: Challenge URI, used both to answer the challenge
        and to read its state.
    :ivar acmeclient.messages.Status status:
    :ivar datetime.datetime validated:
    :ivar messages.Error error:

    """
    __slots__ = ('chall',)
    uri: str = jose.field('uri')
    status: Status = jose.field('status', decoder=Status.from_json,
                                omitempty=True, default=STATUS_PENDING)
    validated: datetime.datetime = fields.rfc3339('validated', omitempty=True)
    error: Error = jose.field('error', decoder=Error.from_json,
                              omitempty=True, default=None)

    def to_partial_json(self) -> Dict[str, Any]:
        jobj = super().to_partial_json()
        jobj.update(self.chall.to_partial_json())
        return jobj

    @classmethod
    def fields_from_json(cls, jobj: Mapping[str, Any]) -> Dict[str, Any]:
        jobj_fields = super().fields_from_json(jobj)
        jobj_fields['chall'] = challenges.Challenge.from_json(jobj)
        return jobj_fields

    def __getattr__(self, name: str) -> Any:
        return getattr(self.chall, name)


class ChallengeResource(Resource):
    """Challenge Resource.

    :ivar acmeclient.messages.ChallengeBody body:
    :ivar str authzr_uri: URI found in the 'up' ``Link`` header.

    """
    body: ChallengeBody = jose.field('body', decoder=ChallengeBody.from_json)
    authzr_uri: str = jose.field('authzr_uri', omitempty=True)

    @property
    def uri(self) -> str:
        """The URL of the challenge body."""
        return self.body.uri  # pylint: disable=no-member


class Authorization(ResourceBody):
    """Authorization Resource Body.

    :ivar acmeclient.messages.Identifier identifier:
    :ivar list challenges: `list` of `.ChallengeBody`
    :ivar tuple combinations: Challenge combinations (`tuple` of `tuple`
        of `int`, as opposed to `list` of `list` on the wire).
    :ivar acmeclient.messages.Status status:
    :ivar datetime.datetime expires:

    """
    identifier: Identifier = jose.field('identifier', decoder=Identifier.from_json, omitempty=True)
    challenges: Tuple[ChallengeBody, ...] = jose.field('challenges', omitempty=True)
    combinations: Tuple[Tuple[int, ...], ...] = jose.field('combinations', omitempty=True)

    status: Status = jose.field('status', omitempty=True, decoder=Status.from_json)
    expires: datetime.datetime = fields.rfc3339('expires', omitempty=True)

    # Mypy does not understand the josepy magic happening here, and falsely claims
    # that challenge is redefined. Let's ignore the type check here.
    @challenges.decoder  # type: ignore
    def challenges(value: List[Dict[str, Any]]) -> Tuple[ChallengeBody, ...]:  # type: ignore[misc]  # pylint: disable=no-self-argument,missing-function-docstring
        return tuple(ChallengeBody.from_json(chall) for chall in value)

    @combinations.decoder  # type: ignore
    def combinations(value: List[List[int]]) -> Tuple[Tuple[int, ...], ...]:  # type: ignore[misc]  # pylint: disable=no-self-argument,missing-function-docstring
        return tuple(tuple(combo) for combo in value)

    @property
    def resolved_combinations(self) -> Tuple[Tuple[ChallengeBody, ...], ...]:
        """Combinations with challenges instead of indices.

        Without a ``combinations`` member every challenge is taken to be
        sufficient on its own.

        """
        if not self.combinations:
            return tuple((challb,) for challb in self.challenges or ())
        return tuple(tuple(self.challenges[idx] for idx in combo)
                     for combo in self.combinations)  # pylint: disable=not-an-iterable


class NewAuthorization(Authorization):
    """New authorization."""
    resource_type = 'new-authz'
    resource: str = fields.resource(resource_type)


class AuthorizationResource(ResourceWithURI):
    """Authorization Resource.

    :ivar acmeclient.messages.Authorization body:

    """
    body: Authorization = jose.field('body', decoder=Authorization.from_json)


class CertificateRequest(jose.JSONObjectWithFields):
    """ACME new-cert request.

    :ivar bytes csr: DER encoded certificate signing request.
    :ivar datetime.datetime not_before: Requested start of validity.
    :ivar datetime.datetime not_after: Requested end of validity.

    """
    resource_type = 'new-cert'
    resource: str = fields.resource(resource_type)
    csr: bytes = jose.field('csr', decoder=jose.decode_b64jose, encoder=jose.encode_b64jose)
    not_before: datetime.datetime = fields.rfc3339('notBefore', omitempty=True)
    not_after: datetime.datetime = fields.rfc3339('notAfter', omitempty=True)


class CertificateResource(ResourceWithURI):
    """Certificate Resource.

    :ivar x509.Certificate body: Issued certificate, or ``None`` when the
        server has not produced it yet and `uri` must be polled.
    :ivar str cert_chain_uri: URI found in the 'up' ``Link`` header
    :ivar tuple authzrs: `tuple` of `AuthorizationResource`.

    """
    body: Optional[x509.Certificate] = jose.field(
        'body', omitempty=True, decoder=crypto_util.decode_cert,
        encoder=crypto_util.encode_cert)
    cert_chain_uri: str = jose.field('cert_chain_uri', omitempty=True)
    authzrs: Tuple[AuthorizationResource, ...] = jose.field(
        'authzrs', omitempty=True, default=())


class FetchResult(collections.namedtuple('FetchResult', 'certs retry_after')):
    """Outcome of a certificate fetch.

    Exactly one of the members is set: ``certs`` is a `tuple` of DER
    encoded certificates (leaf first) when the certificate is ready,
    ``retry_after`` is the `datetime.timedelta` to wait before fetching
    again otherwise. Failures are raised, never returned.

    """
    __slots__ = ()

    @classmethod
    def ready(cls, certs: Tuple[bytes, ...]) -> 'FetchResult':
        """Certificate is available."""
        return cls(certs=tuple(certs), retry_after=None)

    @classmethod
    def retry(cls, delay: datetime.timedelta) -> 'FetchResult':
        """Certificate is not available yet."""
        return cls(certs=(), retry_after=delay)

    @property
    def is_ready(self) -> bool:
        """Does this result carry the certificate?"""
        return self.retry_after is None
