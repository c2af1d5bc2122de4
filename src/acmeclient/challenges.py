"""ACME Identifier Validation Challenges."""
import functools
import logging
from typing import Any
from typing import cast
from typing import Dict
from typing import Mapping
from typing import Tuple
from typing import Type
from typing import TypeVar
from typing import Union

import josepy as jose

from acmeclient import fields
from acmeclient import jws

logger = logging.getLogger(__name__)

GenericChallenge = TypeVar('GenericChallenge', bound='Challenge')


class Challenge(jose.TypedJSONObjectWithFields):
    """ACME challenge."""
    TYPES: Dict[str, Type['Challenge']] = {}

    @classmethod
    def from_json(cls: Type[GenericChallenge],
                  jobj: Mapping[str, Any]) -> Union[GenericChallenge, 'UnrecognizedChallenge']:
        try:
            return cast(GenericChallenge, super().from_json(jobj))
        except jose.UnrecognizedTypeError as error:
            logger.debug(error)
            return UnrecognizedChallenge.from_json(jobj)


class ChallengeResponse(jose.TypedJSONObjectWithFields):
    """ACME challenge response.

    Draft ACME posts the response to the challenge URI together with the
    ``resource`` and ``type`` members.

    """
    TYPES: Dict[str, Type['ChallengeResponse']] = {}
    resource_type = 'challenge'
    resource: str = fields.resource(resource_type)


class UnrecognizedChallenge(Challenge):
    """Unrecognized challenge.

    Servers offer challenge types (dns-01, tls-sni-01, ...) that this
    client does not solve. They are kept verbatim so that the challenge
    list and its combinations stay index-compatible.

    :ivar jobj: Original JSON decoded object.

    """
    jobj: Dict[str, Any]

    def __init__(self, jobj: Mapping[str, Any]) -> None:
        super().__init__()
        object.__setattr__(self, "jobj", jobj)

    @property
    def typ(self) -> str:  # type: ignore[override]
        """Challenge type as announced by the server."""
        return self.jobj.get('type')  # pylint: disable=no-member

    def to_partial_json(self) -> Dict[str, Any]:
        return self.jobj  # pylint: disable=no-member

    @classmethod
    def from_json(cls, jobj: Mapping[str, Any]) -> 'UnrecognizedChallenge':
        return cls(jobj)


class _TokenChallenge(Challenge):
    """Challenge with token.

    :ivar bytes token:

    """
    TOKEN_SIZE = 128 // 8  # 128 bits of entropy
    """Minimum size of the :attr:`token` in bytes."""

    token: bytes = jose.field(
        "token", encoder=jose.encode_b64jose, decoder=functools.partial(
            jose.decode_b64jose, size=TOKEN_SIZE, minimum=True))

    @property
    def good_token(self) -> bool:
        """Is `token` safe to use as a path component?"""
        # pylint: disable=unsupported-membership-test
        return b'..' not in self.token and b'/' not in self.token


class KeyAuthorizationChallengeResponse(ChallengeResponse):
    """Response to Challenges based on Key Authorization.

    :param str key_authorization:

    """
    key_authorization: str = jose.field("keyAuthorization")


class KeyAuthorizationChallenge(_TokenChallenge):
    """Challenge based on Key Authorization.

    :param response_cls: Subclass of `KeyAuthorizationChallengeResponse`
        that will be used to generate ``response``.
    :param str typ: type of the challenge
    """
    typ: str = NotImplemented
    response_cls: Type[KeyAuthorizationChallengeResponse] = NotImplemented

    def key_authorization(self, account_key: jose.JWK) -> str:
        """Generate Key Authorization: ``token + "." + thumbprint``.

        :param JWK account_key:
        :rtype str:

        """
        return self.encode("token") + "." + jws.thumbprint(account_key)

    def response(self, account_key: jose.JWK) -> KeyAuthorizationChallengeResponse:
        """Generate response to the challenge.

        :param JWK account_key:

        :returns: Response (initialized `response_cls`) to the challenge.
        :rtype: KeyAuthorizationChallengeResponse

        """
        return self.response_cls(  # pylint: disable=not-callable
            key_authorization=self.key_authorization(account_key))

    def validation(self, account_key: jose.JWK) -> str:
        """Generate validation for the challenge.

        Subclasses must implement this method.

        :param JWK account_key:
        :returns: challenge-specific validation.

        """
        raise NotImplementedError()  # pragma: no cover

    def response_and_validation(self, account_key: jose.JWK
                                ) -> Tuple[KeyAuthorizationChallengeResponse, str]:
        """Generate response and validation.

        Convenience function that return results of `response` and
        `validation`.

        :param JWK account_key:
        :rtype: tuple

        """
        return (self.response(account_key), self.validation(account_key))


@ChallengeResponse.register
class HTTP01Response(KeyAuthorizationChallengeResponse):
    """ACME http-01 challenge response."""
    typ = "http-01"


@Challenge.register
class HTTP01(KeyAuthorizationChallenge):
    """ACME http-01 challenge."""
    response_cls = HTTP01Response
    typ = response_cls.typ

    URI_ROOT_PATH = ".well-known/acme-challenge"
    """URI root path for the server provisioned resource."""

    @property
    def path(self) -> str:
        """Path (starting with '/') for provisioned resource.

        :rtype: str

        """
        return '/' + self.URI_ROOT_PATH + '/' + self.encode('token')

    def validation(self, account_key: jose.JWK) -> str:
        """Body the provisioned resource must be served with.

        :param JWK account_key:
        :rtype: str

        """
        return self.key_authorization(account_key)
