"""ACME-specific JWS.

The JWS implementation in josepy only implements the base JOSE standard.
Every ACME request additionally carries the anti-replay nonce in its
protected header, so this module layers a nonce-aware header on top of
josepy. It also provides the RFC 7638 key thumbprint used in key
authorizations.
"""
from typing import Optional

from cryptography.hazmat.primitives import hashes
import josepy as jose


class Header(jose.Header):
    """ACME-specific JOSE Header. Implements nonce.

    The nonce is kept as the opaque string found in the server's
    ``Replay-Nonce`` header and echoed back verbatim.
    """
    nonce: Optional[str] = jose.field('nonce', omitempty=True)


class Signature(jose.Signature):
    """ACME-specific Signature. Uses ACME-specific Header for customer fields."""
    __slots__ = jose.Signature._orig_slots  # type: ignore[attr-defined]  # pylint: disable=protected-access,no-member

    header_cls = Header
    header: Header = jose.field(
        'header', omitempty=True, default=header_cls(),
        decoder=header_cls.from_json)


class JWS(jose.JWS):
    """ACME-specific JWS. Includes alg, jwk and nonce in protected header."""
    signature_cls = Signature
    __slots__ = jose.JWS._orig_slots  # type: ignore[attr-defined]  # pylint: disable=protected-access

    @classmethod
    # type: ignore[override]  # pylint: disable=arguments-differ
    def sign(cls, payload: bytes, key: jose.JWK, alg: jose.JWASignature,
             nonce: str) -> jose.JWS:
        return super().sign(payload, key=key, alg=alg,
                            protect=frozenset(['nonce', 'jwk', 'alg']),
                            nonce=nonce, include_jwk=True)


def thumbprint(key: jose.JWK) -> str:
    """Compute the RFC 7638 thumbprint of an account key.

    :param JWK key: Account key; only its public members are hashed.

    :returns: base64url (unpadded) SHA-256 digest of the canonical JWK.
    :rtype: str

    """
    return jose.b64encode(key.thumbprint(hash_function=hashes.SHA256)).decode()
