"""Crypto utilities."""
import logging
from typing import Iterable
from typing import List

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding
import josepy as jose

logger = logging.getLogger(__name__)

DEFAULT_KEY_SIZE = 2048


def make_key(bits: int = DEFAULT_KEY_SIZE) -> rsa.RSAPrivateKey:
    """Generate an RSA private key.

    :param int bits: Key size, in bits.

    :rtype: `cryptography.hazmat.primitives.asymmetric.rsa.RSAPrivateKey`

    """
    if bits < 1024:
        raise ValueError('RSA key of {0} bits is too small'.format(bits))
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def dump_private_key(key: rsa.RSAPrivateKey) -> bytes:
    """Serialize an RSA key as an unencrypted PEM "RSA PRIVATE KEY" block."""
    return key.private_bytes(
        encoding=Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption())


def load_private_key(data: bytes) -> rsa.RSAPrivateKey:
    """Load an unencrypted PEM RSA private key.

    Both PKCS#1 ("RSA PRIVATE KEY") and PKCS#8 ("PRIVATE KEY") blocks are
    accepted.

    :raises ValueError: if the data holds no RSA key.

    """
    key = serialization.load_pem_private_key(data, password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError('Invalid private key type: {0}'.format(type(key)))
    return key


def make_csr(private_key: rsa.RSAPrivateKey, domains: List[str]) -> bytes:
    """Generate a CSR for the given domains.

    The first domain becomes the subject Common Name and every domain
    (the first included) is listed as a subjectAltName.

    :param private_key: Certificate key.
    :param list domains: List of DNS names.

    :returns: DER-encoded Certificate Signing Request.
    :rtype: bytes

    """
    if not domains:
        raise ValueError('At least one domain is required')

    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([
            x509.NameAttribute(x509.NameOID.COMMON_NAME, domains[0])]))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
            critical=False,
        )
    )
    csr = builder.sign(private_key, hashes.SHA256())
    return csr.public_bytes(Encoding.DER)


def load_der_cert(data: bytes) -> x509.Certificate:
    """Parse a DER-encoded certificate.

    :raises ValueError: if the data is not a certificate.

    """
    return x509.load_der_x509_certificate(data)


def encode_cert(cert: x509.Certificate) -> str:
    """Encode certificate as JOSE Base-64 DER."""
    return jose.encode_b64jose(cert.public_bytes(Encoding.DER))


def decode_cert(b64der: str) -> x509.Certificate:
    """Decode JOSE Base-64 DER-encoded certificate."""
    try:
        return load_der_cert(jose.decode_b64jose(b64der))
    except ValueError as error:
        raise jose.DeserializationError(error)


def dump_chain(certs: Iterable[bytes]) -> bytes:
    """Dump DER certificates into a PEM bundle, in the order given.

    :param certs: DER-encoded certificates, leaf first.

    :returns: certificate chain bundle
    :rtype: bytes

    """
    return b''.join(
        load_der_cert(der).public_bytes(Encoding.PEM) for der in certs)
