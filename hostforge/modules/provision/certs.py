"""Local certificate authority for engine TLS.

The CA and the client pair are created once per certificate directory and
reused. A server certificate is issued on every auth configuration, for the
addresses the host is reachable under.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from ipaddress import ip_address
from pathlib import Path
from typing import Iterable, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .errors import ConfigurationError

logger = logging.getLogger("provision.certs")

ORGANIZATION = 'hostforge'
VALIDITY = timedelta(days=1080)


def _generate_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption())
    return key, pem


def _write(path: str, data: bytes, mode: int) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'wb') as f:
        f.write(data)
    os.chmod(path, mode)


def _name(common_name: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])


def _key_usage(**enabled) -> x509.KeyUsage:
    flags = dict(
        digital_signature=False,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
    flags.update(enabled)
    return x509.KeyUsage(**flags)


def _builder(subject: x509.Name, issuer: x509.Name, public_key) -> x509.CertificateBuilder:
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + VALIDITY)
            .serial_number(x509.random_serial_number())
            .public_key(public_key))


def generate_ca(cert_path: str, key_path: str) -> None:
    logger.info("Creating CA: %s", cert_path)
    key, key_pem = _generate_key()
    name = _name(f"{ORGANIZATION} CA")
    cert = (
        _builder(name, name, key.public_key())
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(_key_usage(digital_signature=True, key_cert_sign=True, crl_sign=True), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            .sign(key, hashes.SHA256()))
    _write(key_path, key_pem, 0o600)
    _write(cert_path, cert.public_bytes(serialization.Encoding.PEM), 0o644)


def load_ca(cert_path: str, key_path: str):
    try:
        with open(cert_path, 'rb') as f:
            cert = x509.load_pem_x509_certificate(f.read())
        with open(key_path, 'rb') as f:
            key = serialization.load_pem_private_key(f.read(), None)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Unable to load CA from {cert_path} / {key_path}: {e}") from e
    return cert, key


def _issue(ca_cert, ca_key, common_name: str, usage: ExtendedKeyUsageOID,
           alt_names: Iterable[x509.GeneralName] = ()) -> Tuple[bytes, bytes]:
    key, key_pem = _generate_key()
    builder = (
        _builder(_name(common_name), ca_cert.subject, key.public_key())
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(_key_usage(digital_signature=True, key_encipherment=True), critical=True)
            .add_extension(x509.ExtendedKeyUsage([usage]), critical=False))
    alt_names = list(alt_names)
    if alt_names:
        builder = builder.add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
    cert = builder.sign(ca_key, hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM), key_pem


def _alt_names(hosts: Iterable[str]):
    seen = set()
    names = []
    for host in hosts:
        if not host or host in seen:
            continue
        seen.add(host)
        try:
            names.append(x509.IPAddress(ip_address(host)))
        except ValueError:
            names.append(x509.DNSName(host))
    return names


def can_issue(auth) -> bool:
    """Whether server certificates can be signed locally.

    False when a CA certificate is supplied without its private key.
    """
    return os.path.exists(auth.ca_key_path) or not os.path.exists(auth.ca_cert_path)


def bootstrap_certificates(auth) -> None:
    """Create the CA and the client pair in the certificate directory if missing.

    An existing CA certificate is never replaced.
    """
    if not os.path.exists(auth.ca_cert_path):
        generate_ca(auth.ca_cert_path, auth.ca_key_path)
    if not (os.path.exists(auth.client_cert_path) and os.path.exists(auth.client_key_path)):
        logger.info("Creating client certificate: %s", auth.client_cert_path)
        ca_cert, ca_key = load_ca(auth.ca_cert_path, auth.ca_key_path)
        cert_pem, key_pem = _issue(ca_cert, ca_key, 'client', ExtendedKeyUsageOID.CLIENT_AUTH)
        _write(auth.client_key_path, key_pem, 0o600)
        _write(auth.client_cert_path, cert_pem, 0o644)


def generate_server_certificate(auth, hosts: Iterable[str]) -> None:
    """Issue a server certificate for ``hosts`` signed by the run's CA.

    Raises:
        ConfigurationError: If the CA cannot be loaded
    """
    hosts = list(hosts)
    logger.info("Generating server certificate for %s", ', '.join(h for h in hosts if h))
    ca_cert, ca_key = load_ca(auth.ca_cert_path, auth.ca_key_path)
    common_name = next((h for h in hosts if h), 'localhost')
    cert_pem, key_pem = _issue(ca_cert, ca_key, common_name, ExtendedKeyUsageOID.SERVER_AUTH, _alt_names(hosts))
    _write(auth.server_key_path, key_pem, 0o600)
    _write(auth.server_cert_path, cert_pem, 0o644)
