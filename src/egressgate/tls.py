"""TLS options for upstream connections.

TLS settings are only ever built from the declared ``clientCert``,
``clientKey`` and ``rejectUnauthorized`` payload fields. Certificate
validation stays on unless a request explicitly opts out.
"""

import os
import ssl
import tempfile
from dataclasses import dataclass, field
from typing import Optional

from egressgate.models import ForwardRequest


@dataclass(frozen=True)
class TlsOptions:
    """TLS settings for one outbound call."""

    reject_unauthorized: bool = True
    # Certificate material is kept out of repr so it never reaches the logs.
    cert: Optional[str] = field(default=None, repr=False)
    key: Optional[str] = field(default=None, repr=False)

    @property
    def mutual(self) -> bool:
        return self.cert is not None


def resolve_tls_options(request: ForwardRequest) -> TlsOptions:
    """Build TLS options from the payload.

    When only a client certificate is given it is expected to hold both the
    certificate and the private key.
    """
    reject_unauthorized = request.reject_unauthorized is not False
    if request.client_cert:
        return TlsOptions(
            reject_unauthorized=reject_unauthorized,
            cert=request.client_cert,
            key=request.client_key or request.client_cert,
        )
    return TlsOptions(reject_unauthorized=reject_unauthorized)


def create_ssl_context(options: TlsOptions) -> ssl.SSLContext:
    """Create an SSL context for httpx from resolved TLS options.

    Raises:
        ssl.SSLError: If the client certificate or key material is unusable
    """
    context = ssl.create_default_context()
    if not options.reject_unauthorized:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if options.mutual:
        # load_cert_chain only reads from files; keep them in a private dir
        # that is removed as soon as the chain is loaded.
        with tempfile.TemporaryDirectory(prefix="egressgate-") as tmpdir:
            cert_path = os.path.join(tmpdir, "client.crt")
            key_path = os.path.join(tmpdir, "client.key")
            for path, material in ((cert_path, options.cert), (key_path, options.key)):
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(material or "")
            # An empty password makes an encrypted key fail instead of prompting.
            context.load_cert_chain(certfile=cert_path, keyfile=key_path, password=b"")

    return context
