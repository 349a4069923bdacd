"""
Where the cluster API is and how to prove the bridge's right to the secrets.

Only the apps' secrets are read & patched, so the credentials are narrow:
the server's URL and its CA, and either a bearer token (a service account's
or a developer's) or a client certificate with its key. The default namespace
is remembered for the requests that do not name one.

.. seealso::
    :mod:`piggybacking` and :class:`auth.APIContext`.
"""
import dataclasses
from typing import Optional, Union

PemOrBase64 = Union[str, bytes]


class LoginError(Exception):
    """ Raised when no credentials for the cluster API can be found. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    server: str  # e.g. "https://kubernetes.default.svc"
    ca_path: Optional[str] = None
    ca_data: Optional[PemOrBase64] = None
    insecure: Optional[bool] = None
    token: Optional[str] = None
    certificate_path: Optional[str] = None
    certificate_data: Optional[PemOrBase64] = None
    private_key_path: Optional[str] = None
    private_key_data: Optional[PemOrBase64] = None
    default_namespace: Optional[str] = None

    @property
    def has_client_certificate(self) -> bool:
        has_cert = bool(self.certificate_path or self.certificate_data)
        has_pkey = bool(self.private_key_path or self.private_key_data)
        return has_cert and has_pkey
