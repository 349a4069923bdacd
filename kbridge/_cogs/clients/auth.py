"""
An HTTP session to the cluster API, authenticated for the secrets' access.

The bridge talks to a single API server per process (or per bridge instance),
so one session is created for the connection info and reused by all requests.
"""
import base64
import contextlib
import ssl
import tempfile
from types import TracebackType
from typing import Dict, Optional, Type

import aiohttp

from kbridge._cogs.helpers import versions
from kbridge._cogs.structs import credentials


class APIContext:
    """
    The session and the server's coordinates, passed to the secrets' functions.

    Use it as an async context manager, or close it explicitly when done.
    A ready-made session can be injected instead (e.g. a shared one).
    """

    session: aiohttp.ClientSession
    server: str
    default_namespace: Optional[str]

    def __init__(
            self,
            info: credentials.ConnectionInfo,
            *,
            session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__()
        self.server = info.server
        self.default_namespace = info.default_namespace
        self.session = session if session is not None else make_session(info)
        self.session.headers.setdefault('User-Agent', f'kbridge/{versions.version or "unknown"}')

    async def __aenter__(self) -> 'APIContext':
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self.session.close()


def make_session(info: credentials.ConnectionInfo) -> aiohttp.ClientSession:
    headers: Dict[str, str] = {}
    if info.token:
        headers['Authorization'] = f'Bearer {info.token}'
    return aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
        headers=headers,
    )


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    Verify the server with the cluster's CA, and present the client certificate if any.
    """
    ca_data = decode_to_pem(info.ca_data) if info.ca_data is not None else None
    context = ssl.create_default_context(cafile=info.ca_path, cadata=ca_data)

    # The ssl module loads the client certificates from files only.
    # The temporary files are created only for the inline data, and are gone after loading.
    if info.has_client_certificate:
        with contextlib.ExitStack() as stack:
            certfile = info.certificate_path or _write_pem(stack, info.certificate_data)
            keyfile = info.private_key_path or _write_pem(stack, info.private_key_data)
            context.load_cert_chain(certfile=certfile, keyfile=keyfile)

    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _write_pem(stack: contextlib.ExitStack, data: Optional[credentials.PemOrBase64]) -> str:
    file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
    file.write(decode_to_pem(data or b'').encode('ascii'))
    return file.name


def decode_to_pem(data: credentials.PemOrBase64) -> str:
    """ Kubeconfigs keep the inline certificates base64-encoded; the files keep them as PEM. """
    text = data.decode('ascii') if isinstance(data, bytes) else data
    if text.startswith('-----BEGIN '):
        return text
    return base64.b64decode(text).decode('ascii')
