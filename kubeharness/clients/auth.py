import base64
import contextlib
import ssl
import tempfile
from typing import Dict, Iterator, Optional, Union

import aiohttp

from kubeharness.helpers import versions
from kubeharness.structs import credentials


class APIContext:
    """
    The HTTP session of one API client, and where it connects to.

    One context serves one client for its whole lifetime: the harness does not
    re-authenticate, so the session is built once from the connection info
    and is closed together with the client, in the same event loop.
    """

    session: aiohttp.ClientSession
    server: str
    default_namespace: Optional[str]

    def __init__(self, info: credentials.ConnectionInfo) -> None:
        super().__init__()
        self.server = info.server
        self.default_namespace = info.default_namespace
        basic_auth: Optional[aiohttp.BasicAuth] = None
        if info.username and info.password:
            basic_auth = aiohttp.BasicAuth(info.username, info.password)
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
            headers=make_headers(info),
            auth=basic_auth,
        )

    async def close(self) -> None:
        await self.session.close()


def make_headers(info: credentials.ConnectionInfo) -> Dict[str, str]:
    headers = {'User-Agent': f'kubeharness/{versions.version or "unknown"}'}
    if info.scheme or info.token:
        scheme = info.scheme or 'Bearer'
        headers['Authorization'] = f'{scheme} {info.token}' if info.token else scheme
    return headers


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    Build the SSL context for the CA verification & the client certificates.

    The embedded certificates & keys are accepted by the SSL module only
    from files, so they are dumped to the temporary files for a moment.
    """
    context = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=info.ca_path,
        cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
    )
    with _as_file(info.certificate_path, info.certificate_data) as cert_path, \
         _as_file(info.private_key_path, info.private_key_data) as pkey_path:
        if cert_path and pkey_path:
            context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)
    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


@contextlib.contextmanager
def _as_file(
        path: Optional[str],
        data: Optional[Union[str, bytes]],
) -> Iterator[Optional[str]]:
    # No temporary files unless needed: the filesystem can be read-only.
    if path or data is None:
        yield path
        return
    with tempfile.NamedTemporaryFile(buffering=0) as f:
        f.write(decode_to_pem(data).encode('ascii'))
        yield f.name


def decode_to_pem(data: Union[str, bytes]) -> str:
    """ Accept the PEM data either as is or base64-encoded (as in kubeconfigs). """
    text = data.decode('ascii') if isinstance(data, bytes) else data
    if text.startswith('-----BEGIN '):
        return text
    return base64.b64decode(text).decode('ascii')
