"""
The only cluster objects the bridge works with: the apps' secrets.

These are single API calls without retries; the callers wrap them as needed.
"""
import urllib.parse
from typing import Any, Dict, Mapping

from typing_extensions import TypedDict

from kbridge._cogs.clients import api, auth
from kbridge._cogs.configs import configuration
from kbridge._cogs.helpers import typedefs

MERGE_PATCH_HEADERS = {'Content-Type': 'application/merge-patch+json'}


class RawSecret(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: Dict[str, Any]
    type: str
    data: Dict[str, str]  # base64-encoded on the wire.


def get_url(*, namespace: str, name: str) -> str:
    return '/api/v1/namespaces/{namespace}/secrets/{name}'.format(
        namespace=urllib.parse.quote(namespace, safe=''),
        name=urllib.parse.quote(name, safe=''),
    )


async def read_secret(
        *,
        context: auth.APIContext,
        settings: configuration.BridgeSettings,
        namespace: str,
        name: str,
        logger: typedefs.Logger,
) -> RawSecret:
    return await api.get(
        url=get_url(namespace=namespace, name=name),
        context=context,
        settings=settings,
        logger=logger,
    )


async def patch_secret(
        *,
        context: auth.APIContext,
        settings: configuration.BridgeSettings,
        namespace: str,
        name: str,
        patch: Mapping[str, Any],
        logger: typedefs.Logger,
) -> RawSecret:
    """
    Apply a JSON merge-patch to the secret, and return the patched secret.

    The atomicity of multi-key patches is defined by the cluster API, not here.
    """
    return await api.patch(
        url=get_url(namespace=namespace, name=name),
        headers=MERGE_PATCH_HEADERS,
        payload=dict(patch),
        context=context,
        settings=settings,
        logger=logger,
    )
