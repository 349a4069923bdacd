"""
The apps' settings, as stored in the apps' secrets in the cluster.

On every inbound request, the app's secret is read and its decoded content
is put into the request's storage, so that the rest of the request pipeline
sees the app's settings. The secrets can also be patched (merge-patch),
e.g. when the settings are changed via the hosting runtime.

Both the reading and the patching are retried on transient errors;
all other errors, and the errors that outlived the retries, are escalated.
"""
import base64
import binascii
import dataclasses
from typing import Any, Dict, Mapping, MutableMapping, Optional, Protocol

from kbridge._cogs.clients import auth, retries, secrets
from kbridge._cogs.configs import configuration
from kbridge._cogs.helpers import typedefs
from kbridge._cogs.structs import identities
from kbridge._core.buildctl import errors
from kbridge._core.engines import loggers

SecretMap = Dict[str, str]


class RequestLike(Protocol):
    """
    Anything that has the request headers and the request-scoped storage.

    Both :class:`RequestContext` and ``aiohttp.web.Request`` match it.
    """
    @property
    def headers(self) -> Mapping[str, str]: ...

    def __getitem__(self, key: str) -> Any: ...

    def __setitem__(self, key: str, value: Any) -> None: ...


@dataclasses.dataclass
class RequestContext:
    """ The request-scoped carrier, for the hosting runtimes without their own. """
    headers: Mapping[str, str]
    items: MutableMapping[str, Any] = dataclasses.field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.items[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.items[key] = value


def get_secret_name(app_name: str, *, settings: configuration.BridgeSettings) -> str:
    # Secret names are always lowercase in the cluster (RFC 1123).
    return f'{app_name}{settings.secrets.suffix}'.lower()


def decode_secret_data(data: Optional[Mapping[str, str]]) -> SecretMap:
    """
    Decode the secret's values (base64 on the wire) into the UTF-8 text.
    """
    result: SecretMap = {}
    for key, value in (data or {}).items():
        try:
            result[key] = base64.b64decode(value, validate=True).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            raise errors.DecodeError(f"The secret's value for {key!r} is not UTF-8 text.") from e
    return result


async def fetch_app_settings(
        identity: identities.AppIdentity,
        *,
        context: auth.APIContext,
        settings: configuration.BridgeSettings,
        logger: typedefs.Logger,
) -> SecretMap:
    namespace = identity.namespace or settings.secrets.namespace or context.default_namespace
    if not namespace:
        raise ValueError(f"Cannot detect the namespace of the app {identity.name!r}.")
    name = get_secret_name(identity.name, settings=settings)
    secret = await retries.with_retry(
        lambda: secrets.read_secret(
            context=context,
            settings=settings,
            namespace=namespace,
            name=name,
            logger=logger,
        ),
        what=f"Reading the secret {namespace}/{name}",
        settings=settings,
        logger=logger,
    )
    return decode_secret_data(secret.get('data'))


async def populate_app_settings(
        request: RequestLike,
        *,
        context: auth.APIContext,
        settings: Optional[configuration.BridgeSettings] = None,
) -> None:
    """
    Put the app's settings into the request's storage.

    The app is identified by the request's headers. If it is not identified,
    the request fails before any cluster API calls are made.
    """
    settings = settings if settings is not None else configuration.BridgeSettings()
    identity = identities.identify(request.headers)
    logger = loggers.AppLogger(identity)
    try:
        app_settings = await fetch_app_settings(identity, context=context, settings=settings, logger=logger)
    except Exception as e:
        logger.error(f"Failed to read the app settings: {e!r}")
        raise
    request[settings.secrets.context_key] = app_settings


def get_app_settings(
        request: RequestLike,
        *,
        settings: Optional[configuration.BridgeSettings] = None,
) -> SecretMap:
    settings = settings if settings is not None else configuration.BridgeSettings()
    try:
        return request[settings.secrets.context_key]
    except KeyError:
        return {}


async def patch_secret(
        context: auth.APIContext,
        secret_name: str,
        namespace: str,
        data: Mapping[str, str],
        *,
        settings: Optional[configuration.BridgeSettings] = None,
        logger: Optional[typedefs.Logger] = None,
) -> None:
    """
    Merge the key-values into the secret's content (as text, not base64).

    The keys not mentioned are left intact. Whether a multi-key patch
    is applied atomically is up to the cluster API.
    """
    settings = settings if settings is not None else configuration.BridgeSettings()
    logger = logger if logger is not None else loggers.apps_logger
    patch = {'stringData': dict(data)}
    try:
        await retries.with_retry(
            lambda: secrets.patch_secret(
                context=context,
                settings=settings,
                namespace=namespace,
                name=secret_name,
                patch=patch,
                logger=logger,
            ),
            what=f"Patching the secret {namespace}/{secret_name}",
            settings=settings,
            logger=logger,
        )
    except Exception as e:
        logger.error(f"Error in adding secrets to the secret {secret_name} "
                     f"in namespace {namespace}: {e!r}")
        raise
