"""
All configuration flags, options, settings to fine-tune a bridge.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults). The defaults
that come from the process environment are read when the settings object
is created, not when the module is imported.
"""
import dataclasses
from typing import Iterable, Optional, Union

from kbridge._cogs.configs import environment


@dataclasses.dataclass
class BuildCtlSettings:
    """
    Settings for invoking the external build/control utility.
    """

    executable: str = 'buildctl'
    """
    The utility's name or path, prepended to every encoded command.
    It is passed to the shell as is, so it can contain extra fixed arguments.
    """

    shell: str = '/bin/bash'
    """
    The shell that interprets the command line (invoked as ``shell -c line``).
    """

    timeout: Optional[float] = None
    """
    How long (in seconds) a single invocation can run before it is killed.
    ``None`` means no limit: the call waits until the utility exits.
    """


@dataclasses.dataclass
class CachingSettings:

    instances_ttl: float = 30.0
    """
    For how long (in seconds) a listing of the app's instances is served
    from the memory before the utility is asked again.

    The listing is not invalidated on the app's updates: the stale listings
    are acceptable for this long.
    """


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the whole request to the cluster API (including the connection).
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for establishing the connection to the cluster API.
    """

    error_backoffs: Union[float, Iterable[float]] = (1, 2, 4)
    """
    Backoff intervals in case of transient errors of the cluster API.

    The number of attempts is the number of backoffs + 1 (the initial one).
    The last failure is re-raised to the caller as is.

    If needed, this value can be an arbitrary collection/iterator/object:
    only ``iter()`` is called on every new retrying cycle, no other protocols
    are required; but make sure that it is re-iterable for multiple uses.
    A single float means exactly one retry after that many seconds.

    To disable retries, set it to ``[]`` or ``()``.
    """

    retry_deadline: Optional[float] = None
    """
    The total time (in seconds) for all attempts of one retried call.
    If the next backoff would end beyond the deadline, the call escalates
    the error immediately instead of sleeping. ``None`` means no deadline.
    """


@dataclasses.dataclass
class SecretsSettings:

    namespace: Optional[str] = dataclasses.field(default_factory=environment.default_apps_namespace)
    """
    The namespace of the apps' secrets, used when the request does not name one.
    Defaults to the ``APPS_NAMESPACE`` environment variable.
    """

    suffix: str = '-secrets'
    """
    The app's secret is named as the app's name with this suffix (lowercased).
    """

    context_key: str = 'appSettings'
    """
    The key under which the decoded secret is stored in the request's items.
    """


@dataclasses.dataclass
class BridgeSettings:
    buildctl: BuildCtlSettings = dataclasses.field(default_factory=BuildCtlSettings)
    caching: CachingSettings = dataclasses.field(default_factory=CachingSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    secrets: SecretsSettings = dataclasses.field(default_factory=SecretsSettings)
