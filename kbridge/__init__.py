"""
The main kbridge module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the package's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kbridge._cogs.clients.auth import (
    APIContext,
)
from kbridge._cogs.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APITooManyRequestsError,
)
from kbridge._cogs.clients.retries import (
    TRANSIENT_ERRORS,
    with_retry,
)
from kbridge._cogs.configs.configuration import (
    BridgeSettings,
    BuildCtlSettings,
    CachingSettings,
    NetworkingSettings,
    SecretsSettings,
)
from kbridge._cogs.configs.environment import (
    is_truthy,
    is_platform_environment,
    is_build_job,
    use_build_job,
    runs_in_build_job,
    default_apps_namespace,
)
from kbridge._cogs.helpers.typedefs import (
    Logger,
)
from kbridge._cogs.helpers.versions import (
    version as __version__,
)
from kbridge._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from kbridge._cogs.structs.identities import (
    AppIdentity,
    MissingIdentityError,
    identify,
)
from kbridge._cogs.structs.metadata import (
    BuildMetadata,
    PatchDocument,
    PodInstance,
    ScaleTrigger,
)
from kbridge._core.bridging.appsettings import (
    RequestContext,
    SecretMap,
    get_app_settings,
    populate_app_settings,
    patch_secret,
)
from kbridge._core.bridging.deployments import (
    ControlPlaneBridge,
)
from kbridge._core.buildctl.caching import (
    InstanceCache,
)
from kbridge._core.buildctl.encoding import (
    build_command,
    build_metadata_str,
    parse_build_metadata_str,
    build_patch_document,
)
from kbridge._core.buildctl.errors import (
    ExternalToolError,
    ExternalToolTimeoutError,
    DecodeError,
)
from kbridge._core.buildctl.running import (
    CommandExecutor,
    ShellExecutor,
    run_command,
)
from kbridge._core.engines.loggers import (
    AppLogger,
    LogFormat,
    configure as configure_logging,
)
from kbridge._core.intents.piggybacking import (
    login,
    login_with_kubeconfig,
    login_with_service_account,
)

__all__ = [
    'APIContext',
    'APIError',
    'APIClientError',
    'APIServerError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'APIConflictError',
    'APITooManyRequestsError',
    'TRANSIENT_ERRORS',
    'with_retry',
    'BridgeSettings',
    'BuildCtlSettings',
    'CachingSettings',
    'NetworkingSettings',
    'SecretsSettings',
    'is_truthy',
    'is_platform_environment',
    'is_build_job',
    'use_build_job',
    'runs_in_build_job',
    'default_apps_namespace',
    'Logger',
    'LoginError',
    'ConnectionInfo',
    'AppIdentity',
    'MissingIdentityError',
    'identify',
    'BuildMetadata',
    'PatchDocument',
    'PodInstance',
    'ScaleTrigger',
    'RequestContext',
    'SecretMap',
    'get_app_settings',
    'populate_app_settings',
    'patch_secret',
    'ControlPlaneBridge',
    'InstanceCache',
    'build_command',
    'build_metadata_str',
    'parse_build_metadata_str',
    'build_patch_document',
    'ExternalToolError',
    'ExternalToolTimeoutError',
    'DecodeError',
    'CommandExecutor',
    'ShellExecutor',
    'run_command',
    'AppLogger',
    'LogFormat',
    'configure_logging',
    'login',
    'login_with_kubeconfig',
    'login_with_service_account',
]
