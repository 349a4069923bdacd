import asyncio
import dataclasses
import functools
import json
from typing import IO, Any, Awaitable, Callable, Coroutine, Dict, Optional, Sequence, TypeVar

import aiohttp
import click
import yaml

from kbridge._cogs.clients import auth, errors as api_errors
from kbridge._cogs.configs import configuration
from kbridge._cogs.structs import credentials, identities, metadata
from kbridge._core.bridging import appsettings, deployments
from kbridge._core.buildctl import errors, running
from kbridge._core.engines import loggers
from kbridge._core.intents import piggybacking

_T = TypeVar('_T')


@dataclasses.dataclass()
class CLIControls:
    """ Controls, which are impossible to pass via CLI (e.g. in embedding or in tests). """
    settings: Optional[configuration.BridgeSettings] = None
    executor: Optional[running.CommandExecutor] = None
    connection: Optional[credentials.ConnectionInfo] = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


def buildctl_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to construct the bridge in all buildctl commands the same way. """
    @click.option('--buildctl', 'executable', type=str, envvar='KBRIDGE_BUILDCTL')
    @click.option('--buildctl-timeout', 'timeout', type=float)
    @click.make_pass_decorator(CLIControls, ensure=True)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(__controls: CLIControls,
                executable: Optional[str],
                timeout: Optional[float],
                *args: Any, **kwargs: Any) -> Any:
        settings = __controls.settings if __controls.settings is not None else configuration.BridgeSettings()
        if executable:
            settings.buildctl.executable = executable
        if timeout is not None:
            settings.buildctl.timeout = timeout
        bridge = deployments.ControlPlaneBridge(settings=settings, executor=__controls.executor)
        return fn(bridge, *args, **kwargs)

    return wrapper


def _parse_pairs(ctx: click.Context, param: click.Parameter, values: Sequence[str]) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for value in values:
        key, sep, val = value.partition('=')
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got {value!r}.", ctx=ctx, param=param)
        result[key] = val
    return result


def _execute(coro: Coroutine[Any, Any, _T]) -> _T:
    """ Run the bridge's coroutine, and present its known failures as CLI errors. """
    try:
        return asyncio.run(coro)
    except errors.ExternalToolError as e:
        raise click.ClickException(f"buildctl failed: {e.stderr.strip()}")
    except (errors.DecodeError, api_errors.APIError, credentials.LoginError,
            identities.MissingIdentityError) as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")
    except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
        raise click.ClickException(f"Cannot reach the cluster API: {e!r}")
    except ValueError as e:
        raise click.ClickException(str(e))


@click.version_option(prog_name='kbridge')
@click.group(name='kbridge', context_settings=dict(
    auto_envvar_prefix='KBRIDGE',
))
def main() -> None:
    pass


@main.command('framework-version')
@logging_options
@buildctl_options
@click.argument('app_name')
def framework_version(bridge: deployments.ControlPlaneBridge, app_name: str) -> None:
    """ Show the app's framework & version (as is). """
    click.echo(_execute(bridge.get_framework_version(app_name)), nl=False)


@main.command()
@logging_options
@buildctl_options
@click.argument('app_name')
def instances(bridge: deployments.ControlPlaneBridge, app_name: str) -> None:
    """ List the app's running instances as JSON. """
    result = _execute(bridge.list_instances(app_name))
    click.echo(json.dumps(result, indent=2))


@main.command('update-build')
@logging_options
@buildctl_options
@click.option('-b', '--build-version', required=True)
@click.option('-x', '--extra', 'extras', multiple=True, callback=_parse_pairs,
              help="Extra build metadata as key=value.")
@click.argument('app_name')
def update_build(
        bridge: deployments.ControlPlaneBridge,
        app_name: str,
        build_version: str,
        extras: Dict[str, str],
) -> None:
    """ Set the app's build version (with the build metadata). """
    build_metadata = metadata.BuildMetadata(app_name=app_name, build_version=build_version, extras=extras)
    _execute(bridge.update_build_number(app_name, build_metadata))


@main.command('update-image')
@logging_options
@buildctl_options
@click.argument('app_name')
@click.argument('image_tag')
def update_image(bridge: deployments.ControlPlaneBridge, app_name: str, image_tag: str) -> None:
    """ Set the image of a custom container app (registry/image:tag). """
    _execute(bridge.update_image_tag(app_name, image_tag))


@main.command('update-triggers')
@logging_options
@buildctl_options
@click.option('-t', '--triggers', 'triggers_file', type=click.File('r'),
              help="A YAML or JSON file with the list of the scale triggers.")
@click.option('-b', '--build-version')
@click.argument('app_name')
def update_triggers(
        bridge: deployments.ControlPlaneBridge,
        app_name: str,
        triggers_file: Optional[IO[str]],
        build_version: Optional[str],
) -> None:
    """ Set the function app's scale triggers and/or its build metadata. """
    triggers = yaml.safe_load(triggers_file) if triggers_file is not None else None
    if triggers is not None and not isinstance(triggers, list):
        raise click.BadParameter("The triggers must be a list.", param_hint='--triggers')
    build_metadata = None
    if build_version is not None:
        build_metadata = metadata.BuildMetadata(app_name=app_name, build_version=build_version)
    _execute(bridge.update_function_app_triggers(app_name, triggers, build_metadata))


@main.command('create-trigger-auth')
@logging_options
@buildctl_options
@click.option('-p', '--param', 'params', multiple=True, callback=_parse_pairs,
              help="A mapping of the secret's key to the trigger's parameter as key=param.")
@click.argument('app_name')
@click.argument('secret_name')
def create_trigger_auth(
        bridge: deployments.ControlPlaneBridge,
        app_name: str,
        secret_name: str,
        params: Dict[str, str],
) -> None:
    """ Create a trigger authentication bound to the secret. """
    _execute(bridge.create_trigger_authentication_ref(secret_name, params, app_name))


async def _with_context(
        controls: CLIControls,
        fn: Callable[[auth.APIContext, configuration.BridgeSettings], Awaitable[_T]],
) -> _T:
    settings = controls.settings if controls.settings is not None else configuration.BridgeSettings()
    info = controls.connection
    if info is None:
        info = piggybacking.login(logger=loggers.apps_logger)
    async with auth.APIContext(info) as context:
        return await fn(context, settings)


@main.command('app-settings')
@logging_options
@click.option('-n', '--namespace', type=str)
@click.option('--show-values', is_flag=True)
@click.argument('app_name')
@click.make_pass_decorator(CLIControls, ensure=True)
def app_settings(
        __controls: CLIControls,
        app_name: str,
        namespace: Optional[str],
        show_values: bool,
) -> None:
    """ Show the app's settings from its secret (only the keys by default). """
    headers = {identities.APP_NAME_HEADER: app_name}
    if namespace:
        headers[identities.APP_NAMESPACE_HEADER] = namespace
    request = appsettings.RequestContext(headers=headers)

    async def fn(context: auth.APIContext, settings: configuration.BridgeSettings) -> Dict[str, str]:
        await appsettings.populate_app_settings(request, context=context, settings=settings)
        return appsettings.get_app_settings(request, settings=settings)

    result = _execute(_with_context(__controls, fn))
    for key, value in sorted(result.items()):
        click.echo(f'{key}={value}' if show_values else key)


@main.command('patch-secret')
@logging_options
@click.option('-n', '--namespace', type=str)
@click.argument('secret_name')
@click.argument('pairs', nargs=-1, required=True, callback=_parse_pairs)
@click.make_pass_decorator(CLIControls, ensure=True)
def patch_secret(
        __controls: CLIControls,
        secret_name: str,
        namespace: Optional[str],
        pairs: Dict[str, str],
) -> None:
    """ Merge the key=value pairs into the secret. """

    async def fn(context: auth.APIContext, settings: configuration.BridgeSettings) -> None:
        ns = namespace or settings.secrets.namespace or context.default_namespace
        if not ns:
            raise click.UsageError("The namespace is not specified and cannot be detected.")
        await appsettings.patch_secret(context, secret_name, ns, pairs, settings=settings)

    _execute(_with_context(__controls, fn))
