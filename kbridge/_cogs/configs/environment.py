"""
Toggles of the hosting environment, as set in the process's env vars.

All boolean toggles are interpreted with one and the same predicate:
:func:`is_truthy`. The only exception is the platform's marker variable,
which contains the build service's address rather than a boolean.
"""
import os
from typing import Mapping, Optional

PLATFORM_ENV_VAR = 'K8SE_BUILD_SERVICE'
IS_BUILD_JOB_ENV_VAR = 'IS_BUILD_JOB'
USE_BUILD_JOB_ENV_VAR = 'USE_BUILD_JOB'
APPS_NAMESPACE_ENV_VAR = 'APPS_NAMESPACE'

TRUTHY_VALUES = frozenset({'1', 'true'})


def is_truthy(value: Optional[str]) -> bool:
    """
    Check if the string looks like a "true" value: ``1`` or ``true`` in any case.

    Everything else is false, including ``None``, empty strings, ``yes``, ``on``.
    """
    return value is not None and value.strip().lower() in TRUTHY_VALUES


def is_platform_environment(environ: Optional[Mapping[str, str]] = None) -> bool:
    environ = os.environ if environ is None else environ
    return bool(environ.get(PLATFORM_ENV_VAR))


def is_build_job(environ: Optional[Mapping[str, str]] = None) -> bool:
    environ = os.environ if environ is None else environ
    return is_truthy(environ.get(IS_BUILD_JOB_ENV_VAR))


def use_build_job(environ: Optional[Mapping[str, str]] = None) -> bool:
    environ = os.environ if environ is None else environ
    return is_truthy(environ.get(USE_BUILD_JOB_ENV_VAR))


def runs_in_build_job(environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    Check if the process serves a build job (either runs as one, or delegates to one).

    In that case, the hosting runtime takes the per-request environment
    rather than the process-wide one.
    """
    return is_build_job(environ) or use_build_job(environ)


def default_apps_namespace(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    environ = os.environ if environ is None else environ
    return environ.get(APPS_NAMESPACE_ENV_VAR) or None
