"""
Logging of the bridge's activities, per app where applicable.

Every message about a specific app carries the app's reference (name, kind,
namespace) in the log record. The formatters render it either as a prefix
of the message (in text logs), or as a separate field (in JSON logs).
"""
import copy
import enum
import logging
from typing import Any, MutableMapping, Optional, Tuple, Union

import pythonjsonlogger.core
import pythonjsonlogger.json

from kbridge._cogs.structs import identities

DEFAULT_JSON_REFKEY = 'app'
""" A key for app references in JSON logs, as seen by the log parsers. """


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = enum.auto()


class AppFormatter(logging.Formatter):
    pass


class AppTextFormatter(AppFormatter, logging.Formatter):
    pass


class AppJsonFormatter(AppFormatter, pythonjsonlogger.json.JsonFormatter):  # type: ignore
    def __init__(
            self,
            *args: Any,
            refkey: Optional[str] = None,
            **kwargs: Any,
    ) -> None:
        # Avoid type checking, as the args are not in the parent consructor.
        reserved_attrs = kwargs.pop('reserved_attrs', pythonjsonlogger.core.RESERVED_ATTRS)
        reserved_attrs = set(reserved_attrs)
        reserved_attrs |= {'app_ref'}
        kwargs.update(reserved_attrs=reserved_attrs)
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self._refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: MutableMapping[str, object],
            record: logging.LogRecord,
            message_dict: MutableMapping[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self._refkey and hasattr(record, 'app_ref'):
            ref = getattr(record, 'app_ref')
            log_record[self._refkey] = ref

        if 'severity' not in log_record:
            log_record['severity'] = (
                "debug" if record.levelno <= logging.DEBUG else
                "info" if record.levelno <= logging.INFO else
                "warn" if record.levelno <= logging.WARNING else
                "error" if record.levelno <= logging.ERROR else
                "fatal")


class AppPrefixingMixin(AppFormatter):
    def format(self, record: logging.LogRecord) -> str:
        if hasattr(record, 'app_ref'):
            ref = getattr(record, 'app_ref')
            namespace = ref.get('namespace') or ''
            name = ref.get('name') or ''
            prefix = f"[{namespace}/{name}]" if namespace else f"[{name}]"
            record = copy.copy(record)  # shallow
            record.msg = f"{prefix} {record.msg}"
        return super().format(record)


class AppPrefixingTextFormatter(AppPrefixingMixin, AppTextFormatter):
    pass


class AppPrefixingJsonFormatter(AppPrefixingMixin, AppJsonFormatter):
    pass


class AppLogger(logging.LoggerAdapter):
    """
    A logger/adapter to carry the app identifiers for formatting.

    Constructed per app in the bridge's operations. The app can be given
    either as a full identity (from the request) or by its name only.
    """

    def __init__(
            self,
            app: Union[identities.AppIdentity, str],
            *,
            logger: Optional[logging.Logger] = None,
    ) -> None:
        identity = app if isinstance(app, identities.AppIdentity) else identities.AppIdentity(app)
        super().__init__(logger if logger is not None else apps_logger, dict(
            app_ref=dict(identity.as_ref()),
        ))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> Tuple[str, MutableMapping[str, Any]]:
        # Native logging overwrites the message's extra with the adapter's extra.
        # We merge them, so that both message's & adapter's extras are available.
        kwargs["extra"] = dict(self.extra, **kwargs.get('extra', {}))
        return msg, kwargs


apps_logger = logging.getLogger('kbridge.apps')


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: Union[LogFormat, str] = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> None:
    log_level = 'DEBUG' if debug or verbose else 'WARNING' if quiet else 'INFO'
    formatter = make_formatter(log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey)
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.addHandler(handler)
    logger.setLevel(log_level)

    # Prevent the low-level logging unless in the debug mode. Keep only the bridge's messages.
    # For no-propagation loggers, add a dummy null handler to prevent printing the messages.
    for name in ['asyncio']:
        logger = logging.getLogger(name)
        logger.propagate = bool(debug)
        if not debug:
            logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: Union[LogFormat, str] = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> AppFormatter:
    log_prefix = log_prefix if log_prefix is not None else bool(log_format is not LogFormat.JSON)
    if log_format is LogFormat.JSON:
        if log_prefix:
            return AppPrefixingJsonFormatter(refkey=log_refkey)
        else:
            return AppJsonFormatter(refkey=log_refkey)
    elif isinstance(log_format, LogFormat):
        if log_prefix:
            return AppPrefixingTextFormatter(log_format.value)
        else:
            return AppTextFormatter(log_format.value)
    elif isinstance(log_format, str):
        if log_prefix:
            return AppPrefixingTextFormatter(log_format)
        else:
            return AppTextFormatter(log_format)
    else:
        raise ValueError(f"Unsupported log format: {log_format!r}")
