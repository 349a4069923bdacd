"""
Encoding of the bridge's requests into the utility's command lines.

A command line is a verb followed by the named arguments::

    createTriggerAuth --secretName sec1 --appName app1 --authRefSecretKeyToParamMap '{"conn":"connection"}'

Every value is quoted as a single shell token, so that JSON and base64 payloads
survive the shell intact. This module is the only place where command lines
are built; all the callers go through :func:`build_command` in the end.

All the functions here are pure: no i/o, no state, the same output for the same input.
The trigger authentication's map is sorted by keys, so the equal maps give the same
line; the JSON patches keep the keys in the order they were built in.
"""
import base64
import binascii
import enum
import json
import re
import shlex
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from kbridge._cogs.structs import metadata
from kbridge._core.buildctl import errors


class Verb(str, enum.Enum):
    GET = 'get'
    UPDATE = 'update'
    UPDATE_JSON = 'updatejson'
    CREATE_TRIGGER_AUTH = 'createTriggerAuth'


class Arg(str, enum.Enum):
    APP_NAME = 'appName'
    PROPERTY = 'prop'
    PROPERTY_VALUE = 'propValue'
    JSON_TO_PATCH = 'jsonToPatch'
    SECRET_NAME = 'secretName'
    KEY_TO_PARAM_MAP = 'authRefSecretKeyToParamMap'


Argument = Tuple[Union[Arg, str], str]

# Verbs & argument names are put into the command line unquoted.
_NAME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9_-]*$')


def _token(name: Union[Verb, Arg, str]) -> str:
    value = name.value if isinstance(name, enum.Enum) else name
    if not _NAME_RE.match(value):
        raise ValueError(f"Unsafe verb or argument name: {value!r}")
    return value


def build_command(verb: Union[Verb, str], arguments: Iterable[Argument] = ()) -> str:
    tokens = [_token(verb)]
    for name, value in arguments:
        if not isinstance(value, str):
            raise TypeError(f"Argument {name!r} must be a string, got {type(value).__name__}.")
        tokens.append(f'--{_token(name)}')
        tokens.append(shlex.quote(value))
    return ' '.join(tokens)


def get_property(app_name: str, prop: str) -> str:
    return build_command(Verb.GET, [
        (Arg.APP_NAME, app_name),
        (Arg.PROPERTY, prop),
    ])


def update_property(app_name: str, prop: str, value: str) -> str:
    return build_command(Verb.UPDATE, [
        (Arg.APP_NAME, app_name),
        (Arg.PROPERTY, prop),
        (Arg.PROPERTY_VALUE, value),
    ])


def update_json(app_name: str, patch: metadata.PatchDocument) -> str:
    return build_command(Verb.UPDATE_JSON, [
        (Arg.APP_NAME, app_name),
        (Arg.JSON_TO_PATCH, encode_json_b64(patch)),
    ])


def create_trigger_auth(
        secret_name: str,
        app_name: str,
        key_to_param_map: Union[str, Mapping[str, str]],
) -> str:
    if not isinstance(key_to_param_map, str):
        key_to_param_map = json.dumps(dict(key_to_param_map), separators=(',', ':'), sort_keys=True)
    return build_command(Verb.CREATE_TRIGGER_AUTH, [
        (Arg.SECRET_NAME, secret_name),
        (Arg.APP_NAME, app_name),
        (Arg.KEY_TO_PARAM_MAP, key_to_param_map),
    ])


def encode_json_b64(data: Any) -> str:
    text = json.dumps(data, separators=(',', ':'), ensure_ascii=False)
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def decode_json_b64(text: str) -> Any:
    """
    Decode the base64-encoded UTF-8 JSON, as printed by the utility.

    Whitespace (e.g. the trailing newline of the output) is ignored;
    everything else outside of the base64 alphabet is an error.
    """
    try:
        data = base64.b64decode(''.join(text.split()), validate=True)
        return json.loads(data.decode('utf-8'))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise errors.DecodeError(f"Malformed base64-encoded JSON: {text[:100]!r}") from e


def build_metadata_str(build_metadata: metadata.BuildMetadata) -> str:
    """
    Fold the build metadata into one value: ``appName|buildVersion|base64(json)``.
    """
    encoded = encode_json_b64(build_metadata.as_dict())
    return f'{build_metadata.app_name}|{build_metadata.build_version}|{encoded}'


def parse_build_metadata_str(value: str) -> metadata.BuildMetadata:
    # Only the trailing segment is authoritative; the app name can contain anything.
    _, sep, encoded = value.rpartition('|')
    if not sep:
        raise errors.DecodeError(f"Not a composite build metadata value: {value[:100]!r}")
    data = decode_json_b64(encoded)
    try:
        return metadata.BuildMetadata.from_dict(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise errors.DecodeError(f"Incomplete build metadata: {data!r}") from e


def build_patch_document(
        triggers: Optional[Iterable[metadata.ScaleTrigger]],
        build_metadata: Optional[metadata.BuildMetadata],
) -> Optional[metadata.PatchDocument]:
    """
    Build a patch of the app's spec with only the populated branches.

    ``None`` means there is nothing to patch, and the utility must not be called.
    """
    trigger_list = [dict(trigger) for trigger in triggers or []]
    if not trigger_list and build_metadata is None:
        return None

    patch_spec: metadata.PatchDocument = {}
    if trigger_list:
        patch_spec['triggerOptions'] = {'triggers': trigger_list}
    if build_metadata is not None:
        patch_spec['code'] = {'packageRef': {'buildMetadata': build_metadata_str(build_metadata)}}
    return {'patchSpec': patch_spec}
