"""
The identity of an app as carried by the inbound request's metadata.

The hosting runtime's front-end passes the app's name, kind, and namespace
in the request headers. The identity is derived once per request and is
discarded with the request.
"""
import dataclasses
from typing import Mapping, Optional

import multidict

APP_NAME_HEADER = 'K8SE_APP_NAME'
APP_KIND_HEADER = 'K8SE_APP_KIND'
APP_NAMESPACE_HEADER = 'K8SE_APP_NAMESPACE'

# The kind is only needed for the logic apps; web apps & function apps fall back to this.
DEFAULT_APP_KIND = 'kubeapp'


class MissingIdentityError(PermissionError):
    """
    Raised when the request does not identify the app it is addressed to.

    This is an authorization-class failure: the request layer should respond
    with the HTTP status as stored in the error.
    """
    status: int = 401


@dataclasses.dataclass(frozen=True)
class AppIdentity:
    name: str
    kind: str = DEFAULT_APP_KIND
    namespace: Optional[str] = None  # None means "use the process-wide default".

    def as_ref(self) -> Mapping[str, Optional[str]]:
        return dict(name=self.name, kind=self.kind, namespace=self.namespace)


def identify(headers: Mapping[str, str]) -> AppIdentity:
    """
    Derive the app's identity from the request headers (case-insensitively).
    """
    ciheaders: Mapping[str, str]
    if isinstance(headers, (multidict.CIMultiDict, multidict.CIMultiDictProxy)):
        ciheaders = headers
    else:
        ciheaders = multidict.CIMultiDict(headers)
    name = ciheaders.get(APP_NAME_HEADER, '').strip()
    kind = ciheaders.get(APP_KIND_HEADER, '').strip()
    namespace = ciheaders.get(APP_NAMESPACE_HEADER, '').strip()
    if not name:
        raise MissingIdentityError("Couldn't recognize the app name in the request.")
    return AppIdentity(
        name=name,
        kind=kind or DEFAULT_APP_KIND,
        namespace=namespace or None,
    )
