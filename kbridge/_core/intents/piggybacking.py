"""
Credentials for the secrets' access, borrowed from the environment.

In the cluster, the bridge runs under its pod's service account, which must be
allowed to get & patch the apps' secrets. Outside of the cluster (the CLI on
a developer's machine), the current context of the kubeconfig is used instead,
as long as it authenticates with a static token or a client certificate.
Anything requiring an exec-plugin or an auth-provider is not supported.

.. seealso::
    :mod:`credentials` and :class:`auth.APIContext`.
"""
import os
from typing import Any, Iterable, List, Mapping, Optional

import yaml

from kbridge._cogs.helpers import typedefs
from kbridge._cogs.structs import credentials

SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'
IN_CLUSTER_SERVER = 'https://kubernetes.default.svc'
DEFAULT_KUBECONFIG = '~/.kube/config'


def _read_stripped(path: str) -> Optional[str]:
    if not os.path.exists(path):
        return None
    with open(path, encoding='utf-8') as f:
        return f.read().strip() or None


def login_with_service_account() -> Optional[credentials.ConnectionInfo]:
    """
    Use the token mounted into the pod; ``None`` when not in a cluster.
    """
    token = _read_stripped(os.path.join(SERVICE_ACCOUNT_DIR, 'token'))
    if token is None:
        return None
    namespace = _read_stripped(os.path.join(SERVICE_ACCOUNT_DIR, 'namespace'))
    ca_path = os.path.join(SERVICE_ACCOUNT_DIR, 'ca.crt')
    return credentials.ConnectionInfo(
        server=IN_CLUSTER_SERVER,
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token,
        default_namespace=namespace,
    )


def _kubeconfig_paths() -> List[str]:
    value = os.environ.get('KUBECONFIG', '')
    paths = [path.strip() for path in value.split(os.pathsep) if path.strip()]
    if not paths and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
        paths = [DEFAULT_KUBECONFIG]
    return [os.path.expanduser(path) for path in paths]


def _lookup(documents: Iterable[Mapping[str, Any]], section: str, field: str, name: Any) -> Mapping[str, Any]:
    # With several kubeconfigs, the first file that names the entry wins.
    for document in documents:
        for item in document.get(section) or []:
            if item.get('name') == name:
                return item.get(field) or {}
    raise credentials.LoginError(f"The kubeconfig has no {field} named {name!r}.")


def login_with_kubeconfig() -> Optional[credentials.ConnectionInfo]:
    """
    Use the current context of the kubeconfig(s); ``None`` when there are none.

    A configured but unreadable or unparseable kubeconfig is an error.
    """
    paths = _kubeconfig_paths()
    if not paths:
        return None

    documents: List[Mapping[str, Any]] = []
    for path in paths:
        with open(path, encoding='utf-8') as f:
            documents.append(yaml.safe_load(f.read()) or {})

    current = next((doc['current-context'] for doc in documents if doc.get('current-context')), None)
    if current is None:
        raise credentials.LoginError("The current context is not set in the kubeconfig.")
    context = _lookup(documents, 'contexts', 'context', current)
    cluster = _lookup(documents, 'clusters', 'cluster', context.get('cluster'))
    user = _lookup(documents, 'users', 'user', context.get('user'))

    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        token=user.get('token'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        default_namespace=context.get('namespace'),
    )


def login(*, logger: typedefs.Logger) -> credentials.ConnectionInfo:
    """
    The service account if in a cluster, otherwise the kubeconfig.
    """
    info = login_with_service_account()
    if info is not None:
        logger.debug("Using the pod's service account for the cluster API.")
        return info
    info = login_with_kubeconfig()
    if info is not None:
        logger.debug("Using the kubeconfig's current context for the cluster API.")
        return info
    raise credentials.LoginError("Cannot login to the cluster API: "
                                 "neither a service account, nor a kubeconfig is found.")
