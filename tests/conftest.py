import dataclasses
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import aiohttp.test_utils
import aiohttp.web
import pytest

from kbridge._cogs.clients.auth import APIContext
from kbridge._cogs.configs.configuration import BridgeSettings
from kbridge._cogs.structs.credentials import ConnectionInfo
from kbridge._core.engines.loggers import AppFormatter


@pytest.fixture(autouse=True)
def _no_env_toggles(monkeypatch):
    """ The process-wide env vars must not leak into the tests' settings. """
    for name in ['APPS_NAMESPACE', 'K8SE_BUILD_SERVICE', 'IS_BUILD_JOB', 'USE_BUILD_JOB']:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def settings():
    settings = BridgeSettings()
    settings.networking.error_backoffs = [0, 0, 0]
    return settings


@pytest.fixture()
def logger():
    return logging.getLogger('kbridge.test.fake.logger')


@pytest.fixture(autouse=True)
def _restore_root_handlers():
    """ The CLI commands configure the logging; undo it after every test. """
    logger = logging.getLogger()
    asyncio_logger = logging.getLogger('asyncio')
    level = logger.level
    asyncio_handlers = asyncio_logger.handlers[:]
    asyncio_propagate = asyncio_logger.propagate
    yield
    logger.handlers[:] = [
        handler for handler in logger.handlers
        if not isinstance(handler.formatter, AppFormatter)
    ]
    logger.setLevel(level)
    asyncio_logger.handlers[:] = asyncio_handlers
    asyncio_logger.propagate = asyncio_propagate


#
# A scripted replacement of the build/control utility.
#

class FakeExecutor:
    """
    Records the command lines and replies with the scripted outputs.

    The outputs are consumed in order; the last one is repeated forever.
    An exception instance in the script is raised instead of replying.
    """

    def __init__(self, *outputs: Any) -> None:
        super().__init__()
        self.outputs: List[Any] = list(outputs) or [('', '')]
        self.commands: List[str] = []

    def reply(self, *outputs: Any) -> None:
        self.outputs[:] = list(outputs)

    async def __call__(self, command: str) -> Tuple[str, str]:
        self.commands.append(command)
        output = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(output, BaseException):
            raise output
        return output


@pytest.fixture()
def executor():
    return FakeExecutor()


#
# An in-process fake of the cluster API: only what the bridge needs of it.
#

@dataclasses.dataclass
class RecordedRequest:
    method: str
    path: str
    headers: Dict[str, str]
    body: Optional[Any]


class FakeCluster:

    def __init__(self) -> None:
        super().__init__()
        self.url: str = ''
        self.requests: List[RecordedRequest] = []
        self.responses: Dict[Tuple[str, str], List[Tuple[int, Any]]] = {}

    def __len__(self) -> int:
        return len(self.requests)

    def add(self, method: str, path: str, payload: Any = None, status: int = 200) -> 'FakeCluster':
        self.responses.setdefault((method.upper(), path), []).append((status, payload))
        return self

    async def handle(self, request: aiohttp.web.Request) -> aiohttp.web.Response:
        text = await request.text()
        self.requests.append(RecordedRequest(
            method=request.method,
            path=request.path,
            headers=dict(request.headers),
            body=json.loads(text) if text else None,
        ))
        queue = self.responses.get((request.method, request.path))
        if not queue:
            status, payload = 404, {'kind': 'Status', 'code': 404, 'message': 'not found'}
        else:
            status, payload = queue.pop(0) if len(queue) > 1 else queue[0]
        return aiohttp.web.json_response(payload if payload is not None else {}, status=status)


@pytest.fixture()
async def cluster():
    fake = FakeCluster()
    app = aiohttp.web.Application()
    app.router.add_route('*', '/{tail:.*}', fake.handle)
    server = aiohttp.test_utils.TestServer(app)
    await server.start_server()
    fake.url = f'http://{server.host}:{server.port}'
    try:
        yield fake
    finally:
        await server.close()


@pytest.fixture()
async def context(cluster):
    info = ConnectionInfo(server=cluster.url, default_namespace='ctx-ns')
    async with APIContext(info) as context:
        yield context


#
# Helpers for the logging checks.
#

@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    caplog.set_level(logging.DEBUG)

    def assert_logs_fn(patterns=(), prohibited=()):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                if re.search(pattern, message):
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")

            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
