"""
The apps' deployment metadata, as stored by the build/control utility.

Every operation is exactly one invocation of the utility (or none at all),
so there is nothing to roll back on failures: the errors are escalated as is.
The only read that is cached is the instances listing; all other reads
and all the writes go to the utility every time.
"""
from typing import Iterable, List, Mapping, Optional, Union

from kbridge._cogs.configs import configuration
from kbridge._cogs.structs import metadata
from kbridge._core.buildctl import caching, encoding, errors, running
from kbridge._core.engines import loggers


class ControlPlaneBridge:
    """
    The apps' metadata operations on top of the build/control utility.

    The executor and the cache are injectable: by default, the utility is
    invoked in a subshell, and the cache is owned by this bridge only.
    """

    def __init__(
            self,
            *,
            settings: Optional[configuration.BridgeSettings] = None,
            executor: Optional[running.CommandExecutor] = None,
            cache: Optional[caching.InstanceCache] = None,
    ) -> None:
        super().__init__()
        self.settings = settings if settings is not None else configuration.BridgeSettings()
        self.executor = executor if executor is not None else running.ShellExecutor(self.settings.buildctl)
        self.cache = cache if cache is not None else caching.InstanceCache(ttl=self.settings.caching.instances_ttl)

    async def _run(self, app_name: str, command: str, description: str) -> str:
        return await running.run_command(
            command,
            description=description,
            executor=self.executor,
            logger=loggers.AppLogger(app_name),
        )

    async def read_property(self, app_name: str, prop: str, *, description: str) -> str:
        """ The raw read path: the utility's output as is, never cached. """
        command = encoding.get_property(app_name, prop)
        return await self._run(app_name, command, description)

    async def get_framework_version(self, app_name: str) -> str:
        return await self.read_property(app_name, 'linuxFxVersion',
                                        description="Retrieving framework info...")

    async def list_instances(self, app_name: str) -> List[metadata.PodInstance]:
        return await self.cache.get_or_fetch(app_name, self._fetch_instances)

    async def _fetch_instances(self, app_name: str) -> List[metadata.PodInstance]:
        output = await self.read_property(app_name, 'podInstances',
                                          description="Getting app instances...")
        data = encoding.decode_json_b64(output)
        try:
            return metadata.decode_instances(data)
        except ValueError as e:
            raise errors.DecodeError(str(e)) from e

    async def update_build_number(self, app_name: str, build_metadata: metadata.BuildMetadata) -> None:
        value = encoding.build_metadata_str(build_metadata)
        command = encoding.update_property(app_name, 'buildMetadata', value)
        await self._run(app_name, command, "Updating build version...")

    async def update_image_tag(self, app_name: str, image_tag: str) -> None:
        """
        Update the image of a custom container app.

        The tag is of the format ``registry/image:tag``.
        """
        command = encoding.update_property(app_name, 'appImage', image_tag)
        await self._run(app_name, command, "Updating image tag...")

    async def update_function_app_triggers(
            self,
            app_name: str,
            triggers: Optional[Iterable[metadata.ScaleTrigger]],
            build_metadata: Optional[metadata.BuildMetadata],
    ) -> None:
        patch = encoding.build_patch_document(triggers, build_metadata)
        if patch is None:
            loggers.AppLogger(app_name).debug("No triggers or build metadata to update; skipping.")
            return
        command = encoding.update_json(app_name, patch)
        await self._run(app_name, command, "Updating function app triggers...")

    async def create_trigger_authentication_ref(
            self,
            secret_name: str,
            key_to_param_map: Union[str, Mapping[str, str]],
            app_name: str,
    ) -> None:
        command = encoding.create_trigger_auth(secret_name, app_name, key_to_param_map)
        await self._run(app_name, command, "Creating Trigger Authentication...")
