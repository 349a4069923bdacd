"""
The payloads exchanged with the build/control utility.

Most of them are opaque to the bridge: they are either received from
the utility and returned to the caller (instances), or received from the caller
and forwarded to the utility (triggers). Only the build metadata is interpreted,
since it is folded into a composite value on the command line.
"""
import dataclasses
from typing import Any, Dict, List, Mapping

# Backend-defined records. The bridge only transports them, it never looks inside.
PodInstance = Dict[str, Any]
ScaleTrigger = Mapping[str, Any]

# A patch for the app's spec, as understood by the utility's ``updatejson`` verb.
PatchDocument = Dict[str, Any]


@dataclasses.dataclass(frozen=True)
class BuildMetadata:
    app_name: str
    build_version: str
    extras: Mapping[str, Any] = dataclasses.field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        # The known fields win over the same-named extras.
        return dict(self.extras, appName=self.app_name, buildVersion=self.build_version)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'BuildMetadata':
        extras = {key: val for key, val in data.items() if key not in ('appName', 'buildVersion')}
        return cls(
            app_name=data['appName'],
            build_version=data['buildVersion'],
            extras=extras,
        )


def decode_instances(data: Any) -> List[PodInstance]:
    """
    Validate the decoded listing only as much as needed to transport it.
    """
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError(f"Instances must be a list of objects, got {type(data).__name__}.")
    return data
