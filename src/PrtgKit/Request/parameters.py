# === NAVMAP v1 ===
# {
#   "module": "PrtgKit.Request.parameters",
#   "purpose": "Request descriptors describing a PRTG API function call.",
#   "sections": [
#     {
#       "id": "functions",
#       "name": "XmlFunction / JsonFunction / CsvFunction / HtmlFunction / CommandFunction",
#       "anchor": "class-functions",
#       "kind": "class"
#     },
#     {
#       "id": "customparameter",
#       "name": "CustomParameter",
#       "anchor": "class-customparameter",
#       "kind": "class"
#     },
#     {
#       "id": "parameters",
#       "name": "Parameters",
#       "anchor": "class-parameters",
#       "kind": "class"
#     },
#     {
#       "id": "multitargetparameters",
#       "name": "MultiTargetParameters",
#       "anchor": "class-multitargetparameters",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Request descriptors describing a PRTG API function call.

A descriptor names the API endpoint (one of the ``*Function`` enums) and holds
the values of its query parameters. Higher layers build descriptors from
domain objects; the engine only turns them into URLs via
:func:`PrtgKit.Request.url.build_url`.

Multi-target commands (pause, resume, delete, ...) accept an arbitrary number
of object IDs. :class:`MultiTargetParameters` exposes these as
:attr:`~MultiTargetParameters.object_ids`, which the batch splitter overwrites
transiently while it issues one request per chunk.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

__all__ = [
    "ParameterType",
    "XmlFunction",
    "JsonFunction",
    "CsvFunction",
    "HtmlFunction",
    "CommandFunction",
    "Function",
    "CustomParameter",
    "Parameters",
    "MultiTargetParameters",
]


class ParameterType(Enum):
    """How a parameter holding several values is rendered in a query string."""

    SINGLE_VALUE = "single"  # name=value
    MULTI_VALUE = "multi_value"  # name=v1,v2
    MULTI_PARAMETER = "multi_parameter"  # name=v1&name=v2


class XmlFunction(str, Enum):
    TABLE_DATA = "table.xml"
    HISTORIC_DATA = "historicdata.xml"
    GET_OBJECT_PROPERTY = "getobjectproperty.htm"


class JsonFunction(str, Enum):
    GET_PASSHASH = "getpasshash.htm"
    TABLE = "table.json"
    SENSOR_TYPES = "sensortypes.json"
    GET_STATUS = "getstatus.htm"


class CsvFunction(str, Enum):
    HISTORIC_DATA = "historicdata.csv"


class HtmlFunction(str, Enum):
    OBJECT_DATA = "controls/objectdata.htm"
    EDIT_SETTINGS = "editsettings"
    CHANNEL_EDIT = "controls/channeledit.htm"


class CommandFunction(str, Enum):
    PAUSE = "pause.htm"
    PAUSE_OBJECT_FOR = "pauseobjectfor.htm"
    ACKNOWLEDGE_ALARM = "acknowledgealarm.htm"
    SIMULATE = "simulate.htm"
    DELETE_OBJECT = "deleteobject.htm"
    RENAME = "rename.htm"
    SET_OBJECT_PROPERTY = "setobjectproperty.htm"
    SCAN_NOW = "scannow.htm"
    DISCOVER_NOW = "discovernow.htm"
    SET_POSITION = "setposition.htm"
    DUPLICATE_OBJECT = "duplicateobject.htm"


Function = Union[XmlFunction, JsonFunction, CsvFunction, HtmlFunction, CommandFunction]

# Parameters PRTG accepts as a comma-separated list or as a repeated key.
_PARAMETER_TYPES: Dict[str, ParameterType] = {
    "id": ParameterType.MULTI_VALUE,
    "columns": ParameterType.MULTI_VALUE,
    "filter_status": ParameterType.MULTI_PARAMETER,
    "filter_tags": ParameterType.MULTI_PARAMETER,
}


@dataclass
class CustomParameter:
    """A raw query parameter not modelled by the descriptor classes."""

    name: str
    value: Any
    parameter_type: ParameterType = ParameterType.SINGLE_VALUE

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


class Parameters:
    """Mutable mapping of query parameter names to values for one API function.

    Example:
        >>> params = Parameters(CommandFunction.PAUSE, id=1001, action=0)
        >>> params["id"]
        1001
    """

    def __init__(self, function: Function, **values: Any) -> None:
        if function is None:
            raise ValueError("function cannot be None")
        self.function = function
        self._values: Dict[str, Any] = dict(values)
        self.custom_parameters: List[CustomParameter] = []

    def __getitem__(self, name: str) -> Any:
        return self._values.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        if value is None:
            self._values.pop(name, None)
        else:
            self._values[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.function.value!r}, {self._values!r})"

    def add_custom(
        self,
        name: str,
        value: Any,
        parameter_type: ParameterType = ParameterType.SINGLE_VALUE,
    ) -> None:
        self.custom_parameters.append(CustomParameter(name, value, parameter_type))

    def parameter_type(self, name: str) -> ParameterType:
        return _PARAMETER_TYPES.get(name, ParameterType.SINGLE_VALUE)

    def iter_parameters(self) -> Iterator[Tuple[str, Any, ParameterType]]:
        """Yield ``(name, value, parameter_type)`` in insertion order."""
        for name, value in self._values.items():
            yield name, value, self.parameter_type(name)
        for custom in self.custom_parameters:
            yield custom.name, custom.value, custom.parameter_type


class MultiTargetParameters(Parameters):
    """Descriptor for a command that acts on many objects at once."""

    def __init__(
        self,
        function: Function,
        object_ids: Sequence[int],
        **values: Any,
    ) -> None:
        if object_ids is None:
            raise ValueError("object_ids cannot be None")
        super().__init__(function, **values)
        self.object_ids = object_ids

    @property
    def object_ids(self) -> List[int]:
        ids: Optional[List[int]] = self["id"]
        return ids if ids is not None else []

    @object_ids.setter
    def object_ids(self, value: Sequence[int]) -> None:
        self._values["id"] = value if isinstance(value, list) else list(value)
