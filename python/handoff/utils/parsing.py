import json
from enum import Enum, auto
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

import yaml
from yaml.constructor import ConstructorError
from yaml.nodes import MappingNode

from handoff.errors import HandoffError


class DataParsingError(HandoffError):
    prefix = "failed to parse configuration"


class DataValidationError(HandoffError):
    prefix = "configuration validation error"

    def __init__(self, msg: str, tree_path: str) -> None:
        self._tree_path = tree_path or "/"
        super().__init__(f"[{self._tree_path}] {msg}")

    def where(self) -> str:
        return self._tree_path


# custom hook for 'json.loads()' to detect duplicate keys in data
# source: https://stackoverflow.com/q/14902299/12858520
def _json_raise_duplicates(pairs: List[Tuple[Any, Any]]) -> Dict[Any, Any]:
    dict_out: Dict[Any, Any] = {}
    for key, val in pairs:
        if key in dict_out:
            raise DataParsingError(f"duplicate attribute key detected: {key}")
        dict_out[key] = val
    return dict_out


class _RaiseDuplicatesLoader(yaml.SafeLoader):
    """
    Custom YAML Loader for 'yaml.load()' which detects duplicate keys in the data.
    """

    # source: https://gist.github.com/pypt/94d747fe5180851196eb
    def construct_mapping(self, node: Union[MappingNode, Any], deep: bool = False) -> Dict[Any, Any]:
        if not isinstance(node, MappingNode):
            raise ConstructorError(None, None, f"expected a mapping node, but found {node.id}", node.start_mark)
        mapping: Dict[Any, Any] = {}
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)  # type: ignore
            # we need to check, that the key object can be used in a hash table
            try:
                _ = hash(key)  # type: ignore
            except TypeError as exc:
                raise ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found unacceptable key ({exc})",
                    key_node.start_mark,
                ) from exc

            if key in mapping:
                raise DataParsingError(f"duplicate key detected: {key_node.start_mark}")
            value = self.construct_object(value_node, deep=deep)  # type: ignore
            mapping[key] = value
        return mapping


class DataFormat(Enum):
    YAML = auto()
    JSON = auto()

    def parse_to_dict(self, text: str) -> Any:
        if self is DataFormat.YAML:
            # _RaiseDuplicatesLoader extends yaml.SafeLoader, so this should be safe
            return yaml.load(text, Loader=_RaiseDuplicatesLoader)  # type: ignore
        if self is DataFormat.JSON:
            return json.loads(text, object_pairs_hook=_json_raise_duplicates)
        raise NotImplementedError(f"Parsing of format '{self}' is not implemented")


def parse_yaml(data: str) -> Any:
    return DataFormat.YAML.parse_to_dict(data)


def parse_json(data: str) -> Any:
    return DataFormat.JSON.parse_to_dict(data)


def try_to_parse(data: str) -> Any:
    """Attempt to parse the data as a JSON or YAML string."""

    try:
        return parse_json(data)
    except json.JSONDecodeError as je:
        try:
            return parse_yaml(data)
        except yaml.YAMLError as ye:
            # either of the two may be the actual cause
            msg = f"failed to parse data, JSON: {je}, YAML: {ye}"
            raise DataParsingError(msg) from ye


def parse_file(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf8") as file:
            data = file.read()
    except OSError as e:
        msg = f"failed to read '{path}': {e}"
        raise DataParsingError(msg) from e

    try:
        if path.suffix == ".json":
            return parse_json(data)
        if path.suffix in (".yaml", ".yml"):
            return parse_yaml(data)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        msg = f"'{path}': {e}"
        raise DataParsingError(msg) from e
    return try_to_parse(data)
