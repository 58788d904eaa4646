"""
The config module provides the config spec and parsing logic.

Every key is optional, so a missing configuration file yields the defaults. We provide detailed
errors when an invalid configuration is detected, and emit warnings when unrecognized keys are
found.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import appdirs
import tomllib

from refsed.common import RefsedExpectedError
from refsed.planner import DEFAULT_FIELD_THRESHOLD

XDG_CONFIG_REFSED = Path(appdirs.user_config_dir("refsed"))
CONFIG_PATH = XDG_CONFIG_REFSED / "config.toml"

XDG_DATA_REFSED = Path(appdirs.user_data_dir("refsed"))

logger = logging.getLogger(__name__)


class ConfigDecodeError(RefsedExpectedError):
    pass


class InvalidConfigValueError(RefsedExpectedError, ValueError):
    pass


@dataclass(frozen=True)
class Config:
    library_path: Path
    # Above this many records, the user must type the record count to confirm a replacement.
    confirm_above_count: int
    # Above this many distinct fields in a query, searches skip the indexed pre-filter.
    prefilter_field_threshold: int

    @classmethod
    def parse(cls, config_path_override: Path | None = None) -> Config:
        # As we parse, delete consumed values from the data dictionary. If any are left over at the
        # end of the config, warn that unknown config keys were found.
        cfgpath = config_path_override or CONFIG_PATH
        data: dict[str, Any] = {}
        try:
            with cfgpath.open("r") as fp:
                data = tomllib.loads(fp.read())
        except FileNotFoundError:
            logger.debug(f"No configuration file found at {cfgpath}, using defaults")
        except tomllib.TOMLDecodeError as e:
            raise ConfigDecodeError(
                f"Failed to decode configuration file: invalid TOML: {e}"
            ) from e

        try:
            library_path = Path(data["library_path"]).expanduser()
            del data["library_path"]
        except KeyError:
            library_path = XDG_DATA_REFSED / "library.sqlite3"
        except (TypeError, ValueError) as e:
            raise InvalidConfigValueError(
                f"Invalid value for library_path in configuration file ({cfgpath}): must be a path"
            ) from e

        try:
            confirm_above_count = data["confirm_above_count"]
            del data["confirm_above_count"]
            if not isinstance(confirm_above_count, int) or isinstance(confirm_above_count, bool):
                raise ValueError(f"must be an int: got {type(confirm_above_count)}")
            if confirm_above_count < 0:
                raise ValueError(f"must be a non-negative integer: got {confirm_above_count}")
        except KeyError:
            confirm_above_count = 25
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for confirm_above_count in configuration file ({cfgpath}): must be a non-negative integer"
            ) from e

        try:
            prefilter_field_threshold = data["prefilter_field_threshold"]
            del data["prefilter_field_threshold"]
            if not isinstance(prefilter_field_threshold, int) or isinstance(
                prefilter_field_threshold, bool
            ):
                raise ValueError(f"must be an int: got {type(prefilter_field_threshold)}")
            if prefilter_field_threshold <= 0:
                raise ValueError(f"must be a positive integer: got {prefilter_field_threshold}")
        except KeyError:
            prefilter_field_threshold = DEFAULT_FIELD_THRESHOLD
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for prefilter_field_threshold in configuration file ({cfgpath}): must be a positive integer"
            ) from e

        if data:
            unrecognized_accessors: list[str] = []
            # Do a DFS over the data keys to assemble the map of unknown keys. State is a tuple of
            # ("accessor", node).
            dfs_state: deque[tuple[str, Any]] = deque([("", data)])
            while dfs_state:
                accessor, node = dfs_state.pop()
                if isinstance(node, dict):
                    for k, v in node.items():
                        child_accessor = k if not accessor else f"{accessor}.{k}"
                        dfs_state.append((child_accessor, v))
                    continue
                unrecognized_accessors.append(accessor)
            logger.warning(
                f"Unrecognized options found in configuration file: {', '.join(unrecognized_accessors)}"
            )

        return Config(
            library_path=library_path,
            confirm_above_count=confirm_above_count,
            prefilter_field_threshold=prefilter_field_threshold,
        )
