"""Load cost function plugin lists from YAML.

Expected layout::

    cost_functions:
      - class: stomp_moveit/TrajectoryAvoidance
        collision_clearance: 0.5
        collision_penalty: 1000.0
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

import yaml

from CostFunctions.CostFunctionBase import CostFunction, create_cost_function
from CostFunctions.Errors import ConfigError


def load_cost_function_config(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Read the ``cost_functions`` list from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        List of per-plugin configuration mappings

    Raises:
        ConfigError: If the file is missing the list or an entry has no 'class'
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as err:
        raise ConfigError(f"Could not read cost function config '{path}': {err}")

    if not isinstance(document, Mapping) or not isinstance(document.get("cost_functions"), list):
        raise ConfigError(f"'{path}' must define a 'cost_functions' list")

    entries = document["cost_functions"]
    for idx, entry in enumerate(entries):
        if not isinstance(entry, Mapping) or not entry.get("class"):
            raise ConfigError(f"Cost function entry {idx} in '{path}' must be a mapping with a 'class' key")
    return [dict(entry) for entry in entries]


def create_cost_functions(robot_model, group_name: str, entries: Sequence[Mapping[str, Any]],
                          **kwargs) -> List[CostFunction]:
    """
    Create and initialize every configured cost function for a planning group.

    Args:
        robot_model: Kinematic model the cost functions bind to
        group_name: Planning group to score
        entries: Plugin configurations (see load_cost_function_config)
        **kwargs: Constructor arguments forwarded to every cost function

    Returns:
        List of initialized cost functions, in configuration order

    Raises:
        ConfigError: If a class is unknown or rejects its configuration
    """
    cost_functions = []
    for idx, entry in enumerate(entries):
        name = entry.get("class")
        cost_function = create_cost_function(name, **kwargs)
        if not cost_function.initialize(robot_model, group_name, entry):
            raise ConfigError(f"Cost function entry {idx} ('{name}') rejected its configuration")
        cost_functions.append(cost_function)
    return cost_functions
