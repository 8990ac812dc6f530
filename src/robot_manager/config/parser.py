"""
Robot description documents: discovery on disk, parsing, serialization.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional

import yaml

from ..errors import ErrorCode, RobotManagerError
from .robot_config import RobotConfig

logger = logging.getLogger(__name__)

ROBOTS_KEY = "Robots"


def parse_robot_configs(
    document: Any,
    namespace: str,
    existing: Optional[Iterable[RobotConfig]] = None,
) -> List[RobotConfig]:
    """
    Parse the ``Robots`` list of a description document.

    Malformed entries are skipped with a warning. An entry whose
    (name, namespace) is already in ``existing`` or earlier in the same
    document is dropped, so the first occurrence wins.

    Args:
        document: Parsed YAML mapping
        namespace: Namespace stamped on every config
        existing: Configs already known for this partition

    Returns:
        New configs, in document order
    """
    if not isinstance(document, dict):
        logger.warning("Robot description document is not a mapping, ignoring it")
        return []

    entries = document.get(ROBOTS_KEY)
    if not isinstance(entries, list):
        logger.warning(f"Robot description document has no '{ROBOTS_KEY}' list")
        return []

    seen = {config.key for config in (existing or [])}
    configs = []
    for index, entry in enumerate(entries):
        try:
            config = RobotConfig.from_dict(entry, namespace)
        except RobotManagerError as e:
            logger.warning(f"Skipping robot entry #{index}: {e}")
            continue
        if config.key in seen:
            logger.warning(f"Ignoring duplicate robot '{config.name}' in namespace '{namespace}'")
            continue
        seen.add(config.key)
        configs.append(config)
    return configs


def parse_robot_configs_yaml(text: str, namespace: str) -> List[RobotConfig]:
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise RobotManagerError(ErrorCode.CONFIG_FAIL, f"Invalid robot description YAML: {e}")
    return parse_robot_configs(document, namespace)


def configs_to_yaml(configs: Iterable[RobotConfig]) -> str:
    """Serialize configs into a ``Robots`` document."""
    return yaml.safe_dump({ROBOTS_KEY: [config.to_dict() for config in configs]}, sort_keys=False)


def find_robot_description_files(root: str, filename: str = "robot_description.yaml") -> List[Path]:
    root_path = Path(root)
    if not root_path.is_dir():
        logger.warning(f"Robot config directory {root_path} does not exist")
        return []
    return sorted(root_path.rglob(filename))


def load_local_configs(root: str, namespace: str, filename: str = "robot_description.yaml") -> List[RobotConfig]:
    """Scan ``root`` for description files and parse every robot found."""
    configs: List[RobotConfig] = []
    for path in find_robot_description_files(root, filename):
        try:
            with open(path, "r") as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load robot description {path}: {e}")
            continue
        found = parse_robot_configs(document, namespace, existing=configs)
        logger.info(f"Loaded {len(found)} robot config(s) from {path}")
        configs.extend(found)
    return configs
