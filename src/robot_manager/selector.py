from typing import Iterable, Optional

from .config.robot_config import RobotConfig


def find_robot(name: str, configs: Iterable[RobotConfig]) -> Optional[RobotConfig]:
    """
    Pick the most reliable config called ``name``.

    An empty name makes every config a candidate. Ties keep their partition
    order.
    """
    if name:
        candidates = [c for c in configs if c.name == name]
    else:
        candidates = list(configs)
    if not candidates:
        return None
    return sorted(candidates, key=lambda c: c.reliability, reverse=True)[0]
