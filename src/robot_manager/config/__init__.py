from .robot_config import (
    GripperSpec,
    ManipulationSpec,
    NavigationSpec,
    ProcessSpec,
    RobotConfig,
)
from .parser import configs_to_yaml, load_local_configs, parse_robot_configs
from .store import ConfigStore
