"""
Robot Manager

Loads modular robot capability bundles (URDF, manipulation, navigation,
gripper) and routes robot requests across cooperating managers.
"""

from .config import ConfigStore, RobotConfig
from .errors import ErrorCode, RobotManagerError
from .manager import RobotManager
from .robot import Robot, RobotServices
from .selector import find_robot
from .settings import ManagerSettings, load_settings
from .version import __version__
