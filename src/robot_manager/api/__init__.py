from .client import RobotManagerClient
