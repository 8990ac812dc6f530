from .discovery import Discovery, InMemoryDiscovery
from .gripper import GripperClient, HttpGripperClient
from .ledger import ResourceHandle, ResourceLedger
from .navigation import HttpNavigationClient, NavigationClient
from .planning import MotionPlanner, PlanningGroupHandle
from .process_ledger import ProcessResourceLedger
