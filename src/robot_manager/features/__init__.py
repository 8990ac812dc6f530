from .feature import (
    ComponentState,
    Feature,
    Readiness,
    WaitSettings,
    gripper_feature,
    manipulation_feature,
    navigation_feature,
    urdf_feature,
)
from .waiting import wait_until_ready
