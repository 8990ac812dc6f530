"""
Robot Manager Errors

Every failure raised by the manager core is a RobotManagerError carrying an
error stack. Frames are appended as the error crosses manager boundaries, so
a failure forwarded from a remote manager arrives with the remote frames
intact.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error kinds reported by the manager."""
    CONFIG_FAIL = "CONFIG_FAIL"
    NOT_FOUND = "NOT_FOUND"
    ROBOT_NOT_FOUND = "ROBOT_NOT_FOUND"
    PLANNING_GROUP_NOT_FOUND = "PLANNING_GROUP_NOT_FOUND"
    ROBOT_PLAN_FAIL = "ROBOT_PLAN_FAIL"
    SERVICE_REQ_FAIL = "SERVICE_REQ_FAIL"
    SERVICE_STATUS_FAIL = "SERVICE_STATUS_FAIL"
    TIMEOUT = "TIMEOUT"
    UNINITIALIZED = "UNINITIALIZED"
    UNHANDLED = "UNHANDLED"


@dataclass
class ErrorFrame:
    """One entry of an error stack."""
    code: str
    message: str
    namespace: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RobotManagerError(Exception):
    """Structured manager failure."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        namespace: str = "",
        stack: Optional[List[ErrorFrame]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        if stack is None:
            stack = [ErrorFrame(code=code.value, message=message, namespace=namespace)]
        self.error_stack: List[ErrorFrame] = list(stack)

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def push(self, code: ErrorCode, message: str, namespace: str = "") -> "RobotManagerError":
        """Append a frame and return self, for re-raising with context."""
        self.error_stack.append(ErrorFrame(code=code.value, message=message, namespace=namespace))
        return self

    def to_stack(self) -> List[Dict[str, Any]]:
        return [frame.to_dict() for frame in self.error_stack]

    @classmethod
    def from_stack(cls, stack: List[Dict[str, Any]]) -> "RobotManagerError":
        """Rebuild an error delivered in a response. The first frame is the origin."""
        frames = [
            ErrorFrame(
                code=str(item.get("code", ErrorCode.UNHANDLED.value)),
                message=str(item.get("message", "")),
                namespace=str(item.get("namespace", "")),
            )
            for item in stack
        ]
        if not frames:
            frames = [ErrorFrame(code=ErrorCode.UNHANDLED.value, message="Empty error stack")]
        origin = frames[0]
        try:
            code = ErrorCode(origin.code)
        except ValueError:
            code = ErrorCode.UNHANDLED
        return cls(code, origin.message, stack=frames)
