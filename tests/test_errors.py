from robot_manager.errors import ErrorCode, RobotManagerError


def test_push_appends_context_frames():
    error = RobotManagerError(ErrorCode.TIMEOUT, "param never appeared", namespace="ns2")
    error.push(ErrorCode.TIMEOUT, "Failed to load robot 'alpha'", "ns2")

    stack = error.to_stack()
    assert [frame["message"] for frame in stack] == ["param never appeared", "Failed to load robot 'alpha'"]
    assert stack[0]["namespace"] == "ns2"


def test_delivered_stack_keeps_origin_code():
    stack = [
        {"code": "PLANNING_GROUP_NOT_FOUND", "message": "no 'leg'", "namespace": "ns2"},
        {"code": "SERVICE_REQ_FAIL", "message": "forwarded", "namespace": "ns1"},
    ]
    error = RobotManagerError.from_stack(stack)

    assert error.code == ErrorCode.PLANNING_GROUP_NOT_FOUND
    assert error.message == "no 'leg'"
    assert error.to_stack() == stack


def test_unknown_or_empty_stacks_are_unhandled():
    assert RobotManagerError.from_stack([{"code": "WHATEVER", "message": "x"}]).code == ErrorCode.UNHANDLED
    assert RobotManagerError.from_stack([]).code == ErrorCode.UNHANDLED


def test_str_includes_code():
    assert str(RobotManagerError(ErrorCode.NOT_FOUND, "gone")) == "[NOT_FOUND] gone"
