"""
Robot Manager API

Every robot operation is a POST under /robot_manager. Structured failures
come back as HTTP 200 with ``code: FAILED`` and the error stack, so that a
forwarding manager can tell a delivered failure from a transport failure.
"""

import argparse
import logging
from typing import Callable, Optional, Type

import uvicorn
from fastapi import FastAPI, HTTPException

from ..collaborators.discovery import DISCOVERY_KINDS, InMemoryDiscovery
from ..errors import ErrorCode, RobotManagerError
from ..logging_utils import setup_logger
from ..manager import RobotManager
from ..settings import ManagerSettings, load_settings
from ..version import __version__
from .schemas import (
    DiscoveryRequest,
    ExecuteResponse,
    GripperControlRequest,
    LoadResponse,
    ManagerResponse,
    ManipulationTargetResponse,
    NavigationGoalRequest,
    PlanRequest,
    RobotConfigResponse,
    RobotRequest,
    VizInfoResponse,
)

logger = logging.getLogger(__name__)


def _respond(response_cls: Type[ManagerResponse], operation: Callable[[], dict]) -> ManagerResponse:
    try:
        return response_cls(**(operation() or {}))
    except RobotManagerError as e:
        logger.error(f"Request failed: {e}")
        return response_cls(code="FAILED", message=e.message, error_stack=e.to_stack())
    except Exception as e:
        logger.exception("Unhandled error while serving request")
        error = RobotManagerError(ErrorCode.UNHANDLED, f"{type(e).__name__}: {e}")
        return response_cls(code="FAILED", message=error.message, error_stack=error.to_stack())


def create_app(manager: RobotManager) -> FastAPI:
    app = FastAPI(title="Robot Manager", version=__version__)
    app.state.manager = manager

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "version": __version__,
            "namespace": manager.namespace,
            "local_robots": [c.name for c in manager.store.local()],
            "remote_robots": [f"{c.namespace}/{c.name}" for c in manager.store.remote()],
            "loaded_robots": [r.name for r in manager.loaded_robots()],
        }

    # =========================================================================
    # Robot operations
    # =========================================================================

    @app.post("/robot_manager/load", response_model=LoadResponse)
    def load(req: RobotRequest):
        def op():
            robot = manager.load_robot(req.robot_name)
            return {
                "robot_name": robot.name,
                "robot_namespace": robot.config.namespace,
                "handle": robot.robot_id,
            }
        return _respond(LoadResponse, op)

    @app.post("/robot_manager/unload", response_model=ManagerResponse)
    def unload(req: RobotRequest):
        return _respond(ManagerResponse, lambda: manager.unload_robot(req.robot_name))

    @app.post("/robot_manager/plan", response_model=ManagerResponse)
    def plan(req: PlanRequest):
        return _respond(ManagerResponse, lambda: manager.plan_manipulation(
            req.robot_name, req.planning_group, req.use_named_target, req.named_target, req.target_pose,
        ))

    @app.post("/robot_manager/execute", response_model=ExecuteResponse)
    def execute(req: RobotRequest):
        return _respond(ExecuteResponse, lambda: {"success": manager.execute_plan(req.robot_name)})

    @app.post("/robot_manager/get_manipulation_target", response_model=ManipulationTargetResponse)
    def get_manipulation_target(req: RobotRequest):
        return _respond(
            ManipulationTargetResponse,
            lambda: {"pose": manager.get_manipulation_target(req.robot_name)},
        )

    @app.post("/robot_manager/navigation_goal", response_model=ManagerResponse)
    def navigation_goal(req: NavigationGoalRequest):
        return _respond(ManagerResponse, lambda: manager.navigation_goal(
            req.robot_name, req.reference_frame, req.target_pose,
        ))

    @app.post("/robot_manager/gripper_control", response_model=ManagerResponse)
    def gripper_control(req: GripperControlRequest):
        return _respond(ManagerResponse, lambda: manager.gripper_control(
            req.robot_name, req.gripper_name, req.position,
        ))

    @app.post("/robot_manager/get_viz_info", response_model=VizInfoResponse)
    def get_viz_info(req: RobotRequest):
        return _respond(VizInfoResponse, lambda: {"info": manager.get_viz_info(req.robot_name)})

    @app.post("/robot_manager/get_config", response_model=RobotConfigResponse)
    def get_config(req: RobotRequest):
        def op():
            config_yaml, abs_ns = manager.get_robot_config(req.robot_name)
            return {"robot_config": config_yaml, "robot_absolute_namespace": abs_ns}
        return _respond(RobotConfigResponse, op)

    # =========================================================================
    # Readiness announcements
    # =========================================================================

    discovery = manager.services.discovery
    if isinstance(discovery, InMemoryDiscovery):

        def _checked(req: DiscoveryRequest) -> DiscoveryRequest:
            if req.kind not in DISCOVERY_KINDS:
                raise HTTPException(status_code=422, detail=f"kind must be one of {list(DISCOVERY_KINDS)}")
            return req

        @app.post("/discovery/declare")
        def declare(req: DiscoveryRequest):
            _checked(req)
            discovery.declare(req.kind, req.name)
            return {"status": "declared", "kind": req.kind, "name": req.name}

        @app.post("/discovery/withdraw")
        def withdraw(req: DiscoveryRequest):
            _checked(req)
            discovery.withdraw(req.kind, req.name)
            return {"status": "withdrawn", "kind": req.kind, "name": req.name}

    @app.on_event("startup")
    def startup_event():
        manager.start()

    @app.on_event("shutdown")
    def shutdown_event():
        manager.shutdown()

    return app


def run(settings: Optional[ManagerSettings] = None):
    settings = settings or load_settings()
    setup_logger("robot_manager", log_file=settings.log_file, level=settings.log_level)
    manager = RobotManager.from_settings(settings)
    app = create_app(manager)
    uvicorn.run(app, host=settings.api.host, port=settings.api.port)


def main():
    parser = argparse.ArgumentParser(description="Robot Manager API server")
    parser.add_argument("--config", help="Path to the manager settings YAML")
    args = parser.parse_args()
    run(load_settings(args.config))


if __name__ == "__main__":
    main()
