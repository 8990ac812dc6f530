"""Pose types shared by the manipulation and navigation operations."""

from pydantic import BaseModel, Field


class Point(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class Quaternion(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0


class Pose(BaseModel):
    position: Point = Field(default_factory=Point)
    orientation: Quaternion = Field(default_factory=Quaternion)


class PoseStamped(BaseModel):
    frame_id: str = ""
    stamp: float = 0.0
    pose: Pose = Field(default_factory=Pose)
