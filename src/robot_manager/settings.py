"""
Manager Settings Loader & Validation
"""

import os
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .logging_utils import get_logger

logger = get_logger(__name__)

# Readiness waits in one robot load: URDF plus driver and controller of
# manipulation, navigation and gripper
LOAD_WAIT_SLOTS = 7
FORWARD_TIMEOUT_MARGIN = 30.0

# =============================================================================
# Settings Models
# =============================================================================

class EndpointSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)
    # URL peers use to reach this manager; advertised with every gossip message
    public_url: Optional[str] = None

class SyncSettings(BaseModel):
    enabled: bool = True
    channel: Literal["udp", "local"] = "udp"
    port: int = Field(9876, ge=1, le=65535)
    broadcast_address: str = "<broadcast>"

class LoadingSettings(BaseModel):
    poll_interval: float = Field(1.0, gt=0.0)
    # None waits until ready or failed
    readiness_timeout: Optional[float] = Field(30.0, gt=0.0)
    navigation_server_timeout: float = Field(5.0, ge=0.0)
    # Request timeout for loads forwarded to a peer, None derives it from
    # readiness_timeout
    forward_timeout: Optional[float] = Field(None, gt=0.0)

    def effective_forward_timeout(self) -> Optional[float]:
        if self.forward_timeout is not None:
            return self.forward_timeout
        if self.readiness_timeout is None:
            return None
        return self.readiness_timeout * LOAD_WAIT_SLOTS + self.poll_interval * LOAD_WAIT_SLOTS + FORWARD_TIMEOUT_MARGIN

class RecoverySettings(BaseModel):
    enabled: bool = True
    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(1.0, ge=0.0)
    multiplier: float = Field(2.0, ge=1.0)
    max_delay: float = Field(30.0, ge=0.0)

class LedgerSettings(BaseModel):
    package_roots: List[str] = []
    terminate_timeout: float = Field(10.0, gt=0.0)
    monitor_interval: float = Field(0.5, gt=0.0)

class ManagerSettings(BaseModel):
    namespace: str = "robot_manager"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    config_source_dir: str = "."
    config_file_name: str = "robot_description.yaml"
    api: EndpointSettings = Field(default_factory=EndpointSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    loading: LoadingSettings = Field(default_factory=LoadingSettings)
    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    # namespace -> base URL of the manager owning it
    peers: Dict[str, str] = {}
    navigation_url: Optional[str] = None
    gripper_url: Optional[str] = None

# =============================================================================
# Loader
# =============================================================================

def load_settings(config_path: Optional[str] = None) -> ManagerSettings:
    """
    Load settings from YAML, apply env overrides, and validate.

    The path defaults to the ROBOT_MANAGER_CONFIG env var, then
    ``config/robot_manager.yaml``.
    """
    load_dotenv()

    path = Path(config_path or os.getenv("ROBOT_MANAGER_CONFIG", "config/robot_manager.yaml"))
    data = {}

    # 1. Load YAML
    if path.exists():
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            logger.info(f"Loaded settings from {path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load settings file: {e}")
            data = {}
    else:
        logger.warning(f"Settings file {path} not found. Using defaults.")

    if not isinstance(data, dict):
        logger.error(f"Settings file {path} does not hold a mapping. Using defaults.")
        data = {}

    # 2. Environment overrides
    if os.getenv("ROBOT_MANAGER_NAMESPACE"):
        data["namespace"] = os.getenv("ROBOT_MANAGER_NAMESPACE")

    if os.getenv("LOG_LEVEL"):
        data["log_level"] = os.getenv("LOG_LEVEL").upper()

    if os.getenv("ROBOT_CONFIG_DIR"):
        data["config_source_dir"] = os.getenv("ROBOT_CONFIG_DIR")

    if os.getenv("API_PORT"):
        if not isinstance(data.get("api"), dict):
            data["api"] = {}
        try:
            data["api"]["port"] = int(os.getenv("API_PORT"))
        except ValueError:
            logger.warning(f"Ignoring invalid API_PORT={os.getenv('API_PORT')!r}")

    # 3. Validation
    try:
        settings = ManagerSettings(**data)
        logger.info("Settings validated successfully.")
        return settings
    except ValidationError as e:
        logger.error(f"Settings validation failed: {e}")
        logger.warning("Falling back to default settings due to validation errors.")
        return ManagerSettings()
