"""
Robot Manager Version

v0.1.0:
- Feature load state machine with bounded readiness waits
- Gossip configuration sync over UDP broadcast
- Namespace routing with HTTP forwarding between managers
- Failure recovery with exponential backoff
"""

__version__ = "0.1.0"
__author__ = "Dynamical Robotics"
__status__ = "Beta"
