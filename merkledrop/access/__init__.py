"""
merkledrop Access Control

Single capability check for every privileged action, the pause switch,
and the two-phase authority handoff.
"""

from merkledrop.access.control import AccessController, Action

__all__ = ["AccessController", "Action"]
