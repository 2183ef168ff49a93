"""
merkledrop Runtime: wires config, keys, journal and collaborators together.
"""

from merkledrop.runtime.context import ClaimContext

__all__ = ["ClaimContext"]
