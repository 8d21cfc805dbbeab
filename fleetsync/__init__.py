"""
fleetsync - member-to-hub export core of a multi-cluster networking control plane.

This package republishes networking objects from member clusters into a
shared hub cluster:
- Services selected by a ServiceExport become InternalServiceExports
- EndpointSlices of validly exported Services become EndpointSliceExports
- Projections are removed, in a crash-safe order, when an object stops
  being eligible or is deleted
"""

__version__ = "0.1.0"

from fleetsync import api, controllers, store
from fleetsync.manager import Manager

__all__ = [
    "api",
    "controllers",
    "store",
    "Manager",
]
