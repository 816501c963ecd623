"""ArchonOS image builder (Python-first, stage-driven).

Core design goals:
- Strictly ordered provisioning stages
- Explicit build context instead of shared globals
- Guaranteed teardown of loop devices and mounts
- Centralized logging
"""

__all__ = []
