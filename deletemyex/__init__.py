"""
Core package init for delete-my-ex.

Face candidate discovery, per-photo identity decisions and the hide/delete
library workflow.
"""

__all__ = [
    "config",
    "detectors",
    "errors",
    "harvest",
    "io_utils",
    "library",
    "recognition",
    "run_state",
    "runtime",
    "session",
    "types",
    "viz",
]
