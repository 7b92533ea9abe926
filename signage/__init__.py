"""
Core package init for the audience signage kiosk.

Detection scheduling, recognition, registration and audience category
publishing for a camera-driven signage display.
"""

__all__ = [
    "attribution",
    "detectors",
    "pipeline",
    "recognition",
    "server",
    "store",
    "viz",
    "config",
    "demographics",
    "errors",
    "io_utils",
    "types",
]
