"""fleetpilot - decision engine for autonomous browser automation."""

__version__ = "0.1.0"
