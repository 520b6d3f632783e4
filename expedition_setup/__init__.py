"""Expedition appliance first-boot provisioning.

Core design goals:
- One fixed, sequential run against a known-clean VM image
- Fail fast: the first fatal step stops everything
- Progress on the console, details in the log
- Last reached disk/LVM state recorded for manual recovery
"""

__all__ = []
