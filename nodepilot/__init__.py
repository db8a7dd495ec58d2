"""
nodepilot - node lifecycle automation for Kubernetes on bare metal.

Cordons, drains, reboots and re-admits cluster nodes one at a time,
respecting PodDisruptionBudgets along the way.
"""

__version__ = "0.1.0"
