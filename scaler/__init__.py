"""
Replica scaler for Prombench benchmark runs.

This package loads Kubernetes deployment manifests and oscillates their
replica count against a live cluster, either bursting between two levels or
ramping up in steps, so the benchmarked Prometheus builds see churning
scrape targets.
"""

from .main import main

__all__ = ["main"]
