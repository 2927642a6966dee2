"""
OnTime transit simulator.

This package provides the simulated real-time transit state engine behind the
OnTime live tracking views: route interpolation, simulated clocks, bus state
resimulation, stop arrival projection and scripted demo scenarios.
"""

__version__ = "1.0.0"
