"""
tickbrain: experience collection and training orchestration for RL agents
living inside a tick-driven simulation.
"""

__version__ = "0.1.0"
