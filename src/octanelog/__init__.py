"""OctaneLog - a narrative engine that turns drives into a season-long story."""

__version__ = "0.1.0"
