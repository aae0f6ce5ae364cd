"""
Soccer Teammate Connection Finder

This package contains the core application logic for finding the shortest
chain of teammates between two players using bidirectional BFS over an
in-memory teammate graph.
"""

__version__ = "1.0.0"
