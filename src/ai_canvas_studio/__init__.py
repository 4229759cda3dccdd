"""
AI Canvas Studio - Generation orchestration for a node-based AI canvas.
"""

__version__ = "0.1.0"
