"""
Entry point for running AI Canvas Studio as a module.

Usage:
    python -m ai_canvas_studio generate canvas.json NODE_ID
"""

import sys

from ai_canvas_studio.main import main

if __name__ == "__main__":
    sys.exit(main())
