"""
Pytest configuration for the orchestrator test suite.

Puts the project root on the Python path so tests can import the
api, inference, preprocessing and scripts packages.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))
