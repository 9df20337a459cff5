"""
pytest configuration for pipeline_client tests.

Adds src directory to Python path for imports and sets up test environment.
"""

import os
import sys
from pathlib import Path

# Keep developer settings out of config loading tests
for _var in ("PIPELINE_URL", "PIPELINE_GROUP", "PIPELINE_TOKEN", "PIPELINE_TOPIC"):
    os.environ.pop(_var, None)

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))
