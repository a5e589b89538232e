import sys
from pathlib import Path

# project root on sys.path so config/core/utils/data_manager import without install
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
