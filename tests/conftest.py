import sys
from pathlib import Path

# Repository root on sys.path so tests import 'services' and 'shared' without installing
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
