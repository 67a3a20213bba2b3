"""Atomic JSON persistence shared by the registry and the feedback store"""

import os
import json
import tempfile
from pathlib import Path
from typing import Any


def write_json_atomic(path: Path, data: Any):
    """Write JSON to a sibling temp file, then rename over the target

    Creates the parent directory if missing. Raises OSError on failure.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def read_json(path: Path) -> Any:
    """Load JSON from path. Raises OSError / ValueError."""
    with open(path, 'r') as f:
        return json.load(f)
