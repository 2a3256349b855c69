"""
Atomic file writes for plan exports.

Ensures files are written completely or not at all, preventing partial state.
"""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path


@contextmanager
def atomic_write(target_path: Path, mode: str = 'w'):
    """
    Context manager for atomic file writes.

    Writes to a temp file in the target's directory, then renames over the
    target. On error the temp file is removed and the target is unchanged.

    Usage:
        with atomic_write(Path('plan.yaml')) as f:
            yaml.dump(data, f)
    """
    target_path = Path(target_path)
    target_dir = target_path.parent
    target_dir.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=target_dir,
        prefix=f'.{target_path.name}.',
        suffix='.tmp'
    )

    try:
        with os.fdopen(fd, mode) as f:
            yield f
        os.replace(temp_path, target_path)

    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
