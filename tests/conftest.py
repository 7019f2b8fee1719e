import time

import numpy as np
import pytest


@pytest.fixture
def write_capture(tmp_path):
    """Write raw bytes (list, bytes or uint8 array) to a capture file."""
    def _write(data, name='capture.iq'):
        path = tmp_path / name
        if isinstance(data, np.ndarray):
            path.write_bytes(data.astype(np.uint8).tobytes())
        else:
            path.write_bytes(bytes(data))
        return path
    return _write


@pytest.fixture
def utc_local_tz(monkeypatch):
    """Pin the process-local timezone to UTC."""
    if not hasattr(time, 'tzset'):
        pytest.skip('time.tzset not available on this platform')
    monkeypatch.setenv('TZ', 'UTC')
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
