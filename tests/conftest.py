from __future__ import annotations

from typing import Any

import pytest

from _helpers import ManualWait, make_payload


@pytest.fixture
def weather_payload() -> dict[str, Any]:
    return make_payload()


@pytest.fixture
def manual_wait() -> ManualWait:
    return ManualWait()
