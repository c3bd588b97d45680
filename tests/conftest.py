from __future__ import annotations

from copy import deepcopy

import pytest

from laser_roi.defaults import DEFAULTS
from laser_roi.model import CalculatorInputs
from laser_roi.schema import migrate_assumptions


@pytest.fixture
def base_inputs() -> dict:
    inputs, _, _ = migrate_assumptions(deepcopy(DEFAULTS))
    return inputs


@pytest.fixture
def calc_inputs(base_inputs) -> CalculatorInputs:
    return CalculatorInputs.from_assumptions(base_inputs)
