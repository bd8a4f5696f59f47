from __future__ import annotations

import pytest
from pydantic import ValidationError

from gtd_engage.tasks.context import ContextModel
from gtd_engage.tasks.models import EnergyLevel, Location, TaskDuration


def test_defaults() -> None:
    model = ContextModel()

    assert model.current.current_location is Location.HOME
    assert model.current.current_energy is EnergyLevel.MEDIUM
    assert model.current.available_time is TaskDuration.THIRTY_MINUTES


def test_update_merges_partial_values() -> None:
    model = ContextModel()

    updated = model.update(current_location="office")
    updated = model.update(available_time="1hour")

    assert updated.current_location is Location.OFFICE
    assert updated.available_time is TaskDuration.ONE_HOUR
    assert updated.current_energy is EnergyLevel.MEDIUM
    assert model.version == 2


def test_update_rejects_unknown_values_and_keys() -> None:
    model = ContextModel()

    with pytest.raises(ValidationError):
        model.update(current_energy="exhausted")
    with pytest.raises(ValidationError):
        model.update(mood="happy")

    assert model.current.current_energy is EnergyLevel.MEDIUM
    assert model.version == 0


def test_reset_restores_defaults() -> None:
    model = ContextModel()
    model.update(current_location="mobile")

    assert model.reset().current_location is Location.HOME
