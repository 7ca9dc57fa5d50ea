################################################################################
#
#  Copyright (C) 2026 Garrett Brown
#  This file is part of OASIS - https://github.com/eigendude/OASIS
#
#  SPDX-License-Identifier: Apache-2.0
#  See DOCS/LICENSING.md for more information.
#
################################################################################

from __future__ import annotations

import numpy as np
import pytest

from oasis_msf.localization.msf.core import MsfCore
from oasis_msf.localization.msf.msf_clock import ManualMsfClock
from oasis_msf.localization.msf.msf_config import MsfConfig
from oasis_msf.localization.msf.msf_measurement import MsfInitMeasurement
from oasis_msf.localization.msf.msf_state import MsfState
from oasis_msf.localization.msf.msf_state_definition import CoreStateIndex
from oasis_msf.localization.msf.msf_types import MsfProtocolError


def _build_core(t_now: float = 1.0) -> MsfCore:
    return MsfCore(MsfConfig(), clock=ManualMsfClock(t_now))


def test_init_measurement_is_stamped_by_clock() -> None:
    core: MsfCore = _build_core(t_now=4.5)
    init: MsfInitMeasurement = core.create_init_measurement()

    assert init.time == 4.5


def test_init_value_set_get_reset() -> None:
    core: MsfCore = _build_core()
    init: MsfInitMeasurement = core.create_init_measurement()

    assert not init.has_state_init_value(CoreStateIndex.P)

    init.set_state_init_value(CoreStateIndex.P, np.array([1.0, 2.0, 3.0]))
    assert init.has_state_init_value(CoreStateIndex.P)

    value: np.ndarray = init.get_state_init_value(CoreStateIndex.P)
    np.testing.assert_allclose(value, [1.0, 2.0, 3.0])

    # Returned values are copies
    value[0] = 99.0
    np.testing.assert_allclose(
        init.get_state_init_value(CoreStateIndex.P), [1.0, 2.0, 3.0]
    )

    init.reset_state_init_value(CoreStateIndex.P)
    assert not init.has_state_init_value(CoreStateIndex.P)


def test_init_value_rejects_bad_index() -> None:
    core: MsfCore = _build_core()
    init: MsfInitMeasurement = core.create_init_measurement()

    with pytest.raises(MsfProtocolError):
        init.set_state_init_value(17, np.zeros(3))


def test_partial_init_copies_only_flagged_blocks() -> None:
    core: MsfCore = _build_core()
    default_state: MsfState = core.initial_state()

    init: MsfInitMeasurement = core.create_init_measurement()
    init.set_state_init_value(CoreStateIndex.V, np.array([0.5, 0.0, 0.0]))
    init.set_state_init_value(CoreStateIndex.P, np.array([9.0, 9.0, 9.0]))
    init.reset_state_init_value(CoreStateIndex.P)

    core.apply_init_measurement(init)
    staged: MsfState = core.initial_state()

    np.testing.assert_allclose(staged.get(CoreStateIndex.V), [0.5, 0.0, 0.0])
    np.testing.assert_allclose(
        staged.get(CoreStateIndex.P), default_state.get(CoreStateIndex.P)
    )
    assert staged.get_state_var(CoreStateIndex.V).has_reset_value
    assert not staged.get_state_var(CoreStateIndex.P).has_reset_value
    # A zero staged covariance keeps the prior
    np.testing.assert_allclose(staged.covariance, default_state.covariance)


def test_init_covariance_block_replaces_prior() -> None:
    core: MsfCore = _build_core()
    init: MsfInitMeasurement = core.create_init_measurement()
    init.set_state_init_value(CoreStateIndex.P, np.zeros(3))
    block: slice = init.schema.error_slice(CoreStateIndex.P)
    init.get_covariance()[block, block] = 0.25 * np.eye(3)

    core.apply_init_measurement(init)
    staged: MsfState = core.initial_state()

    np.testing.assert_allclose(staged.covariance[block, block], 0.25 * np.eye(3))
    v_block: slice = staged.error_slice(CoreStateIndex.V)
    np.testing.assert_allclose(
        staged.covariance[v_block, v_block], MsfConfig().vel_var * np.eye(3)
    )


def test_init_readings_copied_only_when_flagged() -> None:
    core: MsfCore = _build_core()

    without_readings: MsfInitMeasurement = core.create_init_measurement(False)
    without_readings.set_w_m(np.array([1.0, 1.0, 1.0]))
    core.apply_init_measurement(without_readings)
    np.testing.assert_allclose(core.initial_state().w_m, np.zeros(3))

    with_readings: MsfInitMeasurement = core.create_init_measurement(True)
    with_readings.set_w_m(np.array([0.1, 0.2, 0.3]))
    with_readings.set_a_m(np.array([0.0, 0.0, 9.81]))
    core.apply_init_measurement(with_readings)
    np.testing.assert_allclose(core.initial_state().w_m, [0.1, 0.2, 0.3])
    np.testing.assert_allclose(core.initial_state().a_m, [0.0, 0.0, 9.81])


def test_two_init_measurements_combine() -> None:
    clock: ManualMsfClock = ManualMsfClock(1.0)
    core: MsfCore = MsfCore(MsfConfig(), clock=clock)

    position_init: MsfInitMeasurement = core.create_init_measurement()
    position_init.set_state_init_value(0, np.array([1.0, 2.0, 3.0]))
    assert core.add_measurement(position_init)

    clock.advance(0.5)
    bias_init: MsfInitMeasurement = core.create_init_measurement()
    bias_init.set_state_init_value(3, np.array([0.01, -0.02, 0.03]))
    assert core.add_measurement(bias_init)

    core.start()
    state: MsfState = core.current_state()

    np.testing.assert_allclose(state.get(0), [1.0, 2.0, 3.0])
    np.testing.assert_allclose(state.get(3), [0.01, -0.02, 0.03])
    assert state.get_state_var(0).has_reset_value
    assert state.get_state_var(3).has_reset_value
    assert not state.get_state_var(CoreStateIndex.V).has_reset_value
    assert state.time == pytest.approx(1.5)


def test_init_measurement_after_start_raises() -> None:
    core: MsfCore = _build_core()
    core.start()
    init: MsfInitMeasurement = core.create_init_measurement()
    init.set_state_init_value(CoreStateIndex.P, np.ones(3))

    with pytest.raises(MsfProtocolError):
        core.add_measurement(init)

    with pytest.raises(MsfProtocolError):
        init.apply(core.current_state(), core)
