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

import pytest

from oasis_msf.localization.msf.msf_clock import ManualMsfClock
from oasis_msf.localization.msf.msf_clock import SystemMsfClock
from oasis_msf.localization.msf.msf_types import stamp_to_seconds


def test_manual_clock_moves_only_when_told() -> None:
    clock: ManualMsfClock = ManualMsfClock(10.0)
    assert clock.now_seconds() == 10.0

    clock.advance(0.25)
    assert clock.now_seconds() == 10.25

    clock.set_time(3.0)
    assert clock.now_seconds() == 3.0

    with pytest.raises(ValueError):
        clock.advance(-1.0)
    with pytest.raises(ValueError):
        clock.set_time(float("nan"))


def test_system_clock_is_positive() -> None:
    assert SystemMsfClock().now_seconds() > 0.0


def test_stamp_to_seconds() -> None:
    assert stamp_to_seconds(2, 500_000_000) == pytest.approx(2.5)

    with pytest.raises(ValueError):
        stamp_to_seconds(2, 1_000_000_000)
