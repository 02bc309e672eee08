"""Property-based tests for Dev Drive sizing.

For any system volume size and reserve, sizing either fails with
InsufficientSpaceError, or returns system size minus the reserve with
at least the safety margin left over and a shrink amount of the rounded
target in MB.
"""

import pytest
from hypothesis import given, settings, strategies as st

from devbox.common.errors import InsufficientSpaceError
from devbox.devdrive.sizing import (
    MIN_DEV_DRIVE_SIZE_GB,
    SAFETY_MARGIN_GB,
    compute_dev_drive_size,
    shrink_size_mb,
)


@given(
    system_size_gb=st.integers(min_value=1, max_value=16384),
    reserve_gb=st.integers(min_value=0, max_value=4096),
)
@settings(max_examples=200)
def test_sizing_accepts_exactly_the_safe_cases(system_size_gb, reserve_gb):
    headroom = system_size_gb - 2 * reserve_gb
    target = system_size_gb - reserve_gb

    if headroom < SAFETY_MARGIN_GB or target < MIN_DEV_DRIVE_SIZE_GB:
        with pytest.raises(InsufficientSpaceError):
            compute_dev_drive_size(system_size_gb, reserve_gb)
    else:
        result = compute_dev_drive_size(system_size_gb, reserve_gb)
        assert result == target
        assert shrink_size_mb(result) == target * 1024
