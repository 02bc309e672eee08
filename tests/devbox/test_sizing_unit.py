"""Unit tests for Dev Drive sizing, the filter allow-list and host checks."""

import pytest

from devbox.common.errors import InsufficientSpaceError, UnsupportedPlatformError
from devbox.devdrive.filters import allowed_filters
from devbox.devdrive.host import MIN_WINDOWS_BUILD, ensure_supported
from devbox.devdrive.sizing import compute_dev_drive_size, shrink_size_mb


class TestComputeDevDriveSize:

    def test_large_system_volume(self):
        target = compute_dev_drive_size(1000, 250)
        assert target == 750
        assert shrink_size_mb(target) == 768000

    def test_small_system_volume_fails(self):
        with pytest.raises(InsufficientSpaceError) as exc_info:
            compute_dev_drive_size(260, 250)
        assert exc_info.value.system_size_gb == 260
        assert exc_info.value.os_drive_min_size_gb == 250

    def test_headroom_boundary(self):
        # 550 - 250 - 250 == 50, exactly the margin
        assert compute_dev_drive_size(550, 250) == 300
        with pytest.raises(InsufficientSpaceError):
            compute_dev_drive_size(549.9, 250)

    def test_zero_reserve(self):
        with pytest.raises(InsufficientSpaceError):
            compute_dev_drive_size(19, 0)
        assert compute_dev_drive_size(60, 0) == 60

    def test_fractional_sizes_round_for_shrink(self):
        target = compute_dev_drive_size(476.4, 100)
        assert shrink_size_mb(target) == 376 * 1024


class TestAllowedFilters:

    def test_base_filters(self):
        assert allowed_filters() == "MsSecFlt,ProcMon24"

    def test_gvfs(self):
        assert allowed_filters(enable_gvfs=True) == "MsSecFlt,ProcMon24,PrjFlt"

    def test_containers(self):
        assert allowed_filters(enable_containers=True) == "MsSecFlt,ProcMon24,wcifs,bindFlt"

    def test_all(self):
        assert allowed_filters(True, True) == "MsSecFlt,ProcMon24,PrjFlt,wcifs,bindFlt"


class TestEnsureSupported:

    def test_supported_build(self):
        assert ensure_supported(MIN_WINDOWS_BUILD) == MIN_WINDOWS_BUILD
        assert ensure_supported(26100) == 26100

    def test_old_build(self):
        with pytest.raises(UnsupportedPlatformError, match="19045"):
            ensure_supported(19045)

    def test_not_windows(self, monkeypatch):
        monkeypatch.setattr("devbox.devdrive.host.windows_build", lambda: None)
        with pytest.raises(UnsupportedPlatformError, match="requires Windows"):
            ensure_supported()
