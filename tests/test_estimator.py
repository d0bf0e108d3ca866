import pytest

from app.modules.modeling.domain.estimator import (
    QUANTITY_METHOD,
    RATIO_METHOD,
    estimate,
    quantity_estimate,
    ratio_estimate,
)
from app.shared.core.constants import ServiceCategory


def test_ratio_estimate():
    assert ratio_estimate(100.0, ServiceCategory.COMPUTE) == 65.0
    assert ratio_estimate(100.0, ServiceCategory.NETWORK) == 45.0
    assert ratio_estimate(-5.0, ServiceCategory.STORAGE) == 0.0


def test_network_free_egress():
    assert quantity_estimate(5000, 0.0085, ServiceCategory.NETWORK) == 0.0
    assert quantity_estimate(12240, 0.0085, ServiceCategory.NETWORK) == 17.0


def test_quantity_path_kept_when_plausible():
    result = estimate(ServiceCategory.STORAGE, source_cost=11.5, quantity=500, unit_price=0.0255)
    assert result.method == QUANTITY_METHOD
    assert result.oci_estimated_cost == 12.75
    assert result.savings_amount == -1.25


def test_zero_network_cost_is_plausible():
    result = estimate(ServiceCategory.NETWORK, source_cost=45.0, quantity=5000, unit_price=0.0085)
    assert result.method == QUANTITY_METHOD
    assert result.oci_estimated_cost == 0.0
    assert result.savings_pct == 100.0


def test_unit_mismatch_falls_back_to_ratio():
    result = estimate(ServiceCategory.COMPUTE, source_cost=10.0, quantity=1e6, unit_price=0.025)
    assert result.method == RATIO_METHOD
    assert result.quantity_based_cost == 25000.0
    assert result.oci_estimated_cost == 6.5
    assert result.savings_pct == 35.0


def test_other_is_always_ratio():
    result = estimate(ServiceCategory.OTHER, source_cost=100.0, quantity=10, unit_price=1.0)
    assert result.method == RATIO_METHOD
    assert result.quantity_based_cost is None
    assert result.oci_estimated_cost == 70.0


def test_zero_source_cost():
    result = estimate(ServiceCategory.COMPUTE, source_cost=0.0, quantity=100, unit_price=0.025)
    assert result.oci_estimated_cost == 0.0
    assert result.savings_pct == 0.0


def test_windows_license_from_quantity():
    result = estimate(
        ServiceCategory.COMPUTE, source_cost=100.0, quantity=200, unit_price=0.025,
        is_windows=True, windows_price=0.092, compute_base_price=0.025,
    )
    assert result.method == QUANTITY_METHOD
    assert result.windows_license_cost == pytest.approx(18.4)
    assert result.oci_estimated_cost == pytest.approx(23.4)
    assert result.savings_amount == pytest.approx(76.6)


def test_windows_license_scaled_without_quantity():
    result = estimate(
        ServiceCategory.COMPUTE, source_cost=100.0, quantity=None, unit_price=0.025,
        is_windows=True, windows_price=0.092, compute_base_price=0.025,
    )
    assert result.method == RATIO_METHOD
    assert result.windows_license_cost == pytest.approx(239.2)
    assert result.oci_estimated_cost == pytest.approx(304.2)


def test_windows_flag_ignored_outside_compute():
    result = estimate(
        ServiceCategory.STORAGE, source_cost=100.0, quantity=None, unit_price=0.0255,
        is_windows=True, windows_price=0.092, compute_base_price=0.025,
    )
    assert result.windows_license_cost == 0.0
