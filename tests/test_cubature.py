"""End-to-end tests of the doubling controller on both rules."""

import numpy as np
import pytest

from guaranteed_qmc import (
    AdaptiveCubature,
    ConfigurationWarning,
    CubatureState,
    IntegrandError,
    IntegrationSpec,
    cub_lattice,
    cub_sobol,
    integrate,
)
from guaranteed_qmc.cone import ConeCertifier
from guaranteed_qmc.cubature import IterationRecord, SampleState, SobolRule
from guaranteed_qmc.spectral import fast_transform, walsh_pass


def product(x):
    return np.prod(x, axis=1)


def square(x):
    return x[:, 0] ** 2


def peak(x):
    return np.exp(-1e4 * np.sum((x - 0.5) ** 2, axis=1))


# ── Concrete scenarios ───────────────────────────────────────────────────────


@pytest.mark.parametrize("rule", ["lattice", "sobol"])
def test_product_of_coordinates(rule):
    spec = IntegrationSpec.create(hyperbox=[[0, 0], [1, 1]], rule=rule, abstol=1e-5, reltol=0.1, seed=7)
    result = integrate(product, spec)
    assert result.estimate == pytest.approx(0.25, abs=0.025)
    assert result.state is CubatureState.DONE
    assert not result.overbudget


def test_square_lattice_to_absolute_tolerance():
    result = cub_lattice(square, [[0], [1]], abstol=1e-5, reltol=0.0, seed=3)
    assert abs(result.estimate - 1.0 / 3.0) <= 1e-5
    assert result.error_bound <= 1e-5
    assert not result.overbudget


def test_square_sobol_to_absolute_tolerance():
    result = cub_sobol(square, d=1, abstol=1e-4, reltol=0.0, seed=3)
    assert abs(result.estimate - 1.0 / 3.0) <= 1e-4
    assert not result.overbudget


@pytest.mark.parametrize("rule", ["lattice", "sobol"])
def test_peaked_integrand_runs_over_budget(rule):
    spec = IntegrationSpec.create(
        hyperbox=[[0, 0], [1, 1]], rule=rule, abstol=1e-10, reltol=0.0, mmin=10, mmax=10, seed=0
    )
    result = integrate(peak, spec)
    assert result.overbudget
    assert result.state is CubatureState.OVERBUDGET
    assert result.sample_count == 2 ** 10
    assert np.isfinite(result.estimate)
    assert result.exitflag.startswith("1")
    assert not result.guaranteed


def test_normal_measure_with_finite_bounds_is_corrected():
    with pytest.warns(ConfigurationWarning):
        result = cub_sobol(square, hyperbox=[[0], [1]], measure="normal", abstol=1e-3,
                           reltol=0.0, mmax=16, seed=5)
    assert any("normal measure" in message for message in result.diagnostics)
    assert np.all(np.isinf(result.spec.hyperbox))
    # E[X^2] = 1 for a standard normal X
    assert result.estimate == pytest.approx(1.0, abs=0.05)


def test_normal_measure_on_lattice():
    result = cub_lattice(lambda x: x[:, 0] ** 2 * x[:, 1] ** 2 + 0.11, [[-np.inf] * 2, [np.inf] * 2],
                         measure="normal", abstol=1e-2, reltol=0.0, transform="C1sin", mmax=18, seed=2)
    assert result.estimate == pytest.approx(1.11, abs=0.1)


# ── Properties of the controller ─────────────────────────────────────────────


def test_sample_counts_double_from_mmin():
    spec = IntegrationSpec.create(hyperbox=[[0, 0], [1, 1]], abstol=1e-12, reltol=0.0,
                                  mmin=8, mmax=12, seed=1)
    result = integrate(peak, spec)
    counts = [record.sample_count for record in result.history]
    assert counts == [2 ** m for m in range(8, 8 + len(counts))]
    assert [record.m for record in result.history] == list(range(8, 8 + len(counts)))
    assert result.sample_count == counts[-1]
    assert result.sample_count <= 2 ** 12


def test_overbudget_iff_tolerance_never_met():
    for abstol, mmax in ((1e-2, 14), (1e-12, 11)):
        spec = IntegrationSpec.create(hyperbox=[[0], [1]], rule="sobol", abstol=abstol, reltol=0.0,
                                      mmin=8, mmax=mmax, seed=4)
        result = integrate(lambda x: np.exp(x[:, 0]), spec)
        last = result.history[-1]
        if result.overbudget:
            assert result.sample_count == 2 ** mmax
            assert result.state is CubatureState.OVERBUDGET
        else:
            assert result.state is CubatureState.DONE
            assert last.error_bound <= abstol
    assert result.overbudget


def test_tiny_fudge_exposes_cone_violation():
    # Factors of the necessary conditions are then ~1, so any change of a
    # block sum between sample sizes fails them
    spec = IntegrationSpec.create(hyperbox=[[0, 0], [1, 1]], rule="sobol", abstol=1e-30, reltol=0.0,
                                  fudge=lambda m: 1e-12, mmin=6, mmax=9, seed=8)
    result = integrate(lambda x: np.exp(x[:, 0] + 2 * x[:, 1]), spec)
    assert result.cone_violated
    assert result.overbudget
    assert result.exitflag == "1 2"
    assert result.history[0].cone_ok
    assert not all(record.cone_ok for record in result.history)


def test_cone_checks_use_sums_stored_by_earlier_steps():
    spec = IntegrationSpec.create(hyperbox=[[0, 0], [1, 1]], rule="sobol", abstol=1e-12, reltol=0.0,
                                  mmin=6, mmax=11, seed=2)
    cubature = AdaptiveCubature(spec)
    result = cubature.run(peak)
    certifier = ConeCertifier(spec.fudge, spec.lag)
    history = result.history
    assert len(history) == 6

    for j, record in enumerate(history):
        earlier = [history[j - i].finer_tail_sums[i - 1] for i in range(1, min(j, spec.lag) + 1)]
        assert record.cone_ok == certifier.necessary_conditions_hold(record.tail_sum, earlier)
    assert result.cone_violated == (not all(record.cone_ok for record in history))


def _certify_after_one_step(stored_finer_sums):
    spec = IntegrationSpec.create(hyperbox=[[0], [1]], rule="sobol", mmin=6, mmax=8, seed=0)
    cubature = AdaptiveCubature(spec)
    values = np.random.default_rng(5).random(2 ** 7)
    sample = SampleState(values, walsh_pass)
    tail_sum, _ = cubature.certifier.tail_sums(sample.coefficients, sample.rank_map, 7)
    finer = tuple(tail_sum * factor for factor in stored_finer_sums)
    cubature.history.append(IterationRecord(
        m=6, sample_count=64, tail_sum=1.0, finer_tail_sums=finer,
        estimate=0.5, error_bound=1.0, cone_ok=True,
    ))
    record, _, _ = cubature._certify(sample, 7)
    return record, cubature


def test_cone_check_compares_with_first_finer_sum_of_previous_step():
    record, cubature = _certify_after_one_step([1.0, 10.0, 10.0, 10.0])
    assert record.cone_ok
    assert not cubature.cone_violated

    record, cubature = _certify_after_one_step([10.0, 1.0, 1.0, 1.0])
    assert not record.cone_ok
    assert cubature.cone_violated


def test_first_step_never_flags_the_cone():
    spec = IntegrationSpec.create(hyperbox=[[0], [1]], abstol=1e-12, reltol=0.0, mmin=8, mmax=8, seed=0)
    result = integrate(peak, spec)
    assert not result.cone_violated
    assert result.exitflag == "1"


def test_estimate_is_corrected_on_termination():
    spec = IntegrationSpec.create(hyperbox=[[0], [2]], abstol=0.0, reltol=0.05, seed=6)
    result = integrate(lambda x: x[:, 0] ** 3, spec)
    assert result.state is CubatureState.DONE
    assert result.estimate == pytest.approx(4.0, rel=0.05)
    assert result.estimate == result.history[-1].estimate


def test_same_seed_reproduces_result():
    spec = IntegrationSpec.create(hyperbox=[[0, 0], [1, 1]], abstol=1e-6, reltol=0.0, seed=123)
    first = integrate(product, spec)
    second = integrate(product, spec)
    assert first.estimate == second.estimate
    assert first.sample_count == second.sample_count


def test_repeated_trials_meet_the_tolerance():
    truth = (np.e - 1.0) ** 2
    tolerance = 1e-4
    hits = 0
    for seed in range(20):
        result = cub_lattice(lambda x: np.exp(x[:, 0] + x[:, 1]), [[0, 0], [1, 1]],
                             abstol=tolerance, reltol=0.0, seed=seed)
        hits += abs(result.estimate - truth) <= tolerance
    assert hits >= 18


# ── Incremental state ────────────────────────────────────────────────────────


def test_sample_state_doubling_matches_direct_transform():
    values = np.random.default_rng(9).standard_normal(512)
    sample = SampleState(values[:256], walsh_pass)
    sample.double(values[256:], lag=4)
    np.testing.assert_allclose(sample.coefficients, fast_transform(values, walsh_pass), atol=1e-14)
    np.testing.assert_array_equal(np.sort(sample.rank_map.kappa), np.arange(512))
    assert sample.n == 512
    assert sample.mean() == pytest.approx(np.mean(values))


def test_custom_rule_is_used():
    spec = IntegrationSpec.create(dimension=2, rule="sobol", abstol=1e-4, reltol=0.0, seed=1)
    rule = SobolRule(2, rng=np.random.default_rng(99))
    result = AdaptiveCubature(spec, rule=rule).run(product)
    assert result.estimate == pytest.approx(0.25, abs=1e-3)


def test_controller_runs_once():
    spec = IntegrationSpec.create(hyperbox=[[0], [1]], seed=0)
    controller = AdaptiveCubature(spec)
    controller.run(square)
    with pytest.raises(RuntimeError):
        controller.run(square)


# ── Integrand handling ───────────────────────────────────────────────────────


def test_non_finite_values_abort_the_call():
    with pytest.raises(IntegrandError, match="non-finite"):
        cub_lattice(lambda x: np.full(x.shape[0], np.nan), [[0], [1]], seed=0)


def test_wrong_number_of_values_aborts_the_call():
    with pytest.raises(IntegrandError):
        cub_sobol(lambda x: np.ones(3), d=2, seed=0)


def test_object_with_evaluate_method():
    class Square:
        def evaluate(self, x):
            return x[:, 0] ** 2

    result = cub_sobol(Square(), d=1, abstol=1e-4, reltol=0.0, seed=2)
    assert result.estimate == pytest.approx(1.0 / 3.0, abs=1e-4)


def test_non_callable_integrand_uses_default_problem():
    spec = IntegrationSpec.create(hyperbox=[[0], [1]], abstol=1e-5, reltol=0.0, seed=1)
    with pytest.warns(ConfigurationWarning, match="not a function"):
        result = integrate("x**2", spec)
    assert result.estimate == pytest.approx(1.0 / 3.0, abs=1e-5)
    assert result.diagnostics


def test_malformed_hyperbox_integrates_default_problem():
    with pytest.warns(ConfigurationWarning):
        result = cub_lattice(lambda x: x[:, 0] * x[:, 1], [[0, 0, 0]], abstol=1e-5, reltol=0.0, seed=1)
    assert result.spec.fallback_problem
    assert result.estimate == pytest.approx(1.0 / 3.0, abs=1e-5)


def test_column_shaped_output_is_accepted():
    result = cub_lattice(lambda x: x ** 2, [[0], [1]], abstol=1e-5, reltol=0.0, seed=4)
    assert result.estimate == pytest.approx(1.0 / 3.0, abs=1e-5)


# ── Reporting ────────────────────────────────────────────────────────────────


def test_result_reporting(capsys):
    result = cub_lattice(product, [[0, 0], [1, 1]], abstol=1e-4, reltol=0.0, seed=0, verbose=True)
    out = capsys.readouterr().out
    assert "m = 10" in out
    assert "Finished in state done" in out
    info = result.info()
    assert info["exitflag"] == result.exitflag
    assert info["sample_count"] == result.sample_count
    assert result.flags == {"overbudget": False, "cone_violated": result.cone_violated}
    assert result.elapsed_time >= 0.0
    assert "exitflag=" in repr(result)


def test_verbose_lattice_rule_reports_its_generator(capsys):
    cub_lattice(square, [[0], [1]], abstol=1e-3, seed=0, verbose=True)
    out = capsys.readouterr().out
    assert "Korobov generator a = 17797" in out


def test_nan_abstol_is_replaced_before_integrating():
    with pytest.warns(ConfigurationWarning, match="Absolute tolerance"):
        result = cub_lattice(square, [[0], [1]], abstol=float("nan"), reltol=0.0, mmax=14, seed=1)
    assert result.state is CubatureState.DONE
    assert result.estimate == pytest.approx(1.0 / 3.0, abs=1e-4)
