import numpy as np
import pytest

from pyFOCUS.CPU import (HelmholtzFilter, FieldFocusing, operator_sensitivity,
                         threshold_pullback, filter_pullback)
from pyFOCUS.Physics import Helmholtz, PhysicalParameters, material_coefficient_grad
from pyFOCUS.errors import InvalidDesignValue, LinearSystemFailure

from conftest import build_problem, build_fe, DESIGN_BOX, SMALL_DESIGN_BOX, TARGET, WIDTH


def directional_check(problem, desvars, seed, h=1e-6):
    rng = np.random.default_rng(seed)
    d = rng.standard_normal(problem.N())
    d /= np.linalg.norm(d)

    _, grad = problem.evaluate(desvars)
    g_plus, _ = problem.evaluate(desvars + h * d)
    g_minus, _ = problem.evaluate(desvars - h * d)

    fd = (g_plus - g_minus) / (2 * h)
    return fd, grad @ d


@pytest.mark.parametrize("intensity", ['field', 'gradient'])
@pytest.mark.parametrize("r_min", [0.1, 0.0])
def test_gradient_matches_finite_difference(intensity, r_min):
    problem = build_problem(intensity=intensity, r_min=r_min)
    rng = np.random.default_rng(10)
    desvars = rng.uniform(0.2, 0.8, problem.N())

    for seed in range(3):
        fd, analytic = directional_check(problem, desvars, seed)
        assert analytic == pytest.approx(fd, rel=1e-3, abs=1e-10 * abs(problem.evaluate(desvars)[0]))


def test_gradient_with_soft_projection():
    problem = build_problem(beta=1.0, volume_fraction=0.3)
    desvars = np.linspace(0.2, 0.8, problem.N())
    fd, analytic = directional_check(problem, desvars, seed=4)
    assert analytic == pytest.approx(fd, rel=1e-3)


def test_gradient_per_cell_on_small_design():
    problem = build_problem(design_box=SMALL_DESIGN_BOX, r_min=1e-3)
    desvars = np.array([0.35, 0.6])
    g0, grad = problem.evaluate(desvars)
    h = 1e-6
    for i in range(2):
        e = np.zeros(2)
        e[i] = h
        fd = (problem.evaluate(desvars + e)[0] - problem.evaluate(desvars - e)[0]) / (2 * h)
        assert grad[i] == pytest.approx(fd, rel=1e-3, abs=1e-10 * abs(g0))


def test_objective_is_positive(problem):
    problem.init_desvars()
    assert problem.objective() > 0
    assert problem.g_ref == pytest.approx(problem.objective())
    assert problem.f() == pytest.approx(-1.0)


def test_evaluate_leaves_state_untouched(problem):
    problem.init_desvars()
    p0 = problem.get_desvars().copy()
    g0 = problem.objective()
    grad0 = problem.gradient().copy()

    trial = np.full(problem.N(), 0.7)
    g, grad = problem.evaluate(trial)

    assert g != g0
    np.testing.assert_array_equal(trial, 0.7)
    np.testing.assert_array_equal(problem.get_desvars(), p0)
    assert problem.objective() == g0
    np.testing.assert_array_equal(problem.gradient(), grad0)


def test_evaluate_rejects_bad_designs(problem):
    with pytest.raises(InvalidDesignValue):
        problem.evaluate(np.full(problem.N(), 1.5))
    with pytest.raises(ValueError):
        problem.evaluate(np.full(problem.N() + 1, 0.5))


def test_minimized_objective_and_gradient(problem):
    problem.init_desvars()
    problem.set_desvars(np.full(problem.N(), 0.6))

    assert problem.iteration == 1
    assert problem.f() == pytest.approx(-problem.objective() / problem.g_ref)
    np.testing.assert_allclose(problem.nabla_f(), -problem.gradient() / problem.g_ref)

    step = np.full(problem.N(), 0.01)
    assert problem.f(step) == pytest.approx(problem.f() + step @ problem.nabla_f())


def test_volume_constraint():
    problem = build_problem(volume_fraction=0.3)
    problem.init_desvars()

    np.testing.assert_allclose(problem.get_desvars(), 0.3)
    assert problem.g()[0] == pytest.approx(0.0, abs=1e-12)
    assert problem.nabla_g().sum() == pytest.approx(1.0)

    rho = np.full(problem.N(), 0.5)
    assert problem.g(rho)[0] == pytest.approx(0.2)


def test_without_volume_constraint(problem):
    problem.init_desvars()
    np.testing.assert_allclose(problem.get_desvars(), 0.4)
    np.testing.assert_array_equal(problem.g(), [-1.0])
    np.testing.assert_array_equal(problem.nabla_g(), 0.0)
    assert problem.m() == 1
    assert problem.bounds() == (0.0, 1.0)


def test_failed_evaluation_keeps_design(problem, monkeypatch):
    problem.init_desvars()
    p0 = problem.get_desvars().copy()
    g0 = problem.objective()

    with pytest.raises(InvalidDesignValue):
        problem.set_desvars(np.full(problem.N(), -0.5))

    def failing_solve(rho=None):
        raise LinearSystemFailure("forced", residual=1.0)

    monkeypatch.setattr(problem.FE, "solve", failing_solve)
    with pytest.raises(LinearSystemFailure):
        problem.set_desvars(np.full(problem.N(), 0.9))

    np.testing.assert_array_equal(problem.get_desvars(), p0)
    assert problem.objective() == g0
    assert problem.iteration == 0


def test_set_beta_keeps_reference(problem):
    problem.init_desvars(np.linspace(0.2, 0.8, problem.N()))
    g_ref = problem.g_ref
    g8 = problem.objective()

    problem.set_beta(32.0)
    assert problem.beta == 32.0
    assert problem.g_ref == g_ref
    assert problem.objective() != g8
    assert problem.objective() == pytest.approx(problem.evaluate(problem.get_desvars())[0])

    with pytest.raises(ValueError):
        problem.set_beta(-1.0)
    assert problem.beta == 32.0


def test_logs(problem):
    problem.init_desvars()
    logs = problem.logs()
    assert set(logs) == {'iteration', 'intensity', 'beta', 'residual', 'adjoint residual'}
    assert logs['residual'] < 1e-8
    assert logs['adjoint residual'] < 1e-8
    assert not problem.ill_conditioned()


def test_analyze_binary_design(problem):
    problem.init_desvars()
    # 0.4 everywhere binarizes to air
    result = problem.analyze()
    g_air, _ = problem.evaluate(np.zeros(problem.N()))
    assert result['intensity'] == pytest.approx(g_air)
    assert result['field'].shape == (problem.FE.n_nodes,)

    soft = problem.analyze(binary=False)
    assert soft['intensity'] == pytest.approx(problem.objective())


def test_analyze_requires_design(problem):
    with pytest.raises(ValueError):
        problem.analyze()


def test_stage_functions(mesh):
    params = PhysicalParameters()
    rho_t = np.linspace(0.1, 0.9, 8).reshape(2, 4)
    z = np.full((2, 4), 1.0 + 2.0j)
    expected = -2 * np.real(material_coefficient_grad(params, rho_t) * z)
    np.testing.assert_allclose(operator_sensitivity(Helmholtz(params), rho_t, z), expected)

    sens = np.ones((2, 4))
    np.testing.assert_allclose(threshold_pullback(sens, rho_t, beta=0.0), 1.0)

    design = mesh.elements_in_box(*DESIGN_BOX)
    filter = HelmholtzFilter(mesh=mesh, design=design, r_min=0.1)
    rng = np.random.default_rng(11)
    p = rng.random(len(design))
    s = rng.standard_normal((len(design), 4))
    forward = (filter.to_quadrature(filter.dot(p)) * s).sum()
    assert forward == pytest.approx(p @ filter_pullback(filter, s), rel=1e-10)


def test_invalid_construction(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    filter = HelmholtzFilter(mesh=mesh, design=design, r_min=0.1)

    with pytest.raises(ValueError):
        FieldFocusing(FE=FE, filter=filter, target=TARGET, width=0.0)
    with pytest.raises(ValueError):
        FieldFocusing(FE=FE, filter=filter, target=TARGET, width=WIDTH, intensity='energy')
    with pytest.raises(ValueError):
        FieldFocusing(FE=FE, filter=filter, target=TARGET, width=WIDTH, volume_fraction=1.5)
    with pytest.raises(ValueError):
        FieldFocusing(FE=FE, filter=filter, target=TARGET, width=WIDTH, beta=-1.0)
    with pytest.raises(ValueError):
        FieldFocusing(FE=FE, filter=filter, target=TARGET, width=WIDTH, eta=1.5)

    other = HelmholtzFilter(mesh=mesh, design=design[:4], r_min=0.1)
    with pytest.raises(ValueError):
        FieldFocusing(FE=FE, filter=other, target=TARGET, width=WIDTH)


def test_visualize(problem):
    problem.init_desvars()
    assert problem.visualize_solution(binary=True) is not None
    assert problem.visualize_field() is not None

