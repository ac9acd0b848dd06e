import numpy as np
import pytest

from pyFOCUS.CPU import MMA, PGA

from conftest import build_problem, BinaryTarget, SMALL_DESIGN_BOX


def test_pga_step_increases_intensity():
    problem = build_problem(design_box=SMALL_DESIGN_BOX, r_min=1e-3)
    problem.init_desvars(np.array([0.4, 0.4]))
    g0 = problem.objective()

    optimizer = PGA(problem, move=1e-3)
    optimizer.iter()

    assert problem.objective() >= g0
    assert np.abs(problem.get_desvars() - 0.4).max() == pytest.approx(1e-3)
    assert optimizer.iteration == 1


def test_pga_moves_toward_binary_target():
    problem = BinaryTarget([1.0, 0.0, 1.0, 0.0])
    optimizer = PGA(problem, move=0.05)
    g0 = problem.objective()

    for _ in range(5):
        optimizer.iter()

    np.testing.assert_allclose(problem.get_desvars(), [0.75, 0.25, 0.75, 0.25])
    assert problem.objective() > g0

    logs = optimizer.logs()
    assert logs['objective'] == pytest.approx(problem.f())
    assert logs['variable change'] > 0


def test_pga_projects_volume():
    problem = build_problem(volume_fraction=0.3)
    problem.init_desvars()

    optimizer = PGA(problem, move=0.1)
    optimizer.iter()

    desvars = problem.get_desvars()
    assert problem.g()[0] <= 1e-12
    assert desvars.min() >= 0.0 and desvars.max() <= 1.0


def test_pga_invalid_move():
    with pytest.raises(ValueError):
        PGA(BinaryTarget([1.0, 0.0]), move=0.0)


def test_pga_zero_gradient_keeps_design():
    problem = BinaryTarget([1.0, 0.0])
    problem.init_desvars(np.array([1.0, 0.0]))
    optimizer = PGA(problem)
    optimizer.iter()

    np.testing.assert_array_equal(problem.get_desvars(), [1.0, 0.0])
    assert optimizer.change == 0.0


def test_mma_iteration_stays_in_bounds():
    problem = build_problem(volume_fraction=0.3)
    problem.init_desvars()

    optimizer = MMA(problem, move=0.2)
    optimizer.iter()

    desvars = problem.get_desvars()
    assert desvars.min() >= 0.0 and desvars.max() <= 1.0
    assert np.abs(desvars - 0.3).max() <= 0.2 + 1e-12
    assert problem.g()[0] <= 1e-4
    assert problem.iteration == 1
    assert set(optimizer.logs()) >= {'objective', 'variable change', 'function change', 'intensity'}


def test_mma_improves_binary_target():
    problem = BinaryTarget([1.0, 0.0, 0.0, 1.0, 1.0])
    optimizer = MMA(problem, move=0.2)
    g0 = problem.objective()

    for _ in range(20):
        optimizer.iter()

    assert problem.objective() > g0
    assert np.all(problem.get_desvars()[[0, 3, 4]] > 0.5)
    assert np.all(problem.get_desvars()[[1, 2]] < 0.5)


def test_optimizer_keeps_initialized_design():
    problem = BinaryTarget([1.0, 0.0])
    problem.init_desvars(np.array([0.3, 0.6]))
    MMA(problem)
    np.testing.assert_array_equal(problem.get_desvars(), [0.3, 0.6])


def test_optimizer_initializes_fresh_problem():
    problem = BinaryTarget([1.0, 0.0])
    assert problem.get_desvars() is None
    PGA(problem)
    np.testing.assert_array_equal(problem.get_desvars(), [0.5, 0.5])


def test_converged_flags():
    problem = BinaryTarget([1.0, 0.0])
    problem.init_desvars(np.array([1.0, 0.0]))
    optimizer = PGA(problem, change_tol=1e-8, fun_tol=1e-8)
    assert not optimizer.converged()

    optimizer.iter()
    assert optimizer.converged()
