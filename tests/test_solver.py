import numpy as np
import pytest

from pyFOCUS.CPU import HelmholtzKernel, SPLU
from pyFOCUS.errors import LinearSystemFailure

from conftest import build_fe, DESIGN_BOX


@pytest.fixture
def kernel(mesh):
    return HelmholtzKernel(mesh=mesh, design=mesh.elements_in_box(*DESIGN_BOX))


def random_rho(kernel, seed=0):
    rng = np.random.default_rng(seed)
    return rng.uniform(0.2, 0.8, size=(kernel.design.shape[0], 4))


def random_field(n, seed):
    rng = np.random.default_rng(seed)
    return rng.standard_normal(n) + 1j * rng.standard_normal(n)


def test_operator_is_complex_symmetric(kernel):
    A = kernel.construct(random_rho(kernel))
    assert A.shape == kernel.shape
    assert abs(A - A.T).max() < 1e-12
    # absorbing layer and lossy material break hermiticity
    assert abs(A - A.conj().T).max() > 1e-6


def test_construct_shape_check(kernel):
    with pytest.raises(ValueError):
        kernel.construct(np.zeros(kernel.design.shape[0]))


def test_process_grad_matches_operator_change(kernel):
    U = random_field(kernel.shape[0], 1)
    W = random_field(kernel.shape[0], 2)

    rho0 = random_rho(kernel)
    z = kernel.process_grad(U, W)
    assert z.shape == rho0.shape

    # A is affine in the coefficient, so a single entry change is captured exactly
    for e, q in [(0, 0), (3, 2), (7, 3)]:
        rho1 = rho0.copy()
        rho1[e, q] += 0.1
        dA = kernel.construct(rho1) - kernel.construct(rho0)
        dc = kernel.coefficient(rho1)[e, q] - kernel.coefficient(rho0)[e, q]
        expected = W.conj() @ (dA @ U)
        assert expected == pytest.approx(dc * z[e, q], rel=1e-8)


def test_dot_requires_rho(kernel):
    with pytest.raises(ValueError):
        kernel.dot(np.zeros(kernel.shape[0]))

    kernel.set_rho(random_rho(kernel))
    with pytest.raises(ValueError):
        kernel.dot(np.zeros(5))


def test_forward_solve_residual(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    rho = random_rho(FE.kernel)

    u, residual = FE.solver.solve(FE.rhs, rho=rho)
    assert residual < 1e-8

    free = FE.kernel.non_con_map
    r = (FE.kernel.construct(rho) @ u - FE.rhs)[free]
    assert np.linalg.norm(r) < 1e-8 * np.linalg.norm(FE.rhs[free])
    np.testing.assert_array_equal(u[FE.kernel.constraints], 0.0)


def test_adjoint_solve_uses_forward_operator(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    rho = random_rho(FE.kernel, seed=5)
    FE.solver.solve(FE.rhs, rho=rho)

    r = random_field(FE.n_nodes, 6)
    r[FE.kernel.constraints] = 0.0
    w, residual = FE.solver.solve_adjoint(r)
    assert residual < 1e-8

    free = FE.kernel.non_con_map
    A = FE.kernel.construct(rho)
    lhs = (A.conj().T @ w)[free]
    np.testing.assert_allclose(lhs, r[free], atol=1e-8 * np.linalg.norm(r))

    # adjoint identity: <w, A u> = <A^H w, u> on the free nodes
    u = random_field(FE.n_nodes, 7)
    u[FE.kernel.constraints] = 0.0
    assert w.conj() @ (A @ u) == pytest.approx((A.conj().T @ w).conj() @ u, rel=1e-10)


def test_adjoint_without_factorization(kernel):
    solver = SPLU(kernel=kernel)
    with pytest.raises(LinearSystemFailure):
        solver.solve_adjoint(np.ones(kernel.shape[0]))


def test_reset_discards_factorization(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    FE.solver.solve(FE.rhs, rho=random_rho(FE.kernel))
    assert FE.solver.factor is not None

    FE.solver.reset()
    assert FE.solver.factor is None
    with pytest.raises(LinearSystemFailure):
        FE.solver.solve_adjoint(FE.rhs)


def test_residual_above_tolerance(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    solver = SPLU(kernel=FE.kernel, tol=1e-30)

    with pytest.raises(LinearSystemFailure) as info:
        solver.solve(FE.rhs, rho=random_rho(FE.kernel))
    assert info.value.residual > 1e-30


def test_unknown_solve_options_are_rejected(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    with pytest.raises(TypeError):
        FE.solver.solve(FE.rhs, rho=random_rho(FE.kernel), use_last=True)
    with pytest.raises(TypeError):
        FE.solver.solve_adjoint(FE.rhs, trans='T')

    # the finite-element wrapper factorizes and solves with the plain signature
    u, residual = FE.solve(random_rho(FE.kernel))
    assert residual < 1e-8
    assert FE.solver.factor is not None
