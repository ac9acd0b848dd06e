import numpy as np
import pytest

from pyFOCUS.CPU import StructuredMesh2D

from conftest import build_mesh, build_fe, DESIGN_BOX


def test_counts_and_ordering(mesh):
    assert mesh.nodes.shape == (17 * 17, 2)
    assert mesh.elements.shape == (16 * 16, 4)
    # nodes: x varies fastest
    np.testing.assert_allclose(mesh.nodes[1] - mesh.nodes[0], [0.125, 0.0])
    # elements: counter varies fastest along y
    np.testing.assert_allclose(mesh.centroids[1] - mesh.centroids[0], [0.0, 0.125])
    np.testing.assert_allclose(mesh.nodes[mesh.elements].mean(axis=1), mesh.centroids)


def test_quadrature_points_inside_elements(mesh):
    qp = mesh.quadrature_points
    x0 = mesh.nodes[mesh.elements[:, 0]]
    assert qp.shape == (len(mesh.elements), 4, 2)
    assert np.all(qp >= x0[:, None, :])
    assert np.all(qp <= x0[:, None, :] + 0.125)


def test_geometry_queries(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    assert design.shape == (8,)
    assert np.all(np.abs(mesh.centroids[design, 0]) < 0.25)

    boundary = mesh.boundary_nodes()
    assert boundary.shape == (4 * 16,)
    on_edge = np.isclose(np.abs(mesh.nodes[boundary]), 1.0).any(axis=1)
    assert np.all(on_edge)

    row = mesh.nodes_near_line(-0.5, x_range=(-0.5, 0.5))
    assert row.shape == (9,)
    np.testing.assert_allclose(mesh.nodes[row, 1], -0.5)

    with pytest.raises(ValueError):
        mesh.nodes_near_line(3.0)


def test_mesh_volume(mesh):
    assert mesh.volume == pytest.approx(4.0)
    assert mesh.As[0] == pytest.approx(0.125**2)


def test_integrate(mesh):
    FE = build_fe(mesh, mesh.elements_in_box(*DESIGN_BOX))

    assert FE.integrate(1.0) == pytest.approx(4.0)
    # bilinear fields are integrated exactly
    assert FE.integrate(lambda x: x[..., 0] * x[..., 1] + 1.0) == pytest.approx(4.0)
    assert FE.integrate(mesh.nodes[:, 0]**0) == pytest.approx(4.0)

    design = mesh.elements_in_box(*DESIGN_BOX)
    assert FE.integrate(1.0, elements=design) == pytest.approx(8 * 0.125**2)
    assert FE.integrate(np.ones(len(design)), elements=design) == pytest.approx(8 * 0.125**2)

    with pytest.raises(ValueError):
        FE.integrate(np.ones(5))


def test_assemble_vector_and_matrix(mesh):
    FE = build_fe(mesh, mesh.elements_in_box(*DESIGN_BOX))

    b = FE.assemble_vector(1.0)
    assert b.sum() == pytest.approx(4.0)

    M = FE.assemble_matrix(1.0, kind='mass')
    ones = np.ones(len(mesh.nodes))
    assert ones @ (M @ ones) == pytest.approx(4.0)
    assert abs(M - M.T).max() < 1e-14

    K = FE.assemble_matrix(1.0, kind='gradient')
    np.testing.assert_allclose(K @ ones, 0.0, atol=1e-12)
    # int |grad x|^2 = area
    x = mesh.nodes[:, 0]
    assert x @ (K @ x) == pytest.approx(4.0)

    with pytest.raises(ValueError):
        FE.assemble_matrix(1.0, kind='curl')


def test_line_source_integrates_length(mesh):
    FE = build_fe(mesh, mesh.elements_in_box(*DESIGN_BOX))
    assert FE.rhs.sum() == pytest.approx(1.0)

    FE.add_line_source(y=0.5, amplitude=2.0)
    assert FE.rhs.sum() == pytest.approx(1.0 + 2.0 * 2.0)

    FE.reset_sources()
    assert not FE.rhs.any()


def test_volume_source_integrates_area(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    FE.reset_sources()

    FE.add_volume_source(1.0)
    assert FE.rhs.sum() == pytest.approx(mesh.volume)
    assert FE.rhs.sum() == pytest.approx(4.0)

    # 8 cells of 0.125 x 0.125
    FE.reset_sources()
    FE.add_volume_source(2.0, elements=design)
    assert FE.rhs.sum() == pytest.approx(2.0 * 8 * 0.125**2)
    assert np.count_nonzero(FE.rhs) == 15


def test_point_sources_by_position(mesh):
    FE = build_fe(mesh, mesh.elements_in_box(*DESIGN_BOX))
    FE.reset_sources()
    FE.add_point_sources(1.0 + 1.0j, positions=np.array([[0.01, 0.49]]))

    node = np.argmin(np.linalg.norm(mesh.nodes - [0.0, 0.5], axis=1))
    assert FE.rhs[node] == 1.0 + 1.0j
    assert np.count_nonzero(FE.rhs) == 1

    with pytest.raises(ValueError):
        FE.add_point_sources(1.0)
    with pytest.raises(ValueError):
        FE.add_point_sources(1.0, node_ids=[0], positions=[[0.0, 0.0]])


def test_dirichlet_conditions(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    boundary = mesh.boundary_nodes()

    u, residual = FE.solve(np.zeros((len(design), 4)))
    assert residual < 1e-8
    np.testing.assert_array_equal(u[boundary], 0.0)
    assert np.abs(u).max() > 0

    FE.reset_dirichlet_boundary_conditions()
    assert not FE.kernel.has_cons
    assert FE.kernel.non_con_map.shape[0] == len(mesh.nodes)


def test_solve_shape_check(mesh):
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    with pytest.raises(ValueError):
        FE.solve(np.zeros(len(design)))


def test_free_space_field_decays_in_pml():
    mesh = build_mesh(32)
    design = mesh.elements_in_box(*DESIGN_BOX)
    FE = build_fe(mesh, design)
    u, _ = FE.solve()

    interior = np.all(np.abs(mesh.nodes) <= 0.75, axis=1)
    deep = np.any(np.abs(mesh.nodes) >= 0.9, axis=1)
    assert np.abs(u[deep]).max() < np.abs(u[interior]).max()


def test_aspect_ratio_warning(caplog):
    with caplog.at_level("WARNING"):
        StructuredMesh2D(nx=4, ny=16, lx=1.0, ly=1.0)
    assert "aspect ratio" in caplog.text
