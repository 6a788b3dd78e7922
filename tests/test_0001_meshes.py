# Construction, point location and flag handling of the hierarchical quad mesh

import numpy as np
import pytest

import adaptwave as aw
from adaptwave.meshing import HyperCube, StructuredQuadBox, boundaries_2D

pytestmark = pytest.mark.level_1


def test_create_hypercube():
    mesh = HyperCube(refinement=2)

    assert mesh.n_active_cells == 16
    assert mesh.n_levels == 3
    assert mesh.minCoords == (-1.0, -1.0)
    assert mesh.maxCoords == (1.0, 1.0)
    assert set(mesh.active_levels()) == {2}


def test_create_sqb_2d_mesh():
    mesh = StructuredQuadBox(elementRes=(2, 1), minCoords=(0.0, 0.0), maxCoords=(2.0, 1.0), refinement=3)

    assert mesh.n_active_cells == 128
    assert mesh.boundaries is boundaries_2D


def test_non_square_root_cells_rejected():
    with pytest.raises(ValueError):
        StructuredQuadBox(elementRes=(1, 1), minCoords=(0.0, 0.0), maxCoords=(2.0, 1.0))


def test_active_cell_order_is_depth_first():
    mesh = HyperCube(refinement=1)
    origins = [(c.x0, c.y0) for c in mesh.active_cells()]

    assert origins == [(-1.0, -1.0), (0.0, -1.0), (-1.0, 0.0), (0.0, 0.0)]


def test_generation_counts_topology_changes(uniform_mesh):
    assert uniform_mesh.generation == 2

    uniform_mesh.locate(0.1, 0.1).refine_flag = True
    uniform_mesh.prepare_coarsening_and_refinement()
    assert uniform_mesh.execute_coarsening_and_refinement()
    assert uniform_mesh.generation == 3

    # Nothing flagged: no change
    assert not uniform_mesh.execute_coarsening_and_refinement()
    assert uniform_mesh.generation == 3


def test_locate(uniform_mesh):
    cell = uniform_mesh.locate(0.0, 0.0)
    assert (cell.x0, cell.y0, cell.size) == (0.0, 0.0, 0.5)

    cell = uniform_mesh.locate(1.0, 1.0)
    assert (cell.x0, cell.y0) == (0.5, 0.5)

    assert uniform_mesh.locate(1.1, 0.0) is None
    assert uniform_mesh.locate(0.0, -1.5) is None


def test_face_neighbours(uniform_mesh):
    corner = uniform_mesh.locate(-0.9, -0.9)

    assert uniform_mesh.face_neighbours(corner, 0) == []
    assert uniform_mesh.face_neighbours(corner, 2) == []

    (right,) = uniform_mesh.face_neighbours(corner, 1)
    assert (right.x0, right.y0) == (-0.5, -1.0)

    (top,) = uniform_mesh.face_neighbours(corner, 3)
    assert (top.x0, top.y0) == (-1.0, -0.5)


def test_face_neighbours_across_refined_side(graded_mesh):
    coarse = graded_mesh.locate(0.5, -0.5)
    neighbours = graded_mesh.face_neighbours(coarse, 0)

    assert len(neighbours) == 2
    assert all(n.level == coarse.level + 1 for n in neighbours)


def test_refinement_propagates_to_coarser_neighbours(graded_mesh, assert_balanced):
    assert graded_mesh.n_active_cells == 7

    # The upper-right child of the refined quadrant touches both coarse neighbours
    graded_mesh.locate(-0.25, -0.25).refine_flag = True
    graded_mesh.prepare_coarsening_and_refinement()

    assert graded_mesh.locate(0.5, -0.5).refine_flag
    assert graded_mesh.locate(-0.5, 0.5).refine_flag
    assert not graded_mesh.locate(0.5, 0.5).refine_flag

    graded_mesh.execute_coarsening_and_refinement()

    assert graded_mesh.n_active_cells == 16
    assert_balanced(graded_mesh)


def test_coarsening_complete_group(uniform_mesh):
    for x, y in [(-0.75, -0.75), (-0.25, -0.75), (-0.75, -0.25), (-0.25, -0.25)]:
        uniform_mesh.locate(x, y).coarsen_flag = True

    uniform_mesh.prepare_coarsening_and_refinement()
    assert len(uniform_mesh.coarsening_groups()) == 1

    assert uniform_mesh.execute_coarsening_and_refinement()
    assert uniform_mesh.n_active_cells == 13
    assert uniform_mesh.locate(-0.5, -0.5).level == 1


def test_coarsening_incomplete_group_withdrawn(uniform_mesh):
    for x, y in [(-0.75, -0.75), (-0.25, -0.75), (-0.75, -0.25)]:
        uniform_mesh.locate(x, y).coarsen_flag = True

    uniform_mesh.prepare_coarsening_and_refinement()
    assert not any(c.coarsen_flag for c in uniform_mesh.active_cells())
    assert not uniform_mesh.execute_coarsening_and_refinement()
    assert uniform_mesh.n_active_cells == 16


def test_coarsening_blocked_by_finer_neighbour(uniform_mesh, assert_balanced):
    uniform_mesh.locate(0.25, -0.75).refine_flag = True
    uniform_mesh.prepare_coarsening_and_refinement()
    uniform_mesh.execute_coarsening_and_refinement()

    for x, y in [(-0.75, -0.75), (-0.25, -0.75), (-0.75, -0.25), (-0.25, -0.25)]:
        uniform_mesh.locate(x, y).coarsen_flag = True

    uniform_mesh.prepare_coarsening_and_refinement()
    assert not uniform_mesh.execute_coarsening_and_refinement()
    assert_balanced(uniform_mesh)


def test_refine_wins_over_coarsen(uniform_mesh):
    cell = uniform_mesh.locate(0.1, 0.1)
    cell.refine_flag = True
    cell.coarsen_flag = True

    uniform_mesh.prepare_coarsening_and_refinement()

    assert cell.refine_flag
    assert not cell.coarsen_flag


def test_boundary_mask(uniform_mesh):
    coords = np.array([[-1.0, 0.0], [0.0, 0.0], [1.0, 1.0], [0.0, -1.0]])

    np.testing.assert_array_equal(uniform_mesh.boundary_mask(coords), [True, False, True, True])
    np.testing.assert_array_equal(uniform_mesh.boundary_mask(coords, "Left"), [True, False, False, False])
    np.testing.assert_array_equal(
        uniform_mesh.boundary_mask(coords, boundaries_2D.Top), [False, False, True, False]
    )

    with pytest.raises(ValueError):
        uniform_mesh.boundary_mask(coords, "Front")


def test_mesh_view(uniform_mesh, capsys):
    uniform_mesh.view()
    out = capsys.readouterr().out

    assert "QuadMesh" in out
    assert "Number of active cells: 16" in out
