import numpy as np
import pytest

import adaptwave as aw
from adaptwave.discretisation import Discretisation
from adaptwave.error_estimator import KellyErrorEstimator, kelly_error_indicator

pytestmark = pytest.mark.level_2


def test_linear_fields_have_no_jumps(uniform_mesh, graded_mesh):
    for mesh in (uniform_mesh, graded_mesh):
        disc = Discretisation(mesh)
        u = 0.3 + disc.coords[:, 0] - 2.0 * disc.coords[:, 1]

        eta = kelly_error_indicator(disc, u)

        assert eta.shape == (disc.n_active_cells,)
        np.testing.assert_allclose(eta, 0.0, atol=1.0e-12)


def test_kink_indicator(uniform_mesh):
    disc = Discretisation(uniform_mesh)
    u = np.abs(disc.coords[:, 0])

    eta = KellyErrorEstimator()(disc, u)

    # Normal derivative jumps by 2 along the whole side x = 0 of length 1/2
    expected = np.sqrt(np.sqrt(2.0) * 0.5 / 24.0 * 4.0 * 0.5)
    touching = np.isclose(disc.cell_origins[:, 0], -0.5) | np.isclose(disc.cell_origins[:, 0], 0.0)

    assert touching.sum() == 8
    np.testing.assert_allclose(eta[touching], expected)
    np.testing.assert_allclose(eta[~touching], 0.0, atol=1.0e-12)


def test_kink_across_refined_side(graded_mesh):
    disc = Discretisation(graded_mesh)
    u = np.abs(disc.coords[:, 0])

    eta = kelly_error_indicator(disc, u)

    # The coarse cell to the right of the refined quadrant sees both fine cells
    coarse = disc.cell_index(graded_mesh.locate(0.5, -0.5))
    assert eta[coarse] == pytest.approx(np.sqrt(np.sqrt(2.0) * 1.0 / 24.0 * 4.0 * 1.0))
    assert np.all(eta >= 0.0)


def test_boundary_faces_are_ignored():
    disc = Discretisation(aw.meshing.HyperCube(refinement=0))
    u = np.array([0.0, 5.0, 1.0, -3.0])

    np.testing.assert_array_equal(kelly_error_indicator(disc, u), [0.0])


def test_size_mismatch_rejected(uniform_mesh):
    disc = Discretisation(uniform_mesh)

    with pytest.raises(aw.InvalidStateSize):
        kelly_error_indicator(disc, np.zeros(disc.n_dofs + 1))
