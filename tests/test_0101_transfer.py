import numpy as np
import pytest

import adaptwave as aw
from adaptwave.adaptivity import AdaptiveMeshController, SolutionTransfer
from adaptwave.discretisation import Discretisation
from adaptwave.meshing import HyperCube
from adaptwave.parameters import RefinementPolicy
from adaptwave.systems import SimulationState

pytestmark = pytest.mark.level_2


def bilinear(coords):
    x, y = coords[:, 0], coords[:, 1]
    return 1.0 + 2.0 * x - y + 0.5 * x * y


def transfer_through(mesh, fields):
    disc = Discretisation(mesh)
    mesh.prepare_coarsening_and_refinement()

    transfer = SolutionTransfer(disc)
    transfer.prepare_for_coarsening_and_refinement([f(disc.coords) for f in fields])
    mesh.execute_coarsening_and_refinement()

    new_disc = Discretisation(mesh, generation=1)
    values = transfer.interpolate(new_disc)
    for v in values:
        new_disc.constraints.distribute(v)
    return new_disc, values


def test_unchanged_mesh_is_identity(uniform_mesh, rng):
    disc = Discretisation(uniform_mesh)
    u = rng.standard_normal(disc.n_dofs)

    transfer = SolutionTransfer(disc)
    transfer.prepare_for_coarsening_and_refinement([u])
    assert not uniform_mesh.execute_coarsening_and_refinement()

    (v,) = transfer.interpolate(Discretisation(uniform_mesh))
    np.testing.assert_array_equal(u, v)


def test_refinement_is_exact_for_bilinear_fields(uniform_mesh):
    uniform_mesh.locate(0.1, 0.1).refine_flag = True

    disc, (u,) = transfer_through(uniform_mesh, [bilinear])

    assert disc.n_active_cells == 19
    assert disc.constraints.n_constraints == 4
    np.testing.assert_allclose(u, bilinear(disc.coords), atol=1.0e-14)


def test_coarsening_injects_corner_values(uniform_mesh):
    for x, y in [(0.25, 0.25), (0.75, 0.25), (0.25, 0.75), (0.75, 0.75)]:
        uniform_mesh.locate(x, y).coarsen_flag = True

    disc, (u, v) = transfer_through(uniform_mesh, [bilinear, lambda c: c[:, 0] ** 2])

    assert disc.n_active_cells == 13
    np.testing.assert_allclose(u, bilinear(disc.coords), atol=1.0e-14)

    # Corner values survive coarsening unchanged; hanging nodes follow their masters
    free = ~disc.constraints.is_constrained
    np.testing.assert_allclose(v[free], disc.coords[free, 0] ** 2, atol=1.0e-14)
    assert disc.constraints.is_consistent(v)


def test_transfer_requires_capture(uniform_mesh):
    disc = Discretisation(uniform_mesh)
    transfer = SolutionTransfer(disc)

    with pytest.raises(aw.AdaptWaveError):
        transfer.interpolate(disc)

    uniform_mesh.refine_global()
    with pytest.raises(aw.AdaptWaveError):
        transfer.prepare_for_coarsening_and_refinement([np.zeros(disc.n_dofs)])


def test_controller_without_marking_keeps_discretisation(uniform_mesh, rng):
    disc = Discretisation(uniform_mesh)
    U = rng.standard_normal(disc.n_dofs)
    state = SimulationState(disc, U=U)
    controller = AdaptiveMeshController(
        RefinementPolicy(min_level=0, max_level=4, refine_fraction=0.0, coarsen_fraction=0.0)
    )

    assert controller.adapt(state, disc) is disc
    np.testing.assert_array_equal(state.U, U)
    assert state.generation == 0


def test_controller_with_kelly_indicator():
    mesh = HyperCube(refinement=2)
    disc = Discretisation(mesh)
    U = np.abs(disc.coords[:, 0]) + disc.coords[:, 1]
    V = bilinear(disc.coords)
    state = SimulationState(disc, U=U, V=V, time=0.25)
    state.step = 3

    controller = AdaptiveMeshController(RefinementPolicy(min_level=1, max_level=3))
    new_disc = controller.adapt(state, disc)

    assert new_disc is not disc
    assert new_disc.generation == 1
    assert state.generation == 1
    assert state.snapshot() == (0.25, 3, 1)
    state.check(new_disc)

    # Only cells along the kink at x = 0 carry an indicator
    indicators = controller.last_indicators
    near_kink = np.isclose(disc.cell_origins[:, 0], -0.5) | np.isclose(disc.cell_origins[:, 0], 0.0)
    assert np.all(indicators[near_kink] > 0.0)
    np.testing.assert_allclose(indicators[~near_kink], 0.0, atol=1.0e-12)
    assert mesh.active_levels().max() == 3

    assert new_disc.constraints.is_consistent(state.U)
    assert new_disc.constraints.is_consistent(state.V)
    np.testing.assert_allclose(state.V, bilinear(new_disc.coords), atol=1.0e-13)
    np.testing.assert_array_equal(state.U_prev, state.U)
    np.testing.assert_array_equal(state.V_prev, state.V)
