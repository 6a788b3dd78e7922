import numpy as np
import pytest

import adaptwave as aw


def pytest_configure(config):
    config.addinivalue_line("markers", "level_1: quick unit tests")
    config.addinivalue_line("markers", "level_2: solver and adaptation tests")
    config.addinivalue_line("markers", "level_3: complete simulation runs")


@pytest.fixture
def uniform_mesh():
    """[-1, 1]^2 refined twice: 16 cells of size 0.5"""
    return aw.meshing.HyperCube(refinement=2)


@pytest.fixture
def graded_mesh():
    """[-1, 1]^2 refined once, then the lower-left quadrant once more"""
    mesh = aw.meshing.HyperCube(refinement=1)
    mesh.locate(-0.75, -0.75).refine_flag = True
    mesh.prepare_coarsening_and_refinement()
    mesh.execute_coarsening_and_refinement()
    return mesh


@pytest.fixture
def petsc_options():
    """The global PETSc options database; names set through it are removed afterwards."""
    from petsc4py import PETSc

    opts = PETSc.Options()
    before = set(opts.getAll().keys())
    yield opts
    for name in set(opts.getAll().keys()) - before:
        opts.delValue(name)


@pytest.fixture
def assert_balanced():
    """Checker: face neighbours differ by at most one level"""

    def check(mesh):
        for cell in mesh.active_cells():
            for side in range(4):
                for neighbour in mesh.face_neighbours(cell, side):
                    assert abs(neighbour.level - cell.level) <= 1, (cell, neighbour)

    return check


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)
