# Complete runs of the adaptive pulse simulation on small meshes

import h5py
import numpy as np
import pytest

import adaptwave as aw
from adaptwave import RunState, SimulationConfig, WaveSimulation
from adaptwave.__main__ import main

pytestmark = [pytest.mark.level_3, pytest.mark.filterwarnings("ignore::UserWarning")]

k = 1.0 / 64


def small_config(**changes):
    config = SimulationConfig(
        initial_global_refinement=2,
        n_pre_refinement_steps=1,
        end_time=0.1,
        output_path=None,
        verbose=False,
    )
    return config.replace(**changes)


def test_run_sequence():
    sim = WaveSimulation(small_config())
    history = sim.run()

    assert sim.run_state is RunState.TERMINATED
    assert sim.pre_refinement_step == 1
    assert [record.step for record in history] == [1, 1, 2, 3, 4, 5, 6, 7]
    assert len(sim.main_loop_steps) == 6
    assert sim.state.time > 0.1
    assert sim.elapsed > 0.0

    levels = sim.mesh.active_levels()
    assert levels.min() >= 2
    assert levels.max() <= 3

    # The second pass ran on the adapted mesh
    assert history[1].generation == 1
    sim.state.check(sim.discretisation)


def test_run_is_deterministic():
    first = WaveSimulation(small_config()).run()
    second = WaveSimulation(small_config()).run()

    assert [(r.time, r.step, r.generation) for r in first] == [
        (r.time, r.step, r.generation) for r in second
    ]
    np.testing.assert_array_equal([r.energy for r in first], [r.energy for r in second])


def test_main_loop_step_count():
    sim = WaveSimulation(small_config(initial_global_refinement=1, n_pre_refinement_steps=0, end_time=1.0))
    sim.run()

    # t = 1/64 .. 64/64 all satisfy t <= end_time
    assert len(sim.main_loop_steps) == 64
    assert sim.state.step == 65
    assert sim.state.time == pytest.approx(65 * k)


def test_pulse_energy():
    sim = WaveSimulation(small_config())
    history = sim.run()

    assert all(record.energy > 0.0 for record in history)


def test_main_loop_step_count_after_restarts():
    sim = WaveSimulation(small_config(initial_global_refinement=1, n_pre_refinement_steps=2, end_time=1.0))
    history = sim.run()

    assert sim.pre_refinement_step == 2
    assert [record.step for record in history[:4]] == [1, 1, 1, 2]
    assert len(sim.main_loop_steps) == 64
    assert sim.main_loop_steps[-1].step == 65

    # Every restart after the first runs on an adapted mesh
    assert [record.generation for record in history[:3]] == [0, 1, 2]
    assert all(record.generation >= 2 for record in sim.main_loop_steps)
    levels = sim.mesh.active_levels()
    assert levels.min() >= 1
    assert levels.max() <= 3


def test_pulse_energy_grows_then_decays():
    sim = WaveSimulation(small_config(end_time=1.0))
    sim.run()

    steps = sim.main_loop_steps
    pulse_peak = max(record.energy for record in steps if record.time <= 0.5)

    # The boundary pulse feeds energy in until t = 0.5, the damping removes it afterwards
    assert steps[0].energy < pulse_peak
    assert steps[-1].time > 1.0
    assert steps[-1].energy < 0.5 * pulse_peak


def test_main_loop_steps_before_run():
    sim = WaveSimulation(small_config())

    assert sim.main_loop_steps == []


def test_run_states_cannot_repeat():
    sim = WaveSimulation(small_config())
    sim.setup_initial_mesh()

    assert sim.run_state is RunState.PRE_REFINING
    with pytest.raises(RuntimeError):
        sim.setup_initial_mesh()


def test_snapshots_written(tmp_path):
    sim = WaveSimulation(small_config(end_time=0.05, output_path=str(tmp_path)))
    sim.run()

    # Pre-refinement passes rewrite snapshots 0 and 1
    names = sorted(p.name for p in tmp_path.glob("*.h5"))
    assert names == [f"solution-{n:03d}.h5" for n in range(5)]
    assert (tmp_path / "solution-004.xdmf").exists()

    with h5py.File(tmp_path / "solution-004.h5", "r") as h5:
        n_vertices = h5["geometry/vertices"].shape[0]
        assert h5["topology/cells"].shape[1] == 4
        assert h5["vertex_fields/U"].shape == (n_vertices,)
        assert h5["vertex_fields/V"].shape == (n_vertices,)
        assert h5.attrs["step"] == 4
        assert h5.attrs["time"] == pytest.approx(4 * k)


def test_verbose_output(capsys):
    sim = WaveSimulation(small_config(end_time=0.0, verbose=True))
    sim.run()
    out = capsys.readouterr().out

    assert "Number of active cells: 16" in out
    assert "pre_refinement_step= 1" in out
    assert "u-equation:" in out
    assert "Total energy:" in out


class TestEntryPoint:
    def test_success(self, tmp_path, capsys):
        status = main(
            [
                "-aw_end_time", "0.05",
                "-aw_initial_global_refinement", "2",
                "-aw_n_pre_refinement_steps", "1",
                "-aw_output_path", str(tmp_path),
                "-aw_verbose", "0",
            ]
        )

        assert status == 0
        assert capsys.readouterr().out.strip().endswith("ms")
        assert (tmp_path / "solution-000.h5").exists()
        # Options are removed after the run
        assert not aw.options.hasName("end_time")

    def test_invalid_parameter(self, capsys):
        assert main(["-aw_time_step", "0"]) == 1

        err = capsys.readouterr().err
        assert "Exception on processing" in err
        assert "time_step" in err
        assert "Aborting!" in err

    def test_solver_failure(self, tmp_path, capsys):
        status = main(
            [
                "-aw_initial_global_refinement", "3",
                "-aw_solver_max_iterations", "1",
                "-aw_solver_tolerance", "1e-14",
                "-aw_output_path", str(tmp_path),
                "-aw_verbose", "0",
            ]
        )

        assert status == 1
        assert "ConvergenceFailure" in capsys.readouterr().err
