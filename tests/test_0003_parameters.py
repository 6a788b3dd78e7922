import warnings

import pytest

import adaptwave as aw
from adaptwave import RefinementPolicy, SimulationConfig, ThetaParameters
from adaptwave.utilities import Params

pytestmark = pytest.mark.level_1


def test_default_config():
    config = SimulationConfig()

    assert config.initial_global_refinement == 4
    assert config.n_pre_refinement_steps == 4
    assert config.time_step == 1.0 / 64
    assert config.end_time == 5.0
    assert config.refinement_interval == 5
    assert config.theta == pytest.approx(1.28125)

    policy = config.refinement_policy()
    assert (policy.min_level, policy.max_level) == (4, 8)
    assert (policy.refine_fraction, policy.coarsen_fraction) == (0.6, 0.4)
    assert policy.pre_refinement_steps == 4


def test_theta_above_one_warns():
    with pytest.warns(UserWarning, match="theta"):
        params = SimulationConfig().theta_parameters()

    assert params.theta == pytest.approx(0.5 + 50.0 / 64)
    assert params.time_step == 1.0 / 64


def test_theta_in_range_is_silent():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        params = ThetaParameters.from_bias(1.0 / 64, theta_bias=0.0)

    assert params.theta == 0.5


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(time_step=0.0),
        dict(end_time=-1.0),
        dict(refinement_interval=0),
        dict(initial_global_refinement=-1),
        dict(solver_tolerance=0.0),
        dict(solver_max_iterations=0),
        dict(output_format="vtu"),
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValueError):
        SimulationConfig(**kwargs)


def test_invalid_policy_rejected():
    with pytest.raises(ValueError):
        RefinementPolicy(min_level=3, max_level=2)
    with pytest.raises(ValueError):
        RefinementPolicy(refine_fraction=1.5)
    with pytest.raises(ValueError):
        ThetaParameters(time_step=-1.0, theta=0.5)


def test_replace_returns_copy():
    config = SimulationConfig()
    shorter = config.replace(end_time=1.0)

    assert shorter.end_time == 1.0
    assert config.end_time == 5.0


def test_config_from_options(petsc_options):
    petsc_options["aw_end_time"] = 2.5
    petsc_options["aw_refinement_interval"] = 3
    petsc_options["aw_verbose"] = False

    config = SimulationConfig.from_options(output_path=None)

    assert config.end_time == 2.5
    assert config.refinement_interval == 3
    assert config.verbose is False
    assert config.output_path is None
    assert config.time_step == 1.0 / 64


class TestParams:
    def test_defaults(self):
        params = Params(aw_resolution=16, aw_name="run")

        assert params.aw_resolution == 16
        assert params.source("aw_resolution") == "default"

    def test_cli_override(self, petsc_options):
        petsc_options["aw_resolution"] = 32
        params = Params(aw_resolution=16)

        assert params.aw_resolution == 32
        assert params.source("aw_resolution") == "cli"
        assert "# from -aw_resolution" in repr(params)

    def test_script_override_and_reset(self):
        params = Params(aw_resolution=16)
        params.aw_resolution = 8

        assert params.aw_resolution == 8
        assert params.source("aw_resolution") == "override"

        params.reset()
        assert params.aw_resolution == 16

    def test_unknown_names_rejected(self):
        params = Params(aw_resolution=16)

        with pytest.raises(AttributeError):
            params.aw_other = 1
        with pytest.raises(AttributeError):
            params.aw_other

    def test_cli_help(self):
        params = Params(aw_end_time=5.0)

        assert "-aw_end_time <float>" in params.cli_help()
        assert params.to_dict() == {"aw_end_time": 5.0}

    def test_optional_string(self, petsc_options):
        params = Params(aw_output_path=None)

        assert params.aw_output_path is None
        assert params.source("aw_output_path") == "default"

        petsc_options["aw_output_path"] = "snapshots"
        params = Params(aw_output_path=None)

        assert params.aw_output_path == "snapshots"
        assert params.source("aw_output_path") == "cli"
