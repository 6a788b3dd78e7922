import os

import pytest

import adaptwave as aw
from adaptwave.mpi import _should_rank_execute

pytestmark = pytest.mark.level_1


@pytest.mark.parametrize(
    "selector, expected",
    [
        (None, [True, True, True, True]),
        ("all", [True, True, True, True]),
        (0, [True, False, False, False]),
        (slice(1, 3), [False, True, True, False]),
        ([0, 3], [True, False, False, True]),
        ("first", [True, False, False, False]),
        ("last", [False, False, False, True]),
        (lambda r: r % 2 == 1, [False, True, False, True]),
        ("unknown", [False, False, False, False]),
    ],
)
def test_rank_selection(selector, expected):
    assert [_should_rank_execute(r, selector, 4) for r in range(4)] == expected


def test_pprint_serial(capsys):
    aw.pprint("Number of active cells:", 16)

    assert capsys.readouterr().out == "Number of active cells: 16\n"


def test_timed_routine_keeps_result():
    @aw.timing.routine_timer_decorator
    def add(a, b):
        return a + b

    assert add(2, 3) == 5
    assert add.__name__ == "add"


def test_timing_table_written(tmp_path):
    aw.timing.start()
    aw.timing.start()

    filename = str(tmp_path / "timing.txt")
    aw.timing.print_table(filename)

    assert os.path.exists(filename)
    assert os.path.getsize(filename) > 0


def test_require_dirs(tmp_path):
    target = tmp_path / "output" / "snapshots"

    aw.require_dirs([str(target)])
    aw.require_dirs([str(target)])

    assert target.is_dir()


def test_objects_are_numbered(uniform_mesh):
    before = aw.utilities.aw_object.aw_object_counter()
    other = aw.meshing.HyperCube()

    assert aw.utilities.aw_object.aw_object_counter() == before + 1
    assert other.instance_number > uniform_mesh.instance_number
    assert str(other).startswith(f"QuadMesh instance {other.instance_number}")
