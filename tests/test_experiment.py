import importlib.util
from pathlib import Path

import pytest

RUN_PY = Path(__file__).parents[1] / "experiments" / "basis_size_experiment" / "run.py"


@pytest.fixture(scope="module")
def run_module():
    spec = importlib.util.spec_from_file_location("basis_size_run", RUN_PY)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_defaults(run_module):
    args = run_module.parse_args([])
    assert args.cpu is True
    assert args.config == "experiment.yaml"
    assert args.stem == "basis_size"


@pytest.mark.parametrize("argv, cpu", [(["--cpu"], True), (["--no-cpu"], False)])
def test_cpu_flag(run_module, argv, cpu):
    assert run_module.parse_args(argv).cpu is cpu


def test_cpu_flag_takes_no_value(run_module):
    with pytest.raises(SystemExit):
        run_module.parse_args(["--cpu", "False"])
