# test_cli.py
import numpy as np
import pytest
import yaml
from numpy.testing import assert_allclose
from typer.testing import CliRunner

from conftest import make_bundle
from magcorr.bundle import save_bundle
from magcorr.cli import app
from magcorr.runner import run_calculation

cli_runner = CliRunner()


@pytest.fixture
def project_dir(tmp_path):
    """A config file next to a one-site ferromagnet bundle."""
    bundle = make_bundle(np.eye(2), [[0, 0, 0], [0.25, 0, 0], [0.5, 0, 0]])
    save_bundle(str(tmp_path / "bundle.npz"), bundle)
    config = {
        "crystal_structure": {
            "lattice_parameters": {"a": 4.0, "b": 4.0, "c": 4.0},
            "sites": [{"label": "Fe1", "pos": [0, 0, 0], "spin_S": 1.0,
                       "u": ["1/sqrt(2)", "I/sqrt(2)", 0]}],
        },
        "correlation": {"temperature": -1.0},
        "input": {"bundle_file": "bundle.npz"},
        "calculation": {"n_workers": 1, "show_progress": False},
        "q_path": {"points_per_segment": 4, "path": ["G", "X"], "G": [0, 0, 0], "X": [0.5, 0, 0]},
        "output": {"sqw_data_filename": "out/sqw.npz", "sqw_csv_filename": "sqw.csv"},
        "plotting": {"sqw_plot_filename": "sqw.png", "weights_plot_filename": "weights.png"},
        "tasks": {"run_sqw": True, "export_csv": True, "plot_sqw": True, "plot_weights": True},
    }
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(config))
    return tmp_path


def test_run_calculation(project_dir):
    results = run_calculation(str(project_dir / "config.yaml"))
    assert results["energies"].shape == (3, 2)
    assert_allclose(results["intensities"][1], [0.25, 0.25], atol=1e-12)

    assert (project_dir / "out" / "sqw.npz").exists()
    assert (project_dir / "sqw.png").exists()
    assert (project_dir / "weights.png").exists()

    lines = (project_dir / "sqw.csv").read_text().splitlines()
    assert lines[0] == "qh,qk,ql,mode,energy,weight,weight_full"
    assert len(lines) == 1 + 3 * 2
    assert lines[3].startswith("0.250000,0.000000,0.000000,0,1.000000,0.250000,0.500000")


def test_run_calculation_disabled(project_dir):
    config_path = project_dir / "config.yaml"
    data = yaml.safe_load(config_path.read_text())
    data["tasks"] = {"run_sqw": False}
    config_path.write_text(yaml.safe_dump(data))
    assert run_calculation(str(config_path)) is None
    assert not (project_dir / "out" / "sqw.npz").exists()


def test_cli_run(project_dir):
    result = cli_runner.invoke(app, ["run", str(project_dir / "config.yaml")])
    assert result.exit_code == 0, result.output
    assert "Calculation completed successfully" in result.output


def test_cli_run_missing_bundle(project_dir):
    (project_dir / "bundle.npz").unlink()
    result = cli_runner.invoke(app, ["run", str(project_dir / "config.yaml")])
    assert result.exit_code == 1
    assert "Calculation failed" in result.output


def test_cli_validate(project_dir, tmp_path):
    result = cli_runner.invoke(app, ["validate", str(project_dir / "config.yaml")])
    assert result.exit_code == 0
    assert "is valid" in result.output

    bad = tmp_path / "bad.yaml"
    bad.write_text(yaml.safe_dump({"crystal_structure": {"sites": []}}))
    result = cli_runner.invoke(app, ["validate", str(bad)])
    assert result.exit_code == 1
    assert "Validation Failed" in result.output

    result = cli_runner.invoke(app, ["validate", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_cli_init(tmp_path):
    target = tmp_path / "new_config.yaml"
    result = cli_runner.invoke(app, ["init", str(target)])
    assert result.exit_code == 0
    assert target.exists()

    result = cli_runner.invoke(app, ["validate", str(target)])
    assert result.exit_code == 0, result.output


def test_cli_qpath(project_dir):
    out = project_dir / "q.txt"
    result = cli_runner.invoke(app, ["qpath", str(project_dir / "config.yaml"), "-o", str(out)])
    assert result.exit_code == 0, result.output
    q = np.loadtxt(out)
    assert q.shape == (4, 3)
    assert_allclose(q[-1], [0.5, 0, 0])


def test_cli_debug_flag(project_dir):
    result = cli_runner.invoke(app, ["--debug", "validate", str(project_dir / "config.yaml")])
    assert result.exit_code == 0
