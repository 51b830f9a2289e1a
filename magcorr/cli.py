import typer
import os
import logging
import numpy as np
from typing_extensions import Annotated
from magcorr import runner
from magcorr.config_loader import load_config

app = typer.Typer(help="PyMagCorr: Magnon Spin-Correlation and Neutron Intensity CLI")

logger = logging.getLogger("magcorr")

TEMPLATE = """
crystal_structure:
  lattice_parameters:
    a: 5.0
    b: 5.0
    c: 10.0
    alpha: 90
    beta: 90
    gamma: 90
  sites:
    - label: "Fe1"
      pos: [0, 0, 0]
      spin_S: 2.5
      magmom_classical: [0, 0, 1]

correlation:
  phase_sign: -1.0
  temperature: -1.0
  bose_cutoff: 0.025
  form_factor_ion: "Fe3+"

input:
  bundle_file: hamiltonian_bundle.npz

calculation:
  n_workers: 1

q_path:
  points_per_segment: 50
  path: [G, X]
  G: [0, 0, 0]
  X: [0.5, 0, 0]

tasks:
  run_sqw: true
  export_csv: true
  plot_sqw: true
""".strip()


@app.callback()
def main_callback(
    debug: Annotated[bool, typer.Option("--debug", help="Enable debug logging.")] = False
):
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                        datefmt='%H:%M:%S')
    logger.setLevel(level)


@app.command()
def init(
    filename: Annotated[str, typer.Argument(help="Filename for the new config")] = "config.yaml"
):
    """
    Generate a template configuration file.
    """
    if os.path.exists(filename):
        typer.confirm(f"{filename} already exists. Overwrite?", abort=True)

    with open(filename, "w") as f:
        f.write(TEMPLATE + "\n")
    typer.echo(f"Created template config: {filename}")


@app.command()
def validate(
    config_file: Annotated[str, typer.Argument(help="Path to the config.yaml file")]
):
    """
    Validate a configuration file against the schema.
    """
    if not os.path.exists(config_file):
        typer.secho(f"Error: File {config_file} not found.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        load_config(config_file)
        typer.secho(f"Success: {config_file} is valid.", fg=typer.colors.GREEN)
    except ValueError as e:
        typer.secho("Validation Failed:", fg=typer.colors.RED)
        typer.echo(str(e))
        raise typer.Exit(code=1)


@app.command()
def run(
    config_file: Annotated[str, typer.Argument(help="Path to the config.yaml file")]
):
    """
    Run calculations defined in the configuration file.
    """
    try:
        runner.run_calculation(config_file)
        typer.secho("Calculation completed successfully.", fg=typer.colors.GREEN)
    except Exception as e:
        logger.debug("Calculation failed", exc_info=True)
        typer.secho(f"Calculation failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command()
def qpath(
    config_file: Annotated[str, typer.Argument(help="Path to the config.yaml file")],
    output: Annotated[str, typer.Option("--output", "-o", help="Output text file")] = "q_points.txt",
):
    """
    Write the Q-points of the `q_path` section (r.l.u.), one per line.
    """
    try:
        config = load_config(config_file)
        q_points = runner.q_path_from_config(config)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if len(q_points) == 0:
        typer.secho("Error: no 'q_path' section in the configuration.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    np.savetxt(output, q_points, fmt="%.8f", header="qh qk ql")
    typer.echo(f"Wrote {len(q_points)} Q-points to {output}")


# Entry point for setuptools
def main():
    app()


if __name__ == "__main__":
    app()
