from typing import List, Dict, Optional, Union, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


# --- Primitive Types ---
Vector3 = Union[List[float], Tuple[float, float, float]]
# Complex components may be given as numbers or expression strings ("I/sqrt(2)")
ComplexComponent = Union[float, str]

# --- Crystal Structure ---
class LatticeParameters(BaseModel):
    a: float
    b: float
    c: float
    alpha: float = 90.0
    beta: float = 90.0
    gamma: float = 90.0

class SiteConfig(BaseModel):
    label: str
    pos: Vector3
    spin_S: float
    magmom_classical: Vector3 = Field(
        default=[0.0, 0.0, 1.0],
        description="Classical magnetic moment direction [mx, my, mz]."
    )
    u: Optional[List[ComplexComponent]] = None
    u_conj: Optional[List[ComplexComponent]] = None

    @field_validator('spin_S')
    @classmethod
    def check_spin(cls, v):
        if v < 0:
            raise ValueError("spin_S must be non-negative.")
        return v

    @field_validator('u', 'u_conj')
    @classmethod
    def check_length(cls, v):
        if v is not None and len(v) != 3:
            raise ValueError("u vectors must have exactly 3 components.")
        return v

class CrystalStructureConfig(BaseModel):
    lattice_parameters: Optional[LatticeParameters] = None
    # Support raw vector list [[a,0,0], ...]
    lattice_vectors: Optional[List[Vector3]] = None
    sites: List[SiteConfig] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_structure_source(self):
        if not (self.lattice_parameters or self.lattice_vectors):
            raise ValueError("Must provide either 'lattice_parameters' or 'lattice_vectors'.")
        return self

# --- Correlation / Intensity Settings ---
class CorrelationSettings(BaseModel):
    """Scalars read by the correlation builder and the intensity post-processor."""
    model_config = ConfigDict(frozen=True)

    phase_sign: float = -1.0
    temperature: float = -1.0  # K, < 0 disables the Bose factor
    bose_cutoff: float = Field(0.025, gt=0)  # meV
    form_factor: str = ""  # expression in Q (1/A), empty disables
    form_factor_ion: Optional[str] = None

    @field_validator('phase_sign')
    @classmethod
    def check_phase_sign(cls, v):
        if v not in (-1.0, 1.0):
            raise ValueError("phase_sign must be +1 or -1.")
        return v

    @model_validator(mode='after')
    def check_form_factor_source(self):
        if self.form_factor and self.form_factor_ion:
            raise ValueError("Give either 'form_factor' or 'form_factor_ion', not both.")
        return self

# --- Other Sections ---
class InputConfig(BaseModel):
    bundle_file: str = 'hamiltonian_bundle.npz'

class CalculationConfig(BaseModel):
    n_workers: int = 1
    show_progress: bool = True

    @field_validator('n_workers')
    @classmethod
    def check_workers(cls, v):
        if v < 1:
            raise ValueError("n_workers must be at least 1.")
        return v

class QPathConfig(BaseModel):
    points_per_segment: int = 50
    path: List[str]
    # Allow extra fields for point definitions (Dynamic keys)
    model_config = ConfigDict(extra='allow')

    def high_symmetry_points(self) -> Dict[str, List[float]]:
        return dict(self.model_extra or {})

class OutputConfig(BaseModel):
    save_data: bool = True
    sqw_data_filename: str = 'sqw_data.npz'
    sqw_csv_filename: str = 'sqw_data.csv'

class PlottingConfig(BaseModel):
    save_plot: bool = True
    sqw_plot_filename: str = 'sqw_plot.png'
    weights_plot_filename: str = 'weights_plot.png'
    show_plot: bool = False
    sqw_title: str = "S(Q,w)"
    energy_limits_sqw: Optional[List[float]] = None
    cmap: str = 'PuBu_r'
    broadening_width: float = 0.2

    model_config = ConfigDict(extra='allow')

class TasksConfig(BaseModel):
    run_sqw: bool = True
    export_csv: bool = False
    plot_sqw: bool = False
    plot_weights: bool = False

# --- Main Configuration ---
class MagCorrConfig(BaseModel):
    crystal_structure: CrystalStructureConfig
    correlation: CorrelationSettings = Field(default_factory=CorrelationSettings)
    input: InputConfig = Field(default_factory=InputConfig)
    calculation: CalculationConfig = Field(default_factory=CalculationConfig)
    q_path: Optional[QPathConfig] = None
    output: OutputConfig = Field(default_factory=OutputConfig)
    plotting: PlottingConfig = Field(default_factory=PlottingConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
