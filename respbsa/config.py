"""Application constants and immutable run settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

APP_NAME = "respbsa"
DEFAULT_SYSTEM_NAME = "_system"
DUMP_FILENAME = "_topology_dump.txt"
DUMP_HASH_FILENAME = ".dump.sha"
QRV_HASH_FILENAME = ".qrv.sha"
SELECTION_HASH_FILENAME = ".selection.sha"

# Physical constants (SI unless noted).
VACUUM_PERMITTIVITY = 8.8541878128e-12
BOLTZMANN = 1.380649e-23
AVOGADRO = 6.02214076e23
ELEMENTARY_CHARGE = 1.602176634e-19
GAS_CONSTANT_KJ = 8.314462618e-3  # kJ/(mol K)
COULOMB_KJ_ANGSTROM = 1389.35457520287  # kJ/mol * A / e^2
KJ_PER_KCAL = 4.184

NM_TO_ANGSTROM = 10.0
MIN_MESH_EXTENT = 0.1  # A

RADIUS_POLICIES = ("lj", "mbondi", "bondi")
MESH_POLICIES = ("padded", "scaled")
MESH_BOX_MODES = ("subsystem", "complex")
SUBSYSTEMS = ("com", "rec", "lig")


@dataclass(frozen=True)
class IonSpec:
    """Mobile ion species for the Poisson-Boltzmann calculation.

    Attributes
    ----------
    charge
        Ion charge (e).
    concentration
        Concentration (mol/L).
    radius
        Ion radius (A).
    """

    charge: float
    concentration: float
    radius: float


DEFAULT_IONS = (IonSpec(1.0, 0.15, 0.95), IonSpec(-1.0, 0.15, 1.81))


@dataclass(frozen=True)
class PBSettings:
    """Polar (ELEC) block parameters for the solver deck."""

    pdie: float = 2.0
    sdie: float = 78.54
    equation: str = "npbe"
    bcfl: str = "mdh"
    srfm: str = "smol"
    chgm: str = "spl4"
    swin: float = 0.3
    srad: float = 1.4
    sdens: float = 10.0
    ions: Tuple[IonSpec, ...] = DEFAULT_IONS


@dataclass(frozen=True)
class SASettings:
    """Apolar (surface area) parameters.

    ``surface_tension`` (kJ/mol/A^2) and ``surface_offset`` (kJ/mol) turn
    per-atom SASA into energies; the remaining fields go to the APOLAR block.
    """

    surface_tension: float = 0.0301248
    surface_offset: float = 0.0
    srfm: str = "sacc"
    swin: float = 0.3
    srad: float = 1.4
    press: float = 0.0
    bconc: float = 0.0
    sdens: float = 10.0
    dpos: float = 0.2
    grid: Tuple[float, float, float] = (0.1, 0.1, 0.1)


@dataclass(frozen=True)
class MeshSettings:
    """Solver grid sizing parameters.

    Attributes
    ----------
    policy
        ``scaled`` (coarse = extent * cfac, fine capped at extent + fadd) or
        ``padded`` (fine = extent + 2 * fadd, coarse = fine * padded_cfac).
    box
        ``subsystem`` sizes each sub-system from its own atoms, ``complex``
        reuses the complex box for all three.
    cfac
        Coarse/extent ratio for the scaled policy.
    fadd
        Padding added to the extent (A).
    df
        Target fine grid spacing (A).
    levels
        Multigrid levels; point counts are at least 2**(levels + 1) + 1.
    padded_cfac
        Coarse/fine ratio for the padded policy.
    padded_extra
        Extra stride blocks added by the padded policy.
    """

    policy: str = "scaled"
    box: str = "subsystem"
    cfac: float = 3.0
    fadd: float = 10.0
    df: float = 0.5
    levels: int = 4
    padded_cfac: float = 1.7
    padded_extra: int = 1


@dataclass(frozen=True)
class Settings:
    """Immutable settings for one MM-PBSA run.

    Attributes
    ----------
    temperature
        Temperature (K) used for RT, Debye screening and the solver decks.
    radius_policy
        ``lj`` uses half the LJ sigma; ``mbondi``/``bondi`` use element tables.
    default_radius
        Radius (A) for types without an LJ self term and unknown elements.
    use_debye_huckel
        Screen Coulomb pairs by exp(-kappa r).
    use_entropy
        Estimate TdS by exponential averaging; otherwise TdS = 0.
    cutoff
        MM pair cutoff (nm); infinite by default.
    concentration_scale
        Factor applied to Ki (1e9 reports nM).
    apbs
        Solver executable, or None for MM-only runs.
    gmx
        GROMACS executable used to dump the run input file.
    jobs
        Number of frames computed concurrently.
    preserve
        Keep per-frame solver files after parsing.
    """

    temperature: float = 298.15
    radius_policy: str = "mbondi"
    default_radius: float = 1.2
    use_debye_huckel: bool = True
    use_entropy: bool = True
    cutoff: float = float("inf")
    concentration_scale: float = 1e9
    apbs: Optional[str] = "apbs"
    gmx: str = "gmx"
    jobs: int = 1
    preserve: bool = True
    pb: PBSettings = field(default_factory=PBSettings)
    sa: SASettings = field(default_factory=SASettings)
    mesh: MeshSettings = field(default_factory=MeshSettings)

    @property
    def rt(self) -> float:
        """RT in kJ/mol at the configured temperature."""
        return GAS_CONSTANT_KJ * self.temperature
