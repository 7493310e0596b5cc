from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Callable, Iterable, Iterator

import numpy as np
from numpy.typing import DTypeLike

from .errors import ConfigMissing
from .mesh import Mesh
from .numerics.time_levels import TimeLevelRing
from .parallel import Communicator, HaloExchange

if TYPE_CHECKING:  # pragma: no cover
    from .config import ConfigPool
    from .streams import StreamManager
    from .timekeeping import SimulationClock

TRACERS = ("temperature", "salinity")


@dataclass
class OceanState:
    """Prognostic fields, each a ring of time levels (1 = start of step, 2 = end)."""

    layer_thickness: TimeLevelRing  # (nCells, nVertLevels) m
    normal_velocity: TimeLevelRing  # (nEdges, nVertLevels) m/s
    temperature: TimeLevelRing  # (nCells, nVertLevels) degC
    salinity: TimeLevelRing  # (nCells, nVertLevels) PSU
    ssh: TimeLevelRing  # (nCells,) m
    normal_barotropic_velocity: TimeLevelRing  # (nEdges,) m/s

    def rings(self) -> Iterator[tuple[str, TimeLevelRing]]:
        for f in fields(self):
            yield f.name, getattr(self, f.name)

    def tracer(self, name: str) -> TimeLevelRing:
        return getattr(self, name)

    def shift_time_levels(self) -> None:
        """Level 2 becomes level 1 (identity move); level 2 becomes scratch."""
        for _, ring in self.rings():
            ring.shift()

    def copy_level(self, src: int, dst: int) -> None:
        for _, ring in self.rings():
            ring.copy_level(src, dst)


@dataclass
class Diagnostics:
    """Fields derived from a time level of the state; overwritten every step."""

    layer_thickness_edge: np.ndarray  # (nEdges, nVertLevels)
    kinetic_energy_cell: np.ndarray  # (nCells, nVertLevels) m2/s2
    relative_vorticity: np.ndarray  # (nVertices, nVertLevels) 1/s
    relative_vorticity_cell: np.ndarray  # (nCells, nVertLevels) 1/s
    divergence: np.ndarray  # (nCells, nVertLevels) 1/s
    tangential_velocity: np.ndarray  # (nEdges, nVertLevels)
    density: np.ndarray  # (nCells, nVertLevels) kg/m3
    pressure: np.ndarray  # (nCells, nVertLevels) Pa
    z_mid: np.ndarray  # (nCells, nVertLevels) m
    montgomery_potential: np.ndarray  # (nCells, nVertLevels) m2/s2
    vertical_transport_velocity: np.ndarray  # (nCells, nVertLevels+1) m/s, positive up
    normal_baroclinic_velocity: np.ndarray  # (nEdges, nVertLevels)
    barotropic_forcing: np.ndarray  # (nEdges,) m/s2
    barotropic_thickness_flux: np.ndarray  # (nEdges,) m2/s
    xtime: str = ""
    n_btr_subcycles: int = 0


@dataclass
class Forcing:
    """Surface forcing and the penetrating shortwave profile."""

    normal_wind_stress: np.ndarray  # (nEdges,) N/m2
    surface_heat_flux: np.ndarray  # (nCells,) W/m2, positive into the ocean
    surface_freshwater_flux: np.ndarray  # (nCells,) kg/m2/s, positive into the ocean
    shortwave_flux: np.ndarray  # (nCells,) W/m2
    surface_temperature_flux: np.ndarray  # (nCells,) degC m/s
    surface_salinity_flux: np.ndarray  # (nCells,) PSU m/s
    fraction_absorbed: np.ndarray  # (nCells, nVertLevels+1) at layer interfaces


@dataclass
class TimeAverages:
    """Running means of surface quantities between output writes."""

    avg_ssh: np.ndarray
    avg_surface_temperature: np.ndarray
    avg_surface_salinity: np.ndarray
    avg_kinetic_energy_surface: np.ndarray
    n_accumulated: int = 0


# ---------------------------
# Field table
# ---------------------------


@dataclass(frozen=True)
class FieldInfo:
    index: int
    name: str
    location: str  # "cell" | "edge" | "global"
    dims: tuple[str, ...]
    group: str
    accessor: Callable[[], np.ndarray] = field(repr=False, compare=False)
    units: str = ""


class FieldTable:
    """
    Typed, index-addressed table of a block's I/O-visible arrays.

    Names are resolved to stable integer indices once (e.g. when a stream is
    bound); the hot path uses indices only. A group name ("state",
    "diagnostics", "<member>AM", ...) expands to all fields of the group.
    """

    def __init__(self) -> None:
        self._infos: list[FieldInfo] = []
        self._by_name: dict[str, int] = {}
        self._groups: dict[str, list[int]] = {}

    def register(
        self,
        name: str,
        accessor: Callable[[], np.ndarray],
        location: str,
        dims: tuple[str, ...],
        group: str,
        units: str = "",
    ) -> int:
        if name in self._by_name:
            raise ValueError(f"Field {name!r} is already registered.")
        idx = len(self._infos)
        self._infos.append(FieldInfo(idx, name, location, tuple(dims), group, accessor, units))
        self._by_name[name] = idx
        self._groups.setdefault(group, []).append(idx)
        return idx

    def declare_group(self, group: str) -> None:
        """Make an (initially empty) group resolvable."""
        self._groups.setdefault(group, [])

    def add_to_group(self, name: str, group: str) -> None:
        """Also list an existing field under ``group`` (e.g. "restartAM")."""
        idx = self.index(name)
        members = self._groups.setdefault(group, [])
        if idx not in members:
            members.append(idx)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name or name in self._groups

    def __len__(self) -> int:
        return len(self._infos)

    def names(self) -> list[str]:
        return [i.name for i in self._infos]

    def index(self, name: str) -> int:
        try:
            return self._by_name[name]
        except KeyError:
            raise ConfigMissing(name, "field") from None

    def info(self, index: int) -> FieldInfo:
        return self._infos[index]

    def array(self, index: int) -> np.ndarray:
        return self._infos[index].accessor()

    def group(self, group: str) -> list[int]:
        return list(self._groups.get(group, []))

    def resolve(self, names: Iterable[str]) -> list[int]:
        """Indices for field and group names, in order, without duplicates."""
        out: list[int] = []
        for name in names:
            if name in self._by_name:
                idxs = [self._by_name[name]]
            elif name in self._groups:
                idxs = self._groups[name]
            else:
                raise ConfigMissing(name, "field")
            for i in idxs:
                if i not in out:
                    out.append(i)
        return out


# ---------------------------
# Block & Domain
# ---------------------------


@dataclass
class Block:
    """One spatial partition: mesh, state ring, diagnostics, forcing, field table."""

    block_id: int
    mesh: Mesh
    state: OceanState
    diagnostics: Diagnostics
    forcing: Forcing
    averages: TimeAverages
    fields: FieldTable = field(default_factory=FieldTable)
    analysis: dict[str, dict[str, np.ndarray]] = field(default_factory=dict)

    @property
    def dimensions(self) -> dict[str, int]:
        return self.mesh.dimensions

    def register_analysis_field(
        self,
        member: str,
        name: str,
        value: np.ndarray,
        location: str,
        dims: tuple[str, ...],
        group: str | None = None,
        units: str = "",
    ) -> np.ndarray:
        """Create ``name`` in the member's pool and expose it in the field table."""
        pool = self.analysis.setdefault(member, {})
        pool[name] = value
        self.fields.register(
            name, lambda p=pool, n=name: p[n], location, dims, group or f"{member}AM", units
        )
        return value


def _ring(shape: tuple[int, ...], dtype: DTypeLike) -> TimeLevelRing:
    return TimeLevelRing(shape, dtype=dtype, initial_value=0.0)


def allocate_block(block_id: int, mesh: Mesh, dtype: DTypeLike = np.float64) -> Block:
    """Zero-initialized Block with every standard field registered."""
    nc, ne, nv, nl = mesh.n_cells, mesh.n_edges, mesh.n_vertices, mesh.n_vert_levels

    state = OceanState(
        layer_thickness=_ring((nc, nl), dtype),
        normal_velocity=_ring((ne, nl), dtype),
        temperature=_ring((nc, nl), dtype),
        salinity=_ring((nc, nl), dtype),
        ssh=_ring((nc,), dtype),
        normal_barotropic_velocity=_ring((ne,), dtype),
    )
    diag = Diagnostics(
        layer_thickness_edge=np.zeros((ne, nl), dtype=dtype),
        kinetic_energy_cell=np.zeros((nc, nl), dtype=dtype),
        relative_vorticity=np.zeros((nv, nl), dtype=dtype),
        relative_vorticity_cell=np.zeros((nc, nl), dtype=dtype),
        divergence=np.zeros((nc, nl), dtype=dtype),
        tangential_velocity=np.zeros((ne, nl), dtype=dtype),
        density=np.zeros((nc, nl), dtype=dtype),
        pressure=np.zeros((nc, nl), dtype=dtype),
        z_mid=np.zeros((nc, nl), dtype=dtype),
        montgomery_potential=np.zeros((nc, nl), dtype=dtype),
        vertical_transport_velocity=np.zeros((nc, nl + 1), dtype=dtype),
        normal_baroclinic_velocity=np.zeros((ne, nl), dtype=dtype),
        barotropic_forcing=np.zeros(ne, dtype=dtype),
        barotropic_thickness_flux=np.zeros(ne, dtype=dtype),
    )
    forcing = Forcing(
        normal_wind_stress=np.zeros(ne, dtype=dtype),
        surface_heat_flux=np.zeros(nc, dtype=dtype),
        surface_freshwater_flux=np.zeros(nc, dtype=dtype),
        shortwave_flux=np.zeros(nc, dtype=dtype),
        surface_temperature_flux=np.zeros(nc, dtype=dtype),
        surface_salinity_flux=np.zeros(nc, dtype=dtype),
        fraction_absorbed=np.zeros((nc, nl + 1), dtype=dtype),
    )
    averages = TimeAverages(
        avg_ssh=np.zeros(nc, dtype=dtype),
        avg_surface_temperature=np.zeros(nc, dtype=dtype),
        avg_surface_salinity=np.zeros(nc, dtype=dtype),
        avg_kinetic_energy_surface=np.zeros(nc, dtype=dtype),
    )
    block = Block(block_id, mesh, state, diag, forcing, averages)
    _register_standard_fields(block)
    return block


def _register_standard_fields(block: Block) -> None:
    t = block.fields
    s = block.state
    d = block.diagnostics
    f = block.forcing
    a = block.averages
    m = block.mesh
    cl = ("nCells", "nVertLevels")
    el = ("nEdges", "nVertLevels")

    t.register("layerThickness", lambda: s.layer_thickness.cur, "cell", cl, "state", "m")
    t.register("normalVelocity", lambda: s.normal_velocity.cur, "edge", el, "state", "m s^-1")
    t.register("temperature", lambda: s.temperature.cur, "cell", cl, "state", "degC")
    t.register("salinity", lambda: s.salinity.cur, "cell", cl, "state", "PSU")
    t.register("ssh", lambda: s.ssh.cur, "cell", ("nCells",), "state", "m")
    t.register(
        "normalBarotropicVelocity",
        lambda: s.normal_barotropic_velocity.cur,
        "edge",
        ("nEdges",),
        "state",
        "m s^-1",
    )

    t.register("layerThicknessEdge", lambda: d.layer_thickness_edge, "edge", el, "diagnostics", "m")
    t.register("kineticEnergyCell", lambda: d.kinetic_energy_cell, "cell", cl, "diagnostics", "m2 s^-2")
    t.register("relativeVorticityCell", lambda: d.relative_vorticity_cell, "cell", cl, "diagnostics", "s^-1")
    t.register("divergence", lambda: d.divergence, "cell", cl, "diagnostics", "s^-1")
    t.register("density", lambda: d.density, "cell", cl, "diagnostics", "kg m^-3")
    t.register("pressure", lambda: d.pressure, "cell", cl, "diagnostics", "Pa")
    t.register("zMid", lambda: d.z_mid, "cell", cl, "diagnostics", "m")
    t.register("montgomeryPotential", lambda: d.montgomery_potential, "cell", cl, "diagnostics", "m2 s^-2")
    t.register(
        "vertTransportVelocityTop",
        lambda: d.vertical_transport_velocity,
        "cell",
        ("nCells", "nVertLevelsP1"),
        "diagnostics",
        "m s^-1",
    )

    t.register("windStressNormal", lambda: f.normal_wind_stress, "edge", ("nEdges",), "forcing", "N m^-2")
    t.register("surfaceHeatFlux", lambda: f.surface_heat_flux, "cell", ("nCells",), "forcing", "W m^-2")
    t.register(
        "surfaceFreshwaterFlux", lambda: f.surface_freshwater_flux, "cell", ("nCells",), "forcing", "kg m^-2 s^-1"
    )
    t.register("shortWaveFlux", lambda: f.shortwave_flux, "cell", ("nCells",), "forcing", "W m^-2")

    t.register("avgSsh", lambda: a.avg_ssh, "cell", ("nCells",), "average", "m")
    t.register("avgSurfaceTemperature", lambda: a.avg_surface_temperature, "cell", ("nCells",), "average", "degC")
    t.register("avgSurfaceSalinity", lambda: a.avg_surface_salinity, "cell", ("nCells",), "average", "PSU")
    t.register(
        "avgKineticEnergySurface", lambda: a.avg_kinetic_energy_surface, "cell", ("nCells",), "average", "m2 s^-2"
    )

    t.register("areaCell", lambda: m.area_cell, "cell", ("nCells",), "mesh", "m2")
    t.register("latCell", lambda: m.lat_cell, "cell", ("nCells",), "mesh", "degrees")
    t.register("lonCell", lambda: m.lon_cell, "cell", ("nCells",), "mesh", "degrees")
    t.register("xCell", lambda: m.x_cell, "cell", ("nCells",), "mesh", "m")
    t.register("yCell", lambda: m.y_cell, "cell", ("nCells",), "mesh", "m")
    t.register("bottomDepth", lambda: m.bottom_depth, "cell", ("nCells",), "mesh", "m")
    t.register("meshDensity", lambda: m.mesh_density, "cell", ("nCells",), "mesh")
    t.register("refBottomDepth", lambda: m.ref_bottom_depth, "global", ("nVertLevels",), "mesh", "m")
    t.declare_group("restartAM")


@dataclass
class Domain:
    """All blocks of this process plus the shared run-time services."""

    config: ConfigPool
    comm: Communicator
    blocks: list[Block]
    clock: SimulationClock | None = None
    streams: StreamManager | None = None
    packages: dict[str, bool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.halo = HaloExchange(self.comm, [b.mesh for b in self.blocks])

    def shift_time_levels(self) -> None:
        for block in self.blocks:
            block.state.shift_time_levels()

    def exchange_cells(self, getter: Callable[[Block], np.ndarray]) -> None:
        self.halo.exchange_cells([getter(b) for b in self.blocks])

    def exchange_edges(self, getter: Callable[[Block], np.ndarray]) -> None:
        self.halo.exchange_edges([getter(b) for b in self.blocks])

    def global_sum(self, per_block: Callable[[Block], float]) -> float:
        return self.comm.global_sum(sum(float(per_block(b)) for b in self.blocks))

    def global_max(self, per_block: Callable[[Block], float]) -> float:
        return self.comm.global_max(max(float(per_block(b)) for b in self.blocks))

    def global_min(self, per_block: Callable[[Block], float]) -> float:
        return self.comm.global_min(min(float(per_block(b)) for b in self.blocks))

    def global_array_sum(self, per_block: Callable[[Block], np.ndarray]) -> np.ndarray:
        """Element-wise sum of per-block arrays over all blocks and ranks."""
        total = sum(np.asarray(per_block(b), dtype=np.float64) for b in self.blocks)
        return self.comm.allreduce_sum(np.asarray(total, dtype=np.float64))

    def package_active(self, name: str) -> bool:
        try:
            return self.packages[name]
        except KeyError:
            raise ConfigMissing(name, "package") from None


def compute_max_mesh_density(domain: Domain) -> float:
    """Global maximum of meshDensity over the owned cells of every partition."""
    return domain.global_max(
        lambda b: np.max(b.mesh.owned_cells(b.mesh.mesh_density), initial=-np.inf)
    )


__all__ = [
    "TRACERS",
    "Block",
    "Diagnostics",
    "Domain",
    "FieldInfo",
    "FieldTable",
    "Forcing",
    "OceanState",
    "TimeAverages",
    "allocate_block",
    "compute_max_mesh_density",
]
