# pyocean/mesh.py

"""
Unstructured C-grid mesh and its discrete operators.

Layout (all indices 0-based, -1 marks "not present"):
- cells carry thickness, tracers and sea-surface height;
- edges carry the normal velocity; the edge normal points from
  cells_on_edge[:, 0] to cells_on_edge[:, 1] and makes angle_edge with +x;
- vertices carry relative vorticity; the edge tangent k x n points from
  vertices_on_edge[:, 0] to vertices_on_edge[:, 1].

A Mesh may be a sub-mesh of a larger one (see Mesh.subset): owned cells and
edges come first, followed by halo entries. Operators are evaluated on every
local entry; results are only meaningful where the whole stencil is local,
which the halo width guarantees for owned entries.
"""

from __future__ import annotations

import logging

import numpy as np
from netCDF4 import Dataset

from . import constants

logger = logging.getLogger(__name__)


def _bcast(w: np.ndarray, extra: int) -> np.ndarray:
    return w.reshape(w.shape + (1,) * extra)


def _remap(mapping: np.ndarray, idx: np.ndarray) -> np.ndarray:
    return np.where(idx >= 0, mapping[np.maximum(idx, 0)], -1)


class Mesh:
    """
    Horizontal mesh geometry plus the vertical reference grid.
    """

    def __init__(
        self,
        *,
        cells_on_edge,
        edges_on_cell,
        n_edges_on_cell,
        vertices_on_edge,
        edges_on_vertex,
        vertices_on_cell,
        area_cell,
        dc_edge,
        dv_edge,
        angle_edge,
        area_vertex,
        f_edge,
        x_cell,
        y_cell,
        lat_cell,
        lon_cell,
        bottom_depth,
        ref_bottom_depth,
        mesh_density=None,
        vert_coord_movement_weights=None,
        cell_ids=None,
        edge_ids=None,
        vertex_ids=None,
        n_cells_owned: int | None = None,
        n_edges_owned: int | None = None,
        n_global_cells: int | None = None,
        n_global_edges: int | None = None,
        on_a_sphere: bool = False,
    ):
        self.cells_on_edge = np.asarray(cells_on_edge, dtype=np.int64)
        self.edges_on_cell = np.asarray(edges_on_cell, dtype=np.int64)
        self.n_edges_on_cell = np.asarray(n_edges_on_cell, dtype=np.int64)
        self.vertices_on_edge = np.asarray(vertices_on_edge, dtype=np.int64)
        self.edges_on_vertex = np.asarray(edges_on_vertex, dtype=np.int64)
        self.vertices_on_cell = np.asarray(vertices_on_cell, dtype=np.int64)
        self.area_cell = np.asarray(area_cell, dtype=float)
        self.dc_edge = np.asarray(dc_edge, dtype=float)
        self.dv_edge = np.asarray(dv_edge, dtype=float)
        self.angle_edge = np.asarray(angle_edge, dtype=float)
        self.area_vertex = np.asarray(area_vertex, dtype=float)
        self.f_edge = np.asarray(f_edge, dtype=float)
        self.x_cell = np.asarray(x_cell, dtype=float)
        self.y_cell = np.asarray(y_cell, dtype=float)
        self.lat_cell = np.asarray(lat_cell, dtype=float)
        self.lon_cell = np.asarray(lon_cell, dtype=float)
        self.bottom_depth = np.asarray(bottom_depth, dtype=float)
        self.ref_bottom_depth = np.asarray(ref_bottom_depth, dtype=float)
        self.on_a_sphere = bool(on_a_sphere)

        n_cells = self.area_cell.shape[0]
        n_edges = self.dc_edge.shape[0]
        n_vertices = self.area_vertex.shape[0]
        n_levels = self.ref_bottom_depth.shape[0]

        self.mesh_density = (
            np.ones(n_cells) if mesh_density is None else np.asarray(mesh_density, dtype=float)
        )
        self.vert_coord_movement_weights = (
            np.ones(n_levels)
            if vert_coord_movement_weights is None
            else np.asarray(vert_coord_movement_weights, dtype=float)
        )
        self.cell_ids = np.arange(n_cells) if cell_ids is None else np.asarray(cell_ids, dtype=np.int64)
        self.edge_ids = np.arange(n_edges) if edge_ids is None else np.asarray(edge_ids, dtype=np.int64)
        self.vertex_ids = (
            np.arange(n_vertices) if vertex_ids is None else np.asarray(vertex_ids, dtype=np.int64)
        )
        self.n_cells_owned = n_cells if n_cells_owned is None else int(n_cells_owned)
        self.n_edges_owned = n_edges if n_edges_owned is None else int(n_edges_owned)
        self.n_global_cells = n_cells if n_global_cells is None else int(n_global_cells)
        self.n_global_edges = n_edges if n_global_edges is None else int(n_global_edges)

        self._build_stencils()

    # ---- dimensions ----
    @property
    def n_cells(self) -> int:
        return self.area_cell.shape[0]

    @property
    def n_edges(self) -> int:
        return self.dc_edge.shape[0]

    @property
    def n_vertices(self) -> int:
        return self.area_vertex.shape[0]

    @property
    def n_vert_levels(self) -> int:
        return self.ref_bottom_depth.shape[0]

    @property
    def max_edges(self) -> int:
        return self.edges_on_cell.shape[1]

    @property
    def dimensions(self) -> dict[str, int]:
        return {
            "nCells": self.n_cells,
            "nEdges": self.n_edges,
            "nVertices": self.n_vertices,
            "nVertLevels": self.n_vert_levels,
            "nVertLevelsP1": self.n_vert_levels + 1,
            "maxEdges": self.max_edges,
            "vertexDegree": self.edges_on_vertex.shape[1],
        }

    # ---- stencil precomputation ----
    def _build_stencils(self) -> None:
        cells = np.arange(self.n_cells)
        verts = np.arange(self.n_vertices)

        slot = np.arange(self.max_edges)[None, :]
        self.cell_edge_valid = (self.edges_on_cell >= 0) & (slot < self.n_edges_on_cell[:, None])
        self._eoc = np.where(self.cell_edge_valid, self.edges_on_cell, 0)

        c0 = self.cells_on_edge[:, 0]
        c1 = self.cells_on_edge[:, 1]
        # a missing neighbour is replaced by the present one: gradients vanish there
        self._c0 = np.where(c0 >= 0, c0, c1)
        self._c1 = np.where(c1 >= 0, c1, c0)
        self.edge_interior = (c0 >= 0) & (c1 >= 0)

        self.edge_sign_on_cell = np.where(
            self.cell_edge_valid,
            np.where(self.cells_on_edge[self._eoc, 0] == cells[:, None], 1.0, -1.0),
            0.0,
        )
        self._div_w = self.edge_sign_on_cell * self.dv_edge[self._eoc] / self.area_cell[:, None]
        self._ke_w = np.where(
            self.cell_edge_valid,
            0.25 * self.dc_edge[self._eoc] * self.dv_edge[self._eoc] / self.area_cell[:, None],
            0.0,
        )

        self.edge_normal_x = np.cos(self.angle_edge)
        self.edge_normal_y = np.sin(self.angle_edge)
        scale = np.where(self.cell_edge_valid, 2.0 / np.maximum(self.n_edges_on_cell[:, None], 1), 0.0)
        self._recon_x = scale * self.edge_normal_x[self._eoc]
        self._recon_y = scale * self.edge_normal_y[self._eoc]
        self._gg_x = self._div_w * self.edge_normal_x[self._eoc]
        self._gg_y = self._div_w * self.edge_normal_y[self._eoc]

        self.vertex_edge_valid = self.edges_on_vertex >= 0
        self._eov = np.where(self.vertex_edge_valid, self.edges_on_vertex, 0)
        self.edge_sign_on_vertex = np.where(
            self.vertex_edge_valid,
            np.where(self.vertices_on_edge[self._eov, 1] == verts[:, None], 1.0, -1.0),
            0.0,
        )
        self._vort_w = self.edge_sign_on_vertex * self.dc_edge[self._eov] / self.area_vertex[:, None]

        v0 = self.vertices_on_edge[:, 0]
        v1 = self.vertices_on_edge[:, 1]
        self._v0 = np.where(v0 >= 0, v0, np.maximum(v1, 0))
        self._v1 = np.where(v1 >= 0, v1, np.maximum(v0, 0))

        voc_valid = (self.vertices_on_cell >= 0) & (slot < self.n_edges_on_cell[:, None])
        self._voc = np.where(voc_valid, self.vertices_on_cell, 0)
        self._voc_w = voc_valid / np.maximum(voc_valid.sum(axis=1, keepdims=True), 1)

        self.ref_layer_thickness = np.diff(np.concatenate([[0.0], self.ref_bottom_depth]))
        self.rest_thickness = self.ref_layer_thickness[None, :] * (
            self.bottom_depth / self.ref_bottom_depth[-1]
        )[:, None]

    # ---- operators ----
    def cell_to_edge(self, f: np.ndarray) -> np.ndarray:
        """Arithmetic mean of the two cells sharing each edge."""
        return 0.5 * (f[self._c0] + f[self._c1])

    def gradient(self, f: np.ndarray) -> np.ndarray:
        """Normal gradient (f[c1] - f[c0]) / dc on edges."""
        return (f[self._c1] - f[self._c0]) / _bcast(self.dc_edge, f.ndim - 1)

    def divergence(self, flux: np.ndarray) -> np.ndarray:
        """Divergence on cells of an edge-normal flux per unit edge length."""
        vals = flux[self._eoc]
        return (_bcast(self._div_w, flux.ndim - 1) * vals).sum(axis=1)

    def vorticity(self, u: np.ndarray) -> np.ndarray:
        """Relative vorticity on vertices (circulation / area)."""
        vals = u[self._eov]
        return (_bcast(self._vort_w, u.ndim - 1) * vals).sum(axis=1)

    def tangential_gradient(self, fv: np.ndarray) -> np.ndarray:
        """Gradient along the edge tangent of a vertex field."""
        return (fv[self._v1] - fv[self._v0]) / _bcast(self.dv_edge, fv.ndim - 1)

    def reconstruct(self, u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Cell-centred (x, y) velocity from normal components (regular polygons)."""
        vals = u[self._eoc]
        extra = u.ndim - 1
        ux = (_bcast(self._recon_x, extra) * vals).sum(axis=1)
        uy = (_bcast(self._recon_y, extra) * vals).sum(axis=1)
        return ux, uy

    def tangential_velocity(self, u: np.ndarray) -> np.ndarray:
        """Velocity component along k x n on edges."""
        ux, uy = self.reconstruct(u)
        extra = u.ndim - 1
        return (
            -_bcast(self.edge_normal_y, extra) * self.cell_to_edge(ux)
            + _bcast(self.edge_normal_x, extra) * self.cell_to_edge(uy)
        )

    def kinetic_energy(self, u: np.ndarray) -> np.ndarray:
        """Cell kinetic energy per unit mass, sum(dc*dv*u^2)/(4*area)."""
        vals = (u * u)[self._eoc]
        return (_bcast(self._ke_w, u.ndim - 1) * vals).sum(axis=1)

    def vertex_to_cell(self, fv: np.ndarray) -> np.ndarray:
        vals = fv[self._voc]
        return (_bcast(self._voc_w, fv.ndim - 1) * vals).sum(axis=1)

    def green_gauss_gradient(self, f: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Cell gradient (d/dx, d/dy) of a cell field from edge means."""
        fe = self.cell_to_edge(f)[self._eoc]
        extra = f.ndim - 1
        return (
            (_bcast(self._gg_x, extra) * fe).sum(axis=1),
            (_bcast(self._gg_y, extra) * fe).sum(axis=1),
        )

    # ---- geometry helpers ----
    @property
    def cells_on_cell(self) -> np.ndarray:
        cells = np.arange(self.n_cells)[:, None]
        c0 = self.cells_on_edge[self._eoc, 0]
        c1 = self.cells_on_edge[self._eoc, 1]
        other = np.where(c0 == cells, c1, c0)
        return np.where(self.cell_edge_valid, other, -1)

    @property
    def dc_min(self) -> float:
        return float(np.min(self.dc_edge[: self.n_edges_owned]))

    def owned_cells(self, f: np.ndarray) -> np.ndarray:
        return f[: self.n_cells_owned]

    def owned_edges(self, f: np.ndarray) -> np.ndarray:
        return f[: self.n_edges_owned]

    # ---- decomposition ----
    def subset(self, cell_owner: np.ndarray, block_id: int, halo_layers: int) -> Mesh:
        """Sub-mesh of the cells owned by ``block_id`` plus ``halo_layers`` rings.

        Edges are owned by the owner of their first cell; owned cells and
        owned edges are placed first. Connectivity leaving the sub-mesh is -1.
        The per-cell edge order is preserved, so operators give bitwise the
        same owned values as on the full mesh.
        """
        owned = np.flatnonzero(cell_owner == block_id)
        seen = np.zeros(self.n_cells, dtype=bool)
        seen[owned] = True
        layers = [owned]
        frontier = owned
        coc = self.cells_on_cell
        for _ in range(int(halo_layers)):
            nb = coc[frontier].ravel()
            nb = np.unique(nb[nb >= 0])
            nb = nb[~seen[nb]]
            seen[nb] = True
            layers.append(nb)
            frontier = nb
        cells = np.concatenate(layers)

        eoc = self.edges_on_cell[cells][self.cell_edge_valid[cells]]
        edges_all = np.unique(eoc)
        edge_owner = cell_owner[self._c0[edges_all]]
        edges = np.concatenate(
            [edges_all[edge_owner == block_id], edges_all[edge_owner != block_id]]
        )
        n_edges_owned = int(np.count_nonzero(edge_owner == block_id))

        voe = self.vertices_on_edge[edges]
        vertices = np.unique(voe[voe >= 0])

        cmap = np.full(self.n_cells, -1, dtype=np.int64)
        cmap[cells] = np.arange(cells.size)
        emap = np.full(self.n_edges, -1, dtype=np.int64)
        emap[edges] = np.arange(edges.size)
        vmap = np.full(self.n_vertices, -1, dtype=np.int64)
        vmap[vertices] = np.arange(vertices.size)

        return Mesh(
            cells_on_edge=_remap(cmap, self.cells_on_edge[edges]),
            edges_on_cell=_remap(emap, self.edges_on_cell[cells]),
            n_edges_on_cell=self.n_edges_on_cell[cells],
            vertices_on_edge=_remap(vmap, self.vertices_on_edge[edges]),
            edges_on_vertex=_remap(emap, self.edges_on_vertex[vertices]),
            vertices_on_cell=_remap(vmap, self.vertices_on_cell[cells]),
            area_cell=self.area_cell[cells],
            dc_edge=self.dc_edge[edges],
            dv_edge=self.dv_edge[edges],
            angle_edge=self.angle_edge[edges],
            area_vertex=self.area_vertex[vertices],
            f_edge=self.f_edge[edges],
            x_cell=self.x_cell[cells],
            y_cell=self.y_cell[cells],
            lat_cell=self.lat_cell[cells],
            lon_cell=self.lon_cell[cells],
            bottom_depth=self.bottom_depth[cells],
            ref_bottom_depth=self.ref_bottom_depth,
            mesh_density=self.mesh_density[cells],
            vert_coord_movement_weights=self.vert_coord_movement_weights,
            cell_ids=self.cell_ids[cells],
            edge_ids=self.edge_ids[edges],
            vertex_ids=self.vertex_ids[vertices],
            n_cells_owned=owned.size,
            n_edges_owned=n_edges_owned,
            n_global_cells=self.n_global_cells,
            n_global_edges=self.n_global_edges,
            on_a_sphere=self.on_a_sphere,
        )

    # ---- I/O ----
    def to_netcdf(self, path: str) -> None:
        """Write the mesh with the usual 1-based connectivity variable names."""
        with Dataset(path, "w") as ds:
            ds.on_a_sphere = "YES" if self.on_a_sphere else "NO"
            for name, size in self.dimensions.items():
                if name != "nVertLevelsP1":
                    ds.createDimension(name, size)
            ds.createDimension("TWO", 2)
            for name, dims, values, is_index in _mesh_variables(self):
                if values.dtype.kind == "i":
                    var = ds.createVariable(name, "i4", dims)
                    var[:] = values + 1 if is_index else values
                else:
                    var = ds.createVariable(name, "f8", dims)
                    var[:] = values


_INDEX_VARIABLES = (
    ("cellsOnEdge", ("nEdges", "TWO"), "cells_on_edge"),
    ("edgesOnCell", ("nCells", "maxEdges"), "edges_on_cell"),
    ("verticesOnEdge", ("nEdges", "TWO"), "vertices_on_edge"),
    ("edgesOnVertex", ("nVertices", "vertexDegree"), "edges_on_vertex"),
    ("verticesOnCell", ("nCells", "maxEdges"), "vertices_on_cell"),
    ("indexToCellID", ("nCells",), "cell_ids"),
    ("indexToEdgeID", ("nEdges",), "edge_ids"),
    ("indexToVertexID", ("nVertices",), "vertex_ids"),
)

_REAL_VARIABLES = (
    ("areaCell", ("nCells",), "area_cell"),
    ("dcEdge", ("nEdges",), "dc_edge"),
    ("dvEdge", ("nEdges",), "dv_edge"),
    ("angleEdge", ("nEdges",), "angle_edge"),
    ("areaTriangle", ("nVertices",), "area_vertex"),
    ("fEdge", ("nEdges",), "f_edge"),
    ("xCell", ("nCells",), "x_cell"),
    ("yCell", ("nCells",), "y_cell"),
    ("latCell", ("nCells",), "lat_cell"),
    ("lonCell", ("nCells",), "lon_cell"),
    ("bottomDepth", ("nCells",), "bottom_depth"),
    ("refBottomDepth", ("nVertLevels",), "ref_bottom_depth"),
    ("meshDensity", ("nCells",), "mesh_density"),
    ("vertCoordMovementWeights", ("nVertLevels",), "vert_coord_movement_weights"),
)


def _mesh_variables(mesh: Mesh):
    for name, dims, attr in _INDEX_VARIABLES:
        yield name, dims, np.asarray(getattr(mesh, attr), dtype=np.int64), True
    yield "nEdgesOnCell", ("nCells",), np.asarray(mesh.n_edges_on_cell, dtype=np.int64), False
    for name, dims, attr in _REAL_VARIABLES:
        yield name, dims, np.asarray(getattr(mesh, attr), dtype=float), False


def load_mesh(path: str) -> Mesh:
    """Read a mesh file (1-based connectivity, 0 = missing)."""
    kwargs = {}
    with Dataset(path, "r") as ds:
        ds.set_auto_mask(False)
        for name, _dims, attr in _INDEX_VARIABLES:
            if name in ds.variables:
                kwargs[attr] = np.asarray(ds.variables[name][:], dtype=np.int64) - 1
        kwargs["n_edges_on_cell"] = np.asarray(ds.variables["nEdgesOnCell"][:], dtype=np.int64)
        for name, _dims, attr in _REAL_VARIABLES:
            if name in ds.variables:
                kwargs[attr] = np.asarray(ds.variables[name][:], dtype=float)
        on_sphere = str(getattr(ds, "on_a_sphere", "NO")).strip().upper() == "YES"
    logger.info("[Mesh] Read %s (%d cells)", path, kwargs["area_cell"].shape[0])
    return Mesh(on_a_sphere=on_sphere, **kwargs)


def planar_periodic_mesh(
    nx: int,
    ny: int,
    dc: float,
    n_vert_levels: int,
    bottom_depth=1000.0,
    f0: float = 1.0e-4,
    beta: float = 0.0,
    lat0: float = 0.0,
) -> Mesh:
    """
    Doubly periodic planar mesh of nx*ny square cells of side dc.

    Cell c = j*nx + i; edge 2c is the east face of c (normal +x), edge 2c+1
    its north face (normal +y); vertex c is its north-east corner. Latitudes
    follow y on a beta plane centred on lat0.
    """
    i, j = np.meshgrid(np.arange(nx), np.arange(ny))
    i = i.ravel()
    j = j.ravel()
    n_cells = nx * ny
    cell = np.arange(n_cells)
    east = j * nx + (i + 1) % nx
    west = j * nx + (i - 1) % nx
    north = ((j + 1) % ny) * nx + i
    south = ((j - 1) % ny) * nx + i
    south_west = ((j - 1) % ny) * nx + (i - 1) % nx

    cells_on_edge = np.empty((2 * n_cells, 2), dtype=np.int64)
    cells_on_edge[0::2] = np.stack([cell, east], axis=1)
    cells_on_edge[1::2] = np.stack([cell, north], axis=1)

    edges_on_cell = np.stack([2 * cell, 2 * cell + 1, 2 * west, 2 * south + 1], axis=1)
    vertices_on_cell = np.stack([cell, west, south_west, south], axis=1)

    vertices_on_edge = np.empty((2 * n_cells, 2), dtype=np.int64)
    vertices_on_edge[0::2] = np.stack([south, cell], axis=1)
    vertices_on_edge[1::2] = np.stack([cell, west], axis=1)

    edges_on_vertex = np.stack([2 * cell, 2 * cell + 1, 2 * north, 2 * east + 1], axis=1)

    angle_edge = np.empty(2 * n_cells)
    angle_edge[0::2] = 0.0
    angle_edge[1::2] = 0.5 * np.pi

    x_cell = (i + 0.5) * dc
    y_cell = (j + 0.5) * dc
    y_edge = np.empty(2 * n_cells)
    y_edge[0::2] = y_cell
    y_edge[1::2] = (j + 1.0) * dc
    y_mid = 0.5 * ny * dc

    depth = np.broadcast_to(np.asarray(bottom_depth, dtype=float), (n_cells,)).copy()
    ref_bottom_depth = float(depth.max()) * (np.arange(n_vert_levels) + 1.0) / n_vert_levels

    return Mesh(
        cells_on_edge=cells_on_edge,
        edges_on_cell=edges_on_cell,
        n_edges_on_cell=np.full(n_cells, 4),
        vertices_on_edge=vertices_on_edge,
        edges_on_vertex=edges_on_vertex,
        vertices_on_cell=vertices_on_cell,
        area_cell=np.full(n_cells, dc * dc),
        dc_edge=np.full(2 * n_cells, dc),
        dv_edge=np.full(2 * n_cells, dc),
        angle_edge=angle_edge,
        area_vertex=np.full(n_cells, dc * dc),
        f_edge=f0 + beta * (y_edge - y_mid),
        x_cell=x_cell,
        y_cell=y_cell,
        lat_cell=lat0 + np.rad2deg((y_cell - y_mid) / constants.EARTH_RADIUS),
        lon_cell=np.rad2deg(x_cell / constants.EARTH_RADIUS),
        bottom_depth=depth,
        ref_bottom_depth=ref_bottom_depth,
    )


def operator_self_test(mesh: Mesh, tol: float = 1.0e-10) -> dict[str, bool]:
    """Consistency checks of the discrete operators on owned entries."""
    results: dict[str, bool] = {}
    n_c = mesh.n_cells_owned
    n_e = mesh.n_edges_owned

    const = np.full(mesh.n_cells, 3.7)
    results["gradient_of_constant"] = bool(np.all(np.abs(mesh.gradient(const)[:n_e]) < tol))

    ux, uy = 0.3, -0.2
    u_uniform = ux * mesh.edge_normal_x + uy * mesh.edge_normal_y
    scale = abs(ux) + abs(uy)
    results["divergence_of_uniform_flow"] = bool(
        np.all(np.abs(mesh.divergence(u_uniform)[:n_c]) * mesh.dc_min < tol * scale)
    )
    rx, ry = mesh.reconstruct(u_uniform)
    results["reconstruct_uniform_flow"] = bool(
        np.allclose(rx[:n_c], ux, atol=tol) and np.allclose(ry[:n_c], uy, atol=tol)
    )
    ke = mesh.kinetic_energy(u_uniform)
    results["kinetic_energy_uniform_flow"] = bool(
        np.allclose(ke[:n_c], 0.5 * (ux * ux + uy * uy), rtol=1.0e-8)
    )
    # summed flux divergence vanishes on a closed (periodic) mesh
    if n_c == mesh.n_cells and np.all(mesh.edge_interior):
        rng = np.random.default_rng(0)
        flux = rng.standard_normal(mesh.n_edges)
        total = float(np.sum(mesh.divergence(flux) * mesh.area_cell))
        results["divergence_theorem"] = abs(total) < tol * mesh.n_edges * float(mesh.area_cell.max())
    for name, ok in results.items():
        logger.info("[Mesh] self-test %-28s %s", name, "PASS" if ok else "FAIL")
    return results
