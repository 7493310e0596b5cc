# scripts/plot_stream.py

"""
Snapshot plots of cell fields from a stream file.

    python3 scripts/plot_stream.py output/output.0001-01-01_06.00.00.nc \
        --fields ssh temperature --record -1 --out plots/
"""

import argparse
import os
import sys

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from netCDF4 import Dataset


def read_xtime(ds, record: int) -> str:
    if "xtime" not in ds.variables:
        return ""
    raw = np.asarray(ds.variables["xtime"][record]).ravel().tolist()
    return b"".join(raw).decode("ascii", "ignore").strip("\x00 ")


def cell_field(ds, name: str, record: int, level: int) -> np.ndarray:
    var = ds.variables[name]
    data = np.asarray(var[record] if var.dimensions and var.dimensions[0] == "Time" else var[:])
    if data.ndim == 2:
        data = data[:, level]
    return data


def plot_fields(path: str, fields, record: int = -1, level: int = 0, out_dir: str = ".", mesh_file: str | None = None):
    """One PNG per field; cell positions from xCell/yCell (stream or mesh file)."""
    os.makedirs(out_dir, exist_ok=True)
    written = []
    with Dataset(path, "r") as ds:
        ds.set_auto_mask(False)
        coords = ds if "xCell" in ds.variables else None
        if coords is None and mesh_file:
            coords = Dataset(mesh_file, "r")
        if coords is None:
            raise SystemExit("xCell/yCell not found: pass --mesh with the mesh file.")
        x = cell_field(coords, "xCell", record, level) / 1000.0
        y = cell_field(coords, "yCell", record, level) / 1000.0
        stamp = read_xtime(ds, record)
        for name in fields:
            if name not in ds.variables:
                print(f"[plot_stream] {name} not in {path}; skipped", file=sys.stderr)
                continue
            values = cell_field(ds, name, record, level)
            fig, ax = plt.subplots(figsize=(7, 5.5), constrained_layout=True)
            sc = ax.scatter(x, y, c=values, s=12, marker="s", cmap="RdBu_r")
            fig.colorbar(sc, ax=ax, label=getattr(ds.variables[name], "units", ""))
            ax.set_xlabel("x (km)")
            ax.set_ylabel("y (km)")
            ax.set_aspect("equal")
            ax.set_title(f"{name} (level {level}) {stamp}")
            out_png = os.path.join(out_dir, f"{name}_L{level}.png")
            fig.savefig(out_png, dpi=150)
            plt.close(fig)
            written.append(out_png)
        if coords is not ds:
            coords.close()
    return written


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Plot cell fields of a stream file.")
    ap.add_argument("path")
    ap.add_argument("--fields", nargs="+", default=["ssh", "temperature"])
    ap.add_argument("--record", type=int, default=-1)
    ap.add_argument("--level", type=int, default=0)
    ap.add_argument("--mesh", type=str, default=None, help="Mesh file with xCell/yCell.")
    ap.add_argument("--out", type=str, default="plots")
    args = ap.parse_args(argv)
    for png in plot_fields(args.path, args.fields, args.record, args.level, args.out, args.mesh):
        print(f"[plot_stream] wrote {png}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
