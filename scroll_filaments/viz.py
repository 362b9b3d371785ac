"""viz.py

Quick-look images for a run.

- slice_png:    mid-plane (z = nz/2) image of a 3D field
- montage:      tile a list of PNGs into one image
- plot_totals:  writhe / twist / length against time from writhe.csv
- plot_curves:  xy projection of the filaments of one snapshot
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")   # headless-friendly backend
import matplotlib.pyplot as plt
from PIL import Image

from .curves import Snapshot


def slice_png(field: np.ndarray, outpath: str, axis: int = 2, cmap: str = "magma") -> str:
    idx = field.shape[axis] // 2
    plane = np.take(field, idx, axis=axis)
    # transpose so the first remaining axis runs horizontally
    plt.imsave(outpath, plane.T, cmap=cmap, origin="lower")
    return outpath


def montage(images: List[str], outpath: str, max_images: int = 9, cols: int = 3) -> Optional[str]:
    """
    Make a simple montage from a list of image paths.
    """
    if not images:
        return None
    images = images[-max_images:]
    imgs = [Image.open(im).convert("RGB") for im in images]
    w, h = imgs[0].size
    rows = (len(imgs) + cols - 1) // cols
    canvas = Image.new("RGB", (cols * w, rows * h))
    for idx, im in enumerate(imgs):
        canvas.paste(im.resize((w, h)), ((idx % cols) * w, (idx // cols) * h))
    canvas.save(outpath)
    return outpath


def plot_totals(totals: pd.DataFrame, outpath: str) -> Optional[str]:
    if totals.empty:
        return None
    fig, axes = plt.subplots(3, 1, figsize=(6, 7), dpi=120, sharex=True)
    for comp, df in totals.groupby("component"):
        axes[0].plot(df["time"], df["writhe"], label=f"c{comp}")
        axes[1].plot(df["time"], df["twist"])
        axes[2].plot(df["time"], df["length"])
    axes[0].set_ylabel("writhe")
    axes[1].set_ylabel("twist")
    axes[2].set_ylabel("length")
    axes[2].set_xlabel("time")
    axes[0].legend(fontsize=7, loc="best")
    fig.tight_layout()
    fig.savefig(outpath)
    plt.close(fig)
    return outpath


def plot_curves(snap: Snapshot, outpath: str, extent: Optional[np.ndarray] = None) -> str:
    fig, ax = plt.subplots(figsize=(4, 4), dpi=120)
    for c in snap.curves:
        pts = np.vstack([c.points, c.points[:1] + c.closure_shift])
        ax.plot(pts[:, 0], pts[:, 1], lw=1.0)
    if extent is not None:
        ax.set_xlim(-extent[0] / 2, extent[0] / 2)
        ax.set_ylim(-extent[1] / 2, extent[1] / 2)
    ax.set_aspect("equal")
    ax.set_title(f"t={snap.time:.2f}  n={len(snap.curves)}")
    fig.tight_layout()
    fig.savefig(outpath)
    plt.close(fig)
    return outpath

