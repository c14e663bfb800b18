"""Static overview map of the composite bathymetry, regions and MPAs."""

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
from matplotlib.colors import LinearSegmentedColormap
from matplotlib.lines import Line2D

from .log import get_logger

LOGGER = get_logger(__name__)

# One outline colour per protected-area vintage, in the order given
VINTAGE_COLORS = ["#FF4500", "#2E8B57", "#8E44AD", "#D4AC0D"]


def plot_overview(composite, regions, protection_sets, output_path, coastline=None,
                  title="Adult Habitat and Protected Areas by Reporting Region"):
    """Save a PNG of the composite depth raster with the polygon layers on top.

    ``protection_sets`` maps vintage name -> GeoDataFrame. Everything must
    already share the raster's CRS.
    """
    fig, ax = plt.subplots(1, 1, figsize=(16, 11), facecolor="white")
    ax.set_facecolor("#AED9E0")

    # --- Bathymetry ---
    colors_depth = ["#08306b", "#2171b5", "#6baed6", "#c6dbef", "#deebf7"]
    cmap_depth = LinearSegmentedColormap.from_list("depth", colors_depth, N=256)
    cmap_depth.set_bad(alpha=0)

    bounds = composite.bounds
    extent = [bounds.left, bounds.right, bounds.bottom, bounds.top]
    im = ax.imshow(composite.values, extent=extent, origin="upper",
                   cmap=cmap_depth, zorder=1, aspect="auto",
                   interpolation="nearest")

    # --- Coastline (display only) ---
    if coastline is not None and len(coastline) > 0:
        coastline.plot(ax=ax, color="#F5F0E8", edgecolor="#B0A890",
                       linewidth=0.4, zorder=2)

    # --- Reporting regions ---
    regions.boundary.plot(ax=ax, color="#1E5AA8", linewidth=1.2,
                          linestyle="--", zorder=3)

    # --- Protected areas ---
    legend_elements = [
        Line2D([0], [0], color="#1E5AA8", linewidth=1.2, linestyle="--",
               label=f"Reporting regions (n={len(regions)})"),
    ]
    for i, (vintage, protection) in enumerate(protection_sets.items()):
        color = VINTAGE_COLORS[i % len(VINTAGE_COLORS)]
        if len(protection) > 0:
            protection.plot(ax=ax, facecolor="none", edgecolor=color,
                            linewidth=1.0, hatch="///", zorder=4 + i)
        legend_elements.append(
            mpatches.Patch(facecolor="none", edgecolor=color, hatch="///",
                           label=f"MPAs, {vintage} (n={len(protection)})"))

    cbar = fig.colorbar(im, ax=ax, shrink=0.55, aspect=25, pad=0.02,
                        label="Depth (m)")
    cbar.ax.tick_params(labelsize=9)

    ax.set_xlim(bounds.left, bounds.right)
    ax.set_ylim(bounds.bottom, bounds.top)
    ax.set_title(title, fontsize=17, fontweight="bold", pad=16, color="#1A1A2E")
    ax.set_xlabel("Easting (m)", fontsize=11, labelpad=8)
    ax.set_ylabel("Northing (m)", fontsize=11, labelpad=8)
    ax.tick_params(labelsize=9)
    ax.grid(True, linestyle=":", alpha=0.3, color="#666666")
    ax.legend(handles=legend_elements, loc="lower left", fontsize=9,
              framealpha=0.92, edgecolor="#CCCCCC", fancybox=True)

    plt.tight_layout()
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("overview map saved: %s", output_path)
    return output_path
