from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_category_counts(
    *,
    category_counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Sample calls per category",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = [k.replace("_", " ") for k in category_counts]
    values = [int(v) for v in category_counts.values()]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Sample calls")
    plt.title(title)
    plt.xticks(rotation=30, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_pair_depths(
    *,
    average_depths: Dict[str, int],
    out_png: str | Path,
    title: str = "Average read depth per file pair",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    plt.bar(list(average_depths), [int(v) for v in average_depths.values()])
    plt.ylabel("Average read depth")
    plt.title(title)
    plt.xticks(rotation=30, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
