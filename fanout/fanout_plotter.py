#!/usr/bin/env python3
"""
Fanout Plotter - Visualization of netlist fanout distributions.

Generates a two-panel figure:
- histogram of nets per power-of-two fanout bin (log-scaled net counts)
- horizontal bar chart of the highest-fanout nets
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np

from .fanout_report import sort_fanout
from .fanout_stats import power_of_two_histogram


class FanoutPlotter:
    """
    Plot generator for fanout tables.

    Callers running headless should select the Agg backend before the first
    plot (matplotlib.use('Agg')).
    """

    def __init__(self, fanout: Dict[str, int], logger: Optional[logging.Logger] = None):
        """
        Initialize fanout plotter.

        Args:
            fanout: {net: fanout} table
            logger: Optional logger instance
        """
        self.fanout = fanout
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _short_label(net: str, width: int = 40) -> str:
        """Trim long (usually escaped, hierarchical) net names for axis labels."""
        if len(net) <= width:
            return net
        return '...' + net[-(width - 3):]

    def plot_distribution(self, output_file: Union[str, Path], top_n: int = 20,
                          title: str = 'Fanout distribution') -> Optional[Path]:
        """
        Write the distribution figure to output_file.

        Args:
            output_file: Image path; the format follows the suffix (.png, .pdf, .svg)
            top_n: Number of nets in the bar chart
            title: Figure title

        Returns:
            Path of the written image, or None if the table is empty
        """
        import matplotlib
        matplotlib.set_loglevel('warning')
        import matplotlib.pyplot as plt

        if not self.fanout:
            self.logger.warning("Fanout table is empty, skipping plot")
            return None

        counts = np.fromiter(self.fanout.values(), dtype=np.int64, count=len(self.fanout))
        histogram = power_of_two_histogram(counts)
        top = sort_fanout(self.fanout)[:max(top_n, 0)]

        fig, (ax_hist, ax_top) = plt.subplots(1, 2, figsize=(14, 6))

        labels = [f"{low}-{high - 1}" if high - low > 1 else f"{low}" for low, high, _ in histogram]
        values = [count for _, _, count in histogram]
        ax_hist.bar(range(len(values)), values, color='steelblue')
        ax_hist.set_xticks(range(len(values)))
        ax_hist.set_xticklabels(labels, rotation=45, ha='right')
        ax_hist.set_yscale('log')
        ax_hist.set_xlabel('Fanout')
        ax_hist.set_ylabel('Nets')
        ax_hist.set_title('Nets per fanout bin')

        if top:
            nets, fanouts = zip(*top)
            positions = np.arange(len(nets))
            ax_top.barh(positions, fanouts, color='indianred')
            ax_top.set_yticks(positions)
            ax_top.set_yticklabels([self._short_label(n) for n in nets], fontsize=7)
            ax_top.invert_yaxis()
        ax_top.set_xlabel('Fanout')
        ax_top.set_title(f'Top {len(top)} nets')

        fig.suptitle(title)
        plt.tight_layout()

        output_file = Path(output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)
        self.logger.info(f"Fanout plot saved to: {output_file}")
        return output_file
