#!/usr/bin/env python3
"""
Workload Summary Visualizer
===========================

Turns the runner reports of one or more workload passes into a summary
table (pandas) and renders that table as percentile charts (matplotlib).

Usage:
    valkey-workload-plot <summary_csv> [-o chart.png]

Example:
    valkey-workload --summary-csv summary.csv -t 8 -f data.csv
    valkey-workload-plot summary.csv -o summary.png
"""

import argparse
import sys
from pathlib import Path
from typing import Iterable, Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.gridspec import GridSpec

from valkey_workload.harness import HarnessResult
from valkey_workload.stats import REPORT_PERCENTILES

PERCENTILE_COLUMNS = [f'p{p}_usec' for p in REPORT_PERCENTILES]
SUMMARY_COLUMNS = (['test_name', 'runner_id', 'query_count', 'success_count', 'total_keys',
                    'max_keys_per_query', 'fetched_objects', 'mismatches', 'runtime_ms']
                   + PERCENTILE_COLUMNS + ['avg_usec'])


def reports_to_frame(results: Iterable[HarnessResult]) -> pd.DataFrame:
    """
    Build one row per completed runner per workload pass.

    Args:
        results (Iterable[HarnessResult]): Workload passes, in run order

    Returns:
        pd.DataFrame: Columns listed in SUMMARY_COLUMNS
    """
    rows = []
    for result in results:
        for runner_id in sorted(result.reports):
            report = result.reports[runner_id]
            row = {
                'test_name': result.test_name,
                'runner_id': runner_id,
                'query_count': report.query_count,
                'success_count': report.success_count,
                'total_keys': report.total_keys,
                'max_keys_per_query': report.max_keys_per_query,
                'fetched_objects': report.fetched_object_count,
                'mismatches': report.mismatch_count,
                'runtime_ms': report.runtime_ms,
                'avg_usec': report.average_us,
            }
            for p, column in zip(REPORT_PERCENTILES, PERCENTILE_COLUMNS):
                row[column] = report.percentiles_us[p]
            rows.append(row)
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def write_summary_csv(results: Iterable[HarnessResult], csv_file: str) -> pd.DataFrame:
    frame = reports_to_frame(results)
    frame.to_csv(csv_file, index=False)
    return frame


class SummaryVisualizer:
    """
    Renders a summary CSV: one percentile bar chart per workload pass and
    a runtime chart across passes.
    """

    def __init__(self, csv_file: str):
        """
        Initialize the visualizer.

        Args:
            csv_file (str): Summary CSV written by write_summary_csv()
        """
        self.csv_file = Path(csv_file)
        self.data = pd.read_csv(self.csv_file)
        self.test_names = list(dict.fromkeys(self.data['test_name']))

        self.fig = plt.figure(figsize=(14, 4 * (len(self.test_names) + 1)))
        self.fig.suptitle(f'Valkey Workload Summary - {self.csv_file.name}',
                          fontsize=16, fontweight='bold')
        gs = GridSpec(len(self.test_names) + 1, 1, figure=self.fig, hspace=0.5)
        self.ax_passes = [self.fig.add_subplot(gs[i, 0]) for i in range(len(self.test_names))]
        self.ax_runtime = self.fig.add_subplot(gs[len(self.test_names), 0])

    def _plot_pass(self, ax, test_name: str):
        frame = self.data[self.data['test_name'] == test_name]
        width = 0.8 / len(PERCENTILE_COLUMNS)
        runner_ids = list(frame['runner_id'])
        for i, column in enumerate(PERCENTILE_COLUMNS):
            positions = [r + i * width for r in range(len(runner_ids))]
            ax.bar(positions, frame[column], width=width, label=column.replace('_usec', ''))
        ax.set_xticks([r + 0.4 - width / 2 for r in range(len(runner_ids))])
        ax.set_xticklabels([f'runner {r}' for r in runner_ids])
        ax.set_title(f'{test_name}: query latency percentiles', fontweight='bold', fontsize=12)
        ax.set_ylabel('Latency (microseconds)')
        ax.grid(True, alpha=0.3, axis='y')
        ax.legend(loc='upper right')

    def _plot_runtime(self):
        pivot = self.data.pivot(index='runner_id', columns='test_name', values='runtime_ms')
        pivot = pivot[self.test_names]
        pivot.plot(kind='bar', ax=self.ax_runtime, rot=0)
        self.ax_runtime.set_title('Total runtime per runner', fontweight='bold', fontsize=12)
        self.ax_runtime.set_xlabel('Runner')
        self.ax_runtime.set_ylabel('Runtime (ms)')
        self.ax_runtime.grid(True, alpha=0.3, axis='y')

    def render(self, output_file: str) -> Path:
        """Draw every chart and save the figure to output_file."""
        for ax, test_name in zip(self.ax_passes, self.test_names):
            self._plot_pass(ax, test_name)
        if not self.data.empty:
            self._plot_runtime()
        output = Path(output_file)
        self.fig.savefig(output, bbox_inches='tight')
        plt.close(self.fig)
        return output


def plot_summary(csv_file: str, output_file: Optional[str] = None) -> Path:
    """Render csv_file to output_file, defaulting to the CSV path with a .png suffix."""
    if output_file is None:
        output_file = str(Path(csv_file).with_suffix('.png'))
    return SummaryVisualizer(csv_file).render(output_file)


def parse_arguments(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Render a valkey-workload summary CSV as latency charts',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  valkey-workload-plot summary.csv
  valkey-workload-plot summary.csv -o latency.png
        """
    )
    parser.add_argument('csv_file', help='Summary CSV written with --summary-csv')
    parser.add_argument('-o', '--output', help='Image file to write (default: <csv_file>.png)')
    return parser.parse_args(argv)


def main(argv=None):
    """Entry point of valkey-workload-plot."""
    args = parse_arguments(argv)

    if not Path(args.csv_file).exists():
        print(f'Error: summary file does not exist at: {args.csv_file}', file=sys.stderr)
        sys.exit(1)

    try:
        output = plot_summary(args.csv_file, args.output)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, KeyError) as e:
        print(f'Error: cannot read summary {args.csv_file}: {e}', file=sys.stderr)
        sys.exit(1)

    print(f'Wrote {output}')


if __name__ == '__main__':
    main()
