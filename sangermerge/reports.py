"""
Merge Reports

This module writes the components of a MergeResult to disk and builds
summary reports that help decide whether a merge is trustworthy:

- FASTA files for the consensus and the alignment (consensus row included)
- CSV tables for per-read differences, the distance matrix, frameshift
  edits and a one-row summary
- the dendrogram in Newick format
- a self-contained HTML summary page rendered with Jinja2

Author: Steph Smith (steph.smith@unc.edu)
"""

import html
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
import pandas as pd
from Bio import AlignIO, SeqIO
from Bio.SeqRecord import SeqRecord
from jinja2 import Template

from . import __version__
from .core import MergeResult

logger = logging.getLogger(__name__)


def summarize_merge(result: MergeResult) -> pd.DataFrame:
    """
    One-row summary of a merge.

    Parameters
    ----------
    result : MergeResult
        Merge to summarize

    Returns
    -------
    pd.DataFrame
        Columns: n_reads, alignment_length, consensus_length,
        called_fraction, total_pairwise_diffs, total_unused_chars,
        max_distance, total_insertions, total_deletions
    """
    call = result.consensus_call
    diffs = result.differences
    distances = result.distance_matrix.to_numpy(dtype=float)

    finite = distances[np.isfinite(distances)]
    summary = {
        'n_reads': len(diffs),
        'alignment_length': len(call),
        'consensus_length': len(result.consensus),
        'called_fraction': call.n_called / len(call) if len(call) else 0.0,
        'total_pairwise_diffs': int(diffs['pairwise_diffs_to_consensus'].sum()),
        'total_unused_chars': int(diffs['unused_chars'].sum()),
        'max_distance': float(finite.max()) if finite.size else float('nan'),
        'total_insertions': int(result.indels['insertions'].sum()) if result.indels is not None else 0,
        'total_deletions': int(result.indels['deletions'].sum()) if result.indels is not None else 0,
    }
    return pd.DataFrame([summary])


def write_merge_report(
    result: MergeResult,
    output_dir: Union[str, Path],
    prefix: str = "merged",
) -> Dict[str, Path]:
    """
    Write all merge outputs to a directory.

    Parameters
    ----------
    result : MergeResult
        Merge to write
    output_dir : str or Path
        Output directory (created if missing)
    prefix : str, optional
        File name prefix (default: "merged")

    Returns
    -------
    Dict[str, Path]
        Output name -> file path. The indels file is only written when a
        reference was used.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    files = {}

    files['consensus'] = out / f"{prefix}_consensus.fasta"
    SeqIO.write(
        [SeqRecord(result.consensus, id=f"{prefix}_consensus", description="")],
        str(files['consensus']),
        "fasta",
    )

    files['alignment'] = out / f"{prefix}_alignment.fasta"
    AlignIO.write(result.alignment, str(files['alignment']), "fasta")

    files['differences'] = out / f"{prefix}_differences.csv"
    result.differences.to_csv(files['differences'], index=False)

    files['distance_matrix'] = out / f"{prefix}_distance_matrix.csv"
    result.distance_matrix.to_csv(files['distance_matrix'])

    files['dendrogram'] = out / f"{prefix}_dendrogram.nwk"
    result.dendrogram.write_newick(files['dendrogram'])

    if result.indels is not None:
        files['indels'] = out / f"{prefix}_indels.csv"
        result.indels.to_csv(files['indels'], index=False)

    files['summary'] = out / f"{prefix}_summary.csv"
    summarize_merge(result).to_csv(files['summary'], index=False)

    logger.info(f"Wrote {len(files)} merge report files to {out}")
    return files


# HTML Report Template
HTML_REPORT_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="generator" content="sangermerge">
    <title>{{ title }} - sangermerge Report</title>
    {{ css | safe }}
</head>
<body>
    <div class="header">
        <h1>{{ title }}</h1>
        <div class="subtitle">sangermerge v{{ version }}</div>
        <div class="timestamp">Generated: {{ timestamp }}</div>
    </div>

    {% if quick_stats %}
    <div class="quick-stats">
        {% for stat in quick_stats %}
        <div class="quick-stat">
            <div class="number">{{ stat.value }}</div>
            <div class="label">{{ stat.label }}</div>
        </div>
        {% endfor %}
    </div>
    {% endif %}

    <div class="content">
        {{ content | safe }}
    </div>
</body>
</html>
"""

HTML_REPORT_CSS = """
<style>
    body { font-family: -apple-system, "Segoe UI", Helvetica, Arial, sans-serif; margin: 0; color: #222; }
    .header { background: #2c3e50; color: #fff; padding: 24px 32px; }
    .header h1 { margin: 0 0 4px 0; }
    .subtitle, .timestamp { opacity: 0.8; font-size: 0.9em; }
    .quick-stats { display: flex; gap: 16px; padding: 16px 32px; background: #ecf0f1; }
    .quick-stat { background: #fff; border-radius: 6px; padding: 12px 20px; min-width: 120px; }
    .quick-stat .number { font-size: 1.6em; font-weight: bold; }
    .quick-stat .label { color: #666; font-size: 0.85em; }
    .content { padding: 16px 32px; }
    .section { margin-bottom: 32px; }
    .sequence { font-family: monospace; word-break: break-all; background: #f7f7f7; padding: 12px; }
    table { border-collapse: collapse; font-size: 0.9em; }
    th, td { border: 1px solid #ddd; padding: 4px 8px; text-align: right; }
    th { background: #f0f0f0; }
    .alert-info { color: #31708f; }
</style>
"""


class HTMLReportBuilder:
    """
    Builder class for generating HTML merge reports.
    """

    def __init__(self, title: str, version: str = __version__):
        self.title = title
        self.version = version
        self.sections = []
        self.quick_stats = []

    def add_quick_stat(self, value: str, label: str):
        """Add a quick stat to the header bar."""
        self.quick_stats.append({'value': value, 'label': label})

    def add_section(self, content: str):
        """Add a section to the report."""
        self.sections.append(content)

    def render(self) -> str:
        """Render the complete HTML document."""
        template = Template(HTML_REPORT_TEMPLATE, autoescape=True)

        return template.render(
            title=self.title,
            version=self.version,
            timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            css=HTML_REPORT_CSS,
            quick_stats=self.quick_stats,
            content='\n'.join(self.sections)
        )


def _format_number(value: float, decimals: int = 2) -> str:
    """Format a number for display."""
    if pd.isna(value):
        return "N/A"
    if isinstance(value, (int, np.integer)):
        return f"{value:,}"
    return f"{value:,.{decimals}f}"


def _dataframe_to_html(df: pd.DataFrame, index: bool = False, max_rows: int = 100) -> str:
    """Convert a DataFrame to an HTML table, truncated to max_rows."""
    if df.empty:
        return '<p class="alert-info">No data available</p>'

    truncated = len(df) > max_rows
    shown = df.head(max_rows) if truncated else df

    table = shown.to_html(index=index, border=0, escape=True, float_format=lambda x: f"{x:.4f}")
    if truncated:
        table += f'<p>Showing first {max_rows} rows of {len(df)} total</p>\n'
    return table


def _section(section_id: str, heading: str, body: str) -> str:
    return f'<div class="section" id="section-{section_id}"><h2>{heading}</h2>\n{body}</div>'


def generate_html_report(
    result: MergeResult,
    output_path: Union[str, Path],
    title: str = "Merged reads",
) -> Optional[Path]:
    """
    Generate an HTML summary page for a merge.

    Parameters
    ----------
    result : MergeResult
        Merge to report on
    output_path : str or Path
        Path of the HTML file to write
    title : str, optional
        Report title

    Returns
    -------
    Optional[Path]
        Path to the report, or None if generation failed
    """
    logger.info(f"Generating HTML merge report: {output_path}")

    try:
        builder = HTMLReportBuilder(title=title)
        summary = summarize_merge(result).iloc[0]

        builder.add_quick_stat(_format_number(int(summary['n_reads'])), 'Reads')
        builder.add_quick_stat(_format_number(int(summary['consensus_length'])), 'Consensus length')
        builder.add_quick_stat(f"{summary['called_fraction'] * 100:.1f}%", 'Columns called')
        builder.add_quick_stat(_format_number(int(summary['total_pairwise_diffs'])), 'Differences')

        builder.add_section(_section(
            "consensus", "Consensus",
            f'<div class="sequence">{html.escape(str(result.consensus))}</div>',
        ))
        builder.add_section(_section(
            "differences", "Differences to consensus",
            _dataframe_to_html(result.differences),
        ))
        builder.add_section(_section(
            "distances", "Jukes-Cantor distances",
            _dataframe_to_html(result.distance_matrix, index=True),
        ))
        builder.add_section(_section(
            "dendrogram", "Dendrogram (Newick)",
            f'<div class="sequence">{html.escape(result.dendrogram.to_newick())}</div>',
        ))
        if result.indels is not None:
            builder.add_section(_section(
                "indels", "Frameshift corrections",
                _dataframe_to_html(result.indels),
            ))
        parameters = pd.DataFrame(
            [{'parameter': k, 'value': str(v)} for k, v in result.parameters.items()]
        )
        builder.add_section(_section("parameters", "Parameters", _dataframe_to_html(parameters)))

        html_content = builder.render()

        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(html_content)

        logger.info(f"HTML report saved: {output_file}")
        return output_file

    except Exception as e:
        logger.error(f"Failed to generate HTML report: {e}", exc_info=True)
        return None
