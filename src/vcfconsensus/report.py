from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>VCF Consensus Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>VCF Consensus Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>VCF</th><td><code>{{ vcf_path }}</code></td></tr>
      <tr><th>BAM</th><td><code>{{ bam_path }}</code></td></tr>
      <tr><th>Layout</th><td>{{ layout }}</td></tr>
      <tr><th>Samples</th><td>{{ samples | join(", ") }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Lines</h3>
    <table>
      <tr><th>Data lines read</th><td>{{ metrics.lines_read }}</td></tr>
      <tr><th>Converted</th><td>{{ metrics.lines_converted }}</td></tr>
      <tr><th>Rejected</th><td>{{ metrics.lines_rejected }}</td></tr>
      <tr><th>Calls dropped (structural variants)</th><td>{{ metrics.calls_dropped }}</td></tr>
      <tr><th>Duplicate positions resolved</th><td>{{ metrics.duplicates_resolved }}</td></tr>
      <tr><th>Variant lines</th><td>{{ metrics.variant_lines }}</td></tr>
      <tr><th>Reads matched / unmatched</th><td>{{ metrics.reads_matched }} / {{ metrics.reads_unmatched }}</td></tr>
    </table>
  </div>
</div>

<h2>File pairs</h2>
<table>
  <tr><th>Pair</th><th>SNPs</th><th>Indels</th><th>Positions</th><th>Average read depth</th></tr>
  {% for key, p in metrics.pairs.items() %}
  <tr><td><code>{{ key }}</code></td><td>{{ p.snps }}</td><td>{{ p.indels }}</td><td>{{ p.positions }}</td><td>{{ p.average_read_depth }}</td></tr>
  {% endfor %}
  <tr><th>Total</th><th>{{ metrics.totals.snps }}</th><th>{{ metrics.totals.indels }}</th><th>{{ metrics.totals.positions }}</th><th>{{ metrics.totals.average_read_depth }}</th></tr>
</table>

<h2>Sample calls per category</h2>
<table>
  <tr><th>Category</th><th>Calls</th></tr>
  {% for category, n in metrics.categories | dictsort %}
  <tr><td>{{ category }}</td><td>{{ n }}</td></tr>
  {% endfor %}
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Categories</h3>
    <img src="{{ plots.categories }}" alt="category counts">
  </div>
  {% if plots.depths %}
  <div class="card">
    <h3>Read depth</h3>
    <img src="{{ plots.depths }}" alt="average read depth">
  </div>
  {% endif %}
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ position_map }}</code> (position map)</li>
  <li><code>{{ variants_only }}</code> (variants-only VCF)</li>
  <li><code>{{ vcf_name }}.metrics</code>, <code>{{ vcf_name }}.metrics.json</code></li>
</ul>

<hr>
<p class="small">vcfconsensus {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    metrics: Dict[str, Any],
    plots: Dict[str, str],
    name: str = "report.html",
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        vcf_path=run.get("vcf_path"),
        vcf_name=run.get("vcf_name"),
        bam_path=run.get("bam_path"),
        layout=run.get("layout"),
        samples=run.get("samples", []),
        position_map=run.get("position_map"),
        variants_only=run.get("variants_only"),
        metrics=metrics,
        plots=plots,
    )

    out_path = outdir / name
    out_path.write_text(html, encoding="utf-8")
    return out_path
