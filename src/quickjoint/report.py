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
  <title>QuickJoint Report</title>
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

<h1>QuickJoint Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Merged GVCF</th><td><code>{{ run.vcf_path }}</code></td></tr>
      <tr><th>Samples</th><td>{{ run.samples }}</td></tr>
      <tr><th>dbSNP</th><td>{{ run.dbsnp or "none" }}</td></tr>
      <tr><th>Regions</th><td>{{ run.regions }}{% if run.only_output_calls_starting_in_intervals %} (start gate on){% endif %}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Model</h3>
    <table>
      <tr><th>Calling confidence</th><td>{{ run.stand_call_conf }}</td></tr>
      <tr><th>Heterozygosity prior</th><td>{{ run.heterozygosity }}</td></tr>
      <tr><th>Minimum QUALapprox</th><td>{{ "%.2f"|format(run.min_qual_approx) }}</td></tr>
      <tr><th>Likelihood output</th><td>{{ run.pl_mode }}</td></tr>
      <tr><th>Error policy</th><td>{{ run.on_error }}</td></tr>
    </table>
  </div>
</div>

<h2>Sites</h2>
<table>
  <tr><th>Sites read</th><td>{{ counts.sites_total }}</td></tr>
  <tr><th>Outside intervals</th><td>{{ counts.sites_outside_intervals }}</td></tr>
  <tr><th>Non-variant</th><td>{{ counts.sites_dropped_nonvariant }}</td></tr>
  <tr><th>Below QUAL threshold</th><td>{{ counts.sites_dropped_low_quality }}</td></tr>
  <tr><th>Not starting in a region</th><td>{{ counts.sites_dropped_region }}</td></tr>
  <tr><th>Errors (skipped)</th><td>{{ counts.sites_error }}</td></tr>
  <tr><th>Emitted</th><td>{{ counts.sites_emitted }}</td></tr>
  <tr><th>Called genotypes</th><td>{{ run.genotype_counts.calls }}</td></tr>
  <tr><th>No-calls</th><td>{{ run.genotype_counts.no_calls }}</td></tr>
</table>

{% if run.missing_qual_approx %}
<p class="small">{{ run.missing_qual_approx }} site(s) lacked QUALapprox and were treated as QUALapprox=0.</p>
{% endif %}

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Site outcomes</h3>
    <img src="{{ plots.site_outcomes }}" alt="site outcomes">
  </div>
  <div class="card">
    <h3>Quality by depth</h3>
    <img src="{{ plots.qd_hist }}" alt="QD histogram">
  </div>
</div>
<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Allele frequency spectrum</h3>
    <img src="{{ plots.af_hist }}" alt="AF histogram">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ run.output_vcf }}</code> (genotyped VCF)</li>
  {% if run.sites_only_vcf %}
  <li><code>{{ run.sites_only_vcf }}</code> (sites-only VCF)</li>
  {% endif %}
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<hr>
<p class="small">QuickJoint {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        run=run,
        counts=run.get("counts", {}),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
