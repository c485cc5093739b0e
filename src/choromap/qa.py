"""QA artifact generation."""

from __future__ import annotations

import os
from html import escape
from pathlib import Path
from typing import Mapping, Sequence

from .config import MapSpec
from .render import output_paths


_STATUS_LABELS = {
    "ok": "OK",
    "constant": "CONSTANT",
    "no_data": "NO_DATA",
    "failed": "FAILED",
}


def _relative_src(target: Path, start: Path) -> str:
    return Path(os.path.relpath(target, start)).as_posix()


def write_qa_index(
    *,
    maps: Sequence[MapSpec],
    statuses: Mapping[str, str],
    output_dir: Path,
    output_html: Path,
    thumbnail_width_px: int,
    max_columns: int,
) -> Path:
    """Generate an HTML index of rendered maps for visual QA.

    `maps` is the set rendered in this run and `statuses` maps each name to its
    render status value, "failed" included.
    """
    index_dir = output_html.parent
    rows: list[str] = []
    for spec in sorted(maps, key=lambda item: item.name.casefold()):
        status = statuses.get(spec.name, "failed")
        status_label = _STATUS_LABELS.get(status, status.upper())
        paths = output_paths(spec, output_dir)
        html_ok = paths["html"].exists()
        png_ok = paths["png"].exists()

        png_cell = (
            f"  <img src='{escape(_relative_src(paths['png'], index_dir))}' "
            f"alt='Map {escape(spec.name)}' width='{thumbnail_width_px}'>"
            if png_ok
            else "  <div class='placeholder'>Static map not generated</div>"
        )
        html_cell = (
            f"  <p class='asset-status'><a href='{escape(_relative_src(paths['html'], index_dir))}'>"
            "interactive map</a></p>"
            if html_ok
            else "  <p class='asset-status'>interactive: MISSING</p>"
        )

        rows.append(
            "\n".join(
                [
                    "<div class='card'>",
                    f"  <h3>{escape(spec.name)}</h3>",
                    f"  <p class='label'>{escape(spec.label)}</p>",
                    f"  <p class='status {escape(status)}'>{escape(status_label)}</p>",
                    png_cell,
                    html_cell,
                    "</div>",
                ]
            )
        )

    html = "\n".join(
        [
            "<!doctype html>",
            "<html lang='en'>",
            "<head>",
            "  <meta charset='utf-8'>",
            "  <meta name='viewport' content='width=device-width, initial-scale=1'>",
            "  <title>choromap QA</title>",
            "  <style>",
            "    body { font-family: Arial, sans-serif; margin: 16px; }",
            "    .grid { "
            f"display: grid; grid-template-columns: repeat({max_columns}, minmax(220px, 1fr)); "
            "gap: 16px; }",
            "    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }",
            "    .card h3 { margin: 0 0 4px 0; font-size: 16px; }",
            "    .label { margin: 0 0 8px 0; color: #555; font-size: 13px; }",
            "    .status { margin: 0 0 8px 0; font-weight: 700; }",
            "    .status.ok { color: #197a2f; }",
            "    .status.constant { color: #99610f; }",
            "    .status.no_data { color: #99610f; }",
            "    .status.failed { color: #b22d2d; }",
            "    .asset-status { margin: 0 0 4px 0; font-size: 13px; color: #333; }",
            "    img { display: block; max-width: 100%; margin-bottom: 8px; }",
            "    .placeholder {",
            "      border: 1px dashed #bbb;",
            "      color: #666;",
            "      border-radius: 6px;",
            "      padding: 12px;",
            "      margin-bottom: 8px;",
            "      background: #fafafa;",
            "      font-size: 13px;",
            "    }",
            "  </style>",
            "</head>",
            "<body>",
            "  <h1>Choropleth QA Index</h1>",
            "  <div class='grid'>",
            *rows,
            "  </div>",
            "</body>",
            "</html>",
            "",
        ]
    )
    output_html.parent.mkdir(parents=True, exist_ok=True)
    output_html.write_text(html, encoding="utf-8")
    return output_html
