"""CLI entrypoint for choromap."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .aliases import load_name_aliases
from .config import OUTPUT_FORMATS, AppConfig, load_config
from .models import BuildManifest
from .qa import write_qa_index
from .render import (
    RenderMapsReport,
    SourceCache,
    format_render_lines,
    load_map_regions,
    run_render_maps,
    select_maps,
)
from .util import (
    detect_git_commit,
    ensure_directories,
    format_name_list,
    sha256_file,
    setup_logging,
    write_json,
)
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("choromap.cli")

_FORMAT_CHOICES = {"html": ("html",), "png": ("png",), "both": OUTPUT_FORMATS}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="choromap",
        description="Choropleth map builder.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    render_p = subparsers.add_parser("render", help="Render configured maps.")
    add_common(render_p)
    render_p.add_argument(
        "--map",
        action="append",
        default=[],
        help="Map name filter. Can be repeated.",
    )
    render_p.add_argument(
        "--format",
        choices=sorted(_FORMAT_CHOICES),
        default=None,
        help="Override the output formats of every selected map.",
    )

    validate_p = subparsers.add_parser("validate", help="Validate config and input files.")
    add_common(validate_p)
    validate_p.add_argument(
        "--skip-data",
        action="store_true",
        help="Only check config values and file presence; do not open datasets.",
    )
    validate_p.add_argument(
        "--fetch-remote",
        action="store_true",
        help="Download remote tables to check their join coverage.",
    )

    join_p = subparsers.add_parser(
        "join-report",
        help="Write a JSON report of name matches between boundaries and tables.",
    )
    add_common(join_p)
    join_p.add_argument(
        "--map",
        action="append",
        default=[],
        help="Map name filter. Can be repeated.",
    )

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    log_path = cfg.paths.logs_dir / "build.log"
    setup_logging(log_path, verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _run_validate(cfg: AppConfig, *, check_data: bool, fetch_remote: bool) -> int:
    report = Validator(cfg).run(check_data=check_data, fetch_remote=fetch_remote)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_render(cfg: AppConfig, *, maps: Sequence[str], output_format: str | None) -> int:
    formats = _FORMAT_CHOICES[output_format] if output_format else None
    report = run_render_maps(cfg, map_filter=maps, formats=formats)
    for line in format_render_lines(report):
        LOGGER.info(line)

    qa_index_path: Path | None = None
    if cfg.qa.generate_index:
        qa_index_path = write_qa_index(
            maps=[spec for spec in cfg.maps if spec.name in report.statuses],
            statuses=report.statuses,
            output_dir=cfg.paths.output_dir,
            output_html=cfg.paths.qa_dir / "index.html",
            thumbnail_width_px=cfg.qa.thumbnail_width_px,
            max_columns=cfg.qa.max_columns,
        )
        LOGGER.info("QA index generated at %s", qa_index_path)

    _write_manifest(cfg, report, qa_index_path=qa_index_path)
    return 0 if report.ok else 1


def _write_manifest(
    cfg: AppConfig,
    report: RenderMapsReport,
    *,
    qa_index_path: Path | None,
) -> Path:
    artifacts = {
        f"{name}.{path.suffix.lstrip('.')}": str(path)
        for name, paths in sorted(report.outputs.items())
        for path in paths
    }
    artifacts["qa_index"] = str(qa_index_path) if qa_index_path else ""
    artifacts["output_dir"] = str(cfg.paths.output_dir)
    manifest = BuildManifest.create(
        config_hash_sha256=sha256_file(cfg.source_path),
        git_commit=detect_git_commit(cfg.source_path.parent),
        maps=dict(sorted(report.statuses.items())),
        artifacts=artifacts,
    )
    manifest_path = cfg.paths.manifests_dir / "build_manifest.json"
    write_json(manifest_path, manifest.to_dict())
    LOGGER.info("Build manifest written to %s", manifest_path)
    return manifest_path


def _run_join_report(cfg: AppConfig, *, maps: Sequence[str]) -> int:
    report = RenderMapsReport()
    specs = [spec for spec in select_maps(cfg, maps, report) if spec.table is not None]
    for line in report.warnings:
        LOGGER.warning(line)
    if not specs:
        LOGGER.error("No table-joined maps selected; nothing to report.")
        return 1

    try:
        aliases = load_name_aliases(cfg.paths.name_aliases)
    except Exception as exc:
        LOGGER.error("Failed loading name aliases '%s': %s", cfg.paths.name_aliases, exc)
        return 1

    sources = SourceCache(cfg)
    payload: dict[str, object] = {}
    failures: list[str] = []
    for spec in specs:
        try:
            _, _, result = load_map_regions(spec, sources, aliases=aliases)
        except Exception as exc:
            failures.append(f"{spec.name}({exc})")
            continue
        assert result is not None
        payload[spec.name] = result.to_dict()
        LOGGER.info(
            "%s: coverage %.1f%% (%d/%d), %d unmatched table rows",
            spec.name,
            result.coverage * 100.0,
            result.matched,
            len(result.regions),
            len(result.unmatched_table),
        )

    output_path = cfg.paths.manifests_dir / "join_report.json"
    write_json(output_path, payload)
    LOGGER.info("Join report written to %s", output_path)
    if failures:
        LOGGER.error("Join report failures: %s", format_name_list(sorted(failures)))
        return 1
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "render":
        return _run_render(
            cfg,
            maps=[str(item) for item in args.map],
            output_format=args.format,
        )
    if command == "validate":
        return _run_validate(
            cfg,
            check_data=not bool(args.skip_data),
            fetch_remote=bool(args.fetch_remote),
        )
    if command == "join-report":
        return _run_join_report(cfg, maps=[str(item) for item in args.map])
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
