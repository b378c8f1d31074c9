from __future__ import annotations

import argparse
import logging
import os
import sys
import time
import warnings
from pathlib import Path

from dotenv import load_dotenv

from leadsheet.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from leadsheet.errors import LeadsheetError
from leadsheet.models.config_models import AppConfig
from leadsheet.logging.init import log_summary, setup_logging
from leadsheet.services import orchestrator
from leadsheet.services.summary import (
    format_seconds,
    render_autofill_summary,
    render_batch_summary,
    render_extract_geo_summary,
    render_geo_summary,
    render_master_mapping_summary,
    render_merge_summary,
    render_missing_details_summary,
    render_summary,
)
from leadsheet.store import JsonFileKeyValueStore, open_store

"""CLI entrypoint.

    leadsheet [--config PATH] [--debug] [--workbook PATH] <command>

Flow: load .env, load + validate config, open the store, run one command,
close with a single SUMMARY line.

Exit codes:
  0  success
  1  fatal (config error, missing table, missing column, unreadable store)
  3  combine-batch finished a batch but more batches are pending
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_BATCH_PENDING = 3

CONFIG_ENV_VAR = "LEADSHEET_CONFIG"

COMMANDS = (
    "merge",
    "combine-batch",
    "geo",
    "master-mapping",
    "extract-geo",
    "normalize-regions",
    "autofill",
    "missing-details",
    "columns",
    "inspect",
)


def _load_env_file(path: Path, override: bool = False) -> None:
    """Load .env with python-dotenv. Values already in the environment win unless override."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="leadsheet", description="Lead sheet merge and geo normalization tools")
    p.add_argument("--config", type=Path, default=None, help=f"Config YAML (default: ${CONFIG_ENV_VAR} or {DEFAULT_CONFIG_PATH})")
    p.add_argument("--workbook", default=None, help="Override the workbook path from the config")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("merge", help="Union headers of all eligible tables, deduplicate, write the output table")
    sub.add_parser("combine-batch", help="Combine the next batch of tables into the batch output table")
    sub.add_parser("geo", help="Repair and fill city/state/country/region in the lead table")
    sub.add_parser("master-mapping", help="Build the master geo mapping from the mapping sources")
    extract = sub.add_parser("extract-geo", help="Extract unique city/state/country rows from the lead table")
    extract.add_argument("--output", default="Geo_LookupData", help="Output table name")
    sub.add_parser("normalize-regions", help="Rewrite region spellings to the standard region names")
    sub.add_parser("autofill", help="Fill blank values from rows sharing the same key column value")
    sub.add_parser("missing-details", help="Report values lacking their partner columns and conflicting keys")
    columns = sub.add_parser("columns", help="Write a table listing every table's headers")
    columns.add_argument("--output", default="All_Sheet_Columns", help="Output table name")
    inspect = sub.add_parser("inspect", help="Print headers and first rows of every table")
    inspect.add_argument("--rows", type=int, default=3, help="Sample rows per table")
    return p.parse_args(argv)


def _config_path(args: argparse.Namespace) -> Path:
    if args.config is not None:
        return args.config
    env = os.getenv(CONFIG_ENV_VAR)
    return Path(env) if env else DEFAULT_CONFIG_PATH


def _emit_summary(line: str) -> None:
    # log_summary が "SUMMARY " ラベルを付ける
    log_summary(line[len("SUMMARY "):])


def _run(args: argparse.Namespace, cfg: AppConfig, logger: logging.Logger) -> int:
    store = open_store(args.workbook or cfg.workbook)
    command = args.command
    start = time.perf_counter()

    if command == "merge":
        result = orchestrator.run_merge(cfg, store)
        _emit_summary(render_merge_summary(result))
        return EXIT_SUCCESS

    if command == "combine-batch":
        kv = JsonFileKeyValueStore(Path(cfg.batch.checkpoint_file))
        batch = orchestrator.run_combine_batch(cfg, store, kv)
        _emit_summary(render_batch_summary(batch))
        return EXIT_SUCCESS if batch.is_done else EXIT_BATCH_PENDING

    if command == "geo":
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            geo = orchestrator.run_geo(cfg, store)
        for w in caught:
            logger.warning("%s", w.message)
        _emit_summary(render_geo_summary(geo, time.perf_counter() - start))
        return EXIT_SUCCESS

    if command == "master-mapping":
        mm = orchestrator.run_master_mapping(cfg, store)
        _emit_summary(render_master_mapping_summary(mm))
        return EXIT_SUCCESS

    if command == "extract-geo":
        extracted = orchestrator.run_extract_geo(cfg, store, output_table=args.output)
        _emit_summary(render_extract_geo_summary(extracted))
        return EXIT_SUCCESS

    if command == "normalize-regions":
        updated = orchestrator.run_normalize_regions(cfg, store)
        line = render_summary(
            "normalize-regions",
            table=cfg.geo.lead_table,
            updated=updated,
            elapsed_sec=format_seconds(time.perf_counter() - start),
        )
        _emit_summary(line)
        return EXIT_SUCCESS

    if command == "autofill":
        filled = orchestrator.run_autofill(cfg, store)
        _emit_summary(render_autofill_summary(filled))
        return EXIT_SUCCESS

    if command == "missing-details":
        report = orchestrator.run_missing_details(cfg, store)
        _emit_summary(render_missing_details_summary(report))
        return EXIT_SUCCESS

    if command == "columns":
        matrix = orchestrator.run_column_matrix(cfg, store, output_table=args.output)
        _emit_summary(render_summary("columns", output=matrix.name, tables=len(matrix)))
        return EXIT_SUCCESS

    # inspect
    lines = orchestrator.inspect_tables(store, sample_rows=args.rows)
    for line in lines:
        print(line)
    _emit_summary(render_summary("inspect", tables=len(store.list_tables())))
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] を渡されたときに sys.argv が混入しないよう None のときだけ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        logger = setup_logging(debug=True)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"))
    config_path = _config_path(args)
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    logger.info(f"command={args.command} workbook={args.workbook or cfg.workbook}")
    try:
        return _run(args, cfg, logger)
    except LeadsheetError as e:
        logger.error(f"{args.command}: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
