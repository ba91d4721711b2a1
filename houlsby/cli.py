"""
Command-line interface for open-channel LMAD blockage correction and forecasting.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict
from math import isfinite
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .config import SolverOptions, load_options, read_settings
from .core import (
    DEFAULT_GUESS,
    MODEL_NAME,
    ConfinedRecord,
    CorrectionType,
    ForecastedRecord,
    GuessMode,
    InvalidInputError,
    ScalingVelocity,
    forecast_confined,
    linear_forecast,
    predict_unconfined,
    solve_lmad,
)
from .plots import plot_performance
from .tables import build_dataframe, build_forecast_dataframe, coefficient_dataframe


LOGGER = logging.getLogger("houlsby")

INPUT_COLUMNS = ("beta", "V0", "d0", "CT", "CP", "CQ", "CL", "CF", "TSR")
REQUIRED_COLUMNS = ("beta", "V0", "d0", "CT")
TABLE_COLUMNS = (
    "beta", "V0", "d0", "CT", "Fr", "u1", "u2", "ut", "V0Prime", "dh/h",
    "u2 residual", "V0 residual", "CP", "TSR", "V0/V0_scaled",
)
RESIDUAL_COLUMNS = ("u2 residual", "V0 residual")


def ensure_logger(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    if LOGGER.handlers:
        return
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    handler.setFormatter(formatter)
    LOGGER.addHandler(handler)
    LOGGER.setLevel(logging.DEBUG if verbose else logging.INFO)


def _fmt(x, wid: int = 12, prec: int = 5, sci: bool = False) -> str:
    if x is None or isinstance(x, str):
        return " " * wid
    if isinstance(x, float) and not isfinite(x):
        return " " * (wid - 3) + "nan"
    if sci:
        return f"{x:>{wid}.{prec - 3}e}"
    return f"{x:>{wid}.{prec}f}"


def print_table(df: pd.DataFrame) -> None:
    cols = [c for c in df.columns if c in TABLE_COLUMNS or c.startswith("unconf ")]
    head = "".join(f"{c:>12}" for c in cols) + "  notes"
    print(head)
    print("-" * len(head))
    for _, row in df.iterrows():
        notes = [
            str(row[c])
            for c in ("status", "Warnings")
            if c in df.columns and row[c] and row[c] != "success"
        ]
        print(
            "".join(_fmt(float(row[c]), sci=c in RESIDUAL_COLUMNS) for c in cols)
            + "  "
            + "; ".join(dict.fromkeys(notes))
        )


def read_records(path: Path) -> List[Tuple[str, ConfinedRecord]]:
    """Records from a CSV file, grouped by an optional `dataset` column."""
    df = pd.read_csv(path)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidInputError(f"{path} is missing required columns: {', '.join(missing)}")
    groups = df.groupby("dataset", sort=False) if "dataset" in df.columns else [(path.stem, df)]
    records: List[Tuple[str, ConfinedRecord]] = []
    for name, group in groups:
        fields_ = {c: group[c].to_numpy() for c in INPUT_COLUMNS if c in group.columns}
        records.append((str(name), ConfinedRecord.from_arrays(**fields_)))
    return records


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description=f"{MODEL_NAME} linear momentum blockage correction and forecasting"
    )
    src = ap.add_argument_group("input data")
    src.add_argument("--input", type=Path, help="CSV with beta, V0, d0, CT [, CP, CQ, CL, CF, TSR, dataset]")
    src.add_argument("--beta", type=float, nargs="+", help="Blockage ratio(s)")
    src.add_argument("--v0", type=float, nargs="+", help="Upstream velocity [m/s]")
    src.add_argument("--d0", type=float, nargs="+", help="Upstream depth [m]")
    src.add_argument("--ct", type=float, nargs="+", help="Thrust coefficient(s)")
    src.add_argument("--cp", type=float, nargs="+", help="Power coefficient(s) (optional)")
    src.add_argument("--tsr", type=float, nargs="+", help="Tip-speed ratio(s) (optional)")

    ap.add_argument(
        "--mode",
        choices=("solve", "unconfined", "forecast", "linear"),
        default="solve",
        help="solve LMAD only, correct to unconfined, forecast to --beta2, or linear forecast",
    )
    ap.add_argument("--beta2", type=float, help="Target blockage for forecast modes")
    ap.add_argument("--guess", type=float, help=f"Initial guess (default {DEFAULT_GUESS})")
    ap.add_argument(
        "--guess-mode",
        choices=[m.value for m in GuessMode],
        help="Meaning of --guess: u2/u1 ratio (default), u2/V0 ratio, or u2 [m/s]",
    )
    ap.add_argument(
        "--fr-zero-limit",
        action="store_true",
        help="Evaluate at the closed-channel limit (Fr -> 0), ignoring the depth",
    )
    ap.add_argument(
        "--constant-geometry",
        action="store_true",
        help="Forecast with depth scaled by blockage instead of holding Fr constant",
    )
    ap.add_argument(
        "--correction",
        choices=("standard", "bluff-body"),
        help="Scaling basis for the unconfined correction (default standard; bluff-body for linear)",
    )
    ap.add_argument(
        "--scaling-velocity",
        choices=[v.value for v in ScalingVelocity],
        help="Override the scaling velocity of the unconfined correction",
    )
    ap.add_argument("--config", type=Path, help="Solver settings file (key: value per line)")
    ap.add_argument("--output", type=Path, help="Write the results table to this CSV file")
    ap.add_argument("--plot", type=Path, help="Save CP/CT vs TSR curves to this image file")
    ap.add_argument("--log-file", type=Path, help="Write log messages here instead of stderr")
    ap.add_argument("--verbose", action="store_true", help="Log per-sample solver details")
    return ap


def _resolve_settings(args: argparse.Namespace) -> Tuple[SolverOptions, float, GuessMode]:
    options = SolverOptions()
    guess: float = DEFAULT_GUESS
    guess_mode = GuessMode.BYPASS_WAKE_RATIO
    if args.config is not None:
        options = load_options(args.config)
        settings = read_settings(args.config)
        guess = float(settings.get("guess", guess))
        guess_mode = GuessMode(settings.get("guess_mode", guess_mode.value))
    if args.guess is not None:
        guess = args.guess
    if args.guess_mode is not None:
        guess_mode = GuessMode(args.guess_mode)
    return options, guess, guess_mode


def _inline_record(args: argparse.Namespace) -> ConfinedRecord:
    return ConfinedRecord.from_arrays(
        beta=args.beta, V0=args.v0, d0=args.d0, CT=args.ct, CP=args.cp, TSR=args.tsr
    )


def _correction(args: argparse.Namespace, default: CorrectionType) -> CorrectionType:
    if args.correction is None:
        return default
    return CorrectionType(args.correction.replace("-", " "))


def _run(
    record: ConfinedRecord,
    args: argparse.Namespace,
    options: SolverOptions,
    guess: float,
    guess_mode: GuessMode,
) -> Tuple[pd.DataFrame, list, List[str]]:
    common = dict(guess=guess, guess_mode=guess_mode, fr_zero_limit=args.fr_zero_limit, options=options)
    if args.mode == "solve":
        solved = solve_lmad(record, **common)
        return build_dataframe(solved, options.tolerance), [record], ["confined"]

    if args.mode == "unconfined":
        unconf, solved = predict_unconfined(
            record,
            correction=_correction(args, CorrectionType.STANDARD),
            scaling_override=args.scaling_velocity,
            **common,
        )
    elif args.mode == "forecast":
        result, solved = forecast_confined(
            record, args.beta2, constant_froude=not args.constant_geometry, **common
        )
        if isinstance(result, ForecastedRecord):
            df = build_forecast_dataframe(result)
            return df, [record, result.record], ["confined", f"beta={args.beta2:g}"]
        unconf = result
    else:
        forecast = linear_forecast(
            record, args.beta2, correction=_correction(args, CorrectionType.BLUFF_BODY), **common
        )
        df = coefficient_dataframe(forecast)
        return df, [record, forecast], ["confined", f"linear beta={args.beta2:g}"]

    df = build_dataframe(solved, options.tolerance)
    df = df.join(coefficient_dataframe(unconf, index=df.index).add_prefix("unconf "))
    return df, [record, unconf], ["confined", "unconfined"]


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    ensure_logger(args.log_file, args.verbose)

    if args.mode in ("forecast", "linear") and args.beta2 is None:
        parser.error(f"--beta2 is required for --mode {args.mode}")
    if args.input is None and None in (args.beta, args.v0, args.d0, args.ct):
        parser.error("provide --input or all of --beta, --v0, --d0, --ct")

    try:
        options, guess, guess_mode = _resolve_settings(args)
    except (ValueError, OSError) as exc:
        parser.error(f"invalid settings in {args.config}: {exc}")
    try:
        records: Sequence[Tuple[str, ConfinedRecord]] = (
            read_records(args.input) if args.input is not None else [("inline", _inline_record(args))]
        )
    except (ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    print(f"\n{MODEL_NAME} LMAD, mode: {args.mode}")
    print("Solver options:", ", ".join(f"{k}={v}" for k, v in asdict(options).items()))
    print(f"Guess: {guess} ({guess_mode.value})")

    frames: List[pd.DataFrame] = []
    curves: list = []
    labels: List[str] = []
    for name, record in records:
        try:
            df, rec_curves, rec_labels = _run(record, args, options, guess, guess_mode)
        except InvalidInputError as exc:
            print(f"error in dataset '{name}': {exc}", file=sys.stderr)
            return 2
        print(f"\nDataset: {name} ({len(record)} samples)")
        print_table(df)
        df.insert(0, "dataset", name)
        frames.append(df)
        curves.extend(rec_curves)
        labels.extend(f"{name}: {label}" for label in rec_labels)

    if args.output is not None:
        pd.concat(frames, ignore_index=True).to_csv(args.output, index=False)
        LOGGER.info("Wrote results to %s", args.output)
    if args.plot is not None:
        plot_performance(curves, labels).savefig(args.plot, dpi=150)
        LOGGER.info("Saved plot to %s", args.plot)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
