"""
run_valuation.py — Value an assumptions file from the command line.

Loads an assumptions JSON (either a bare assumptions record or an object with
an "assumptions" key), runs the full model and prints the result as JSON or as
plain-text tables. Schedules can also be written out as one CSV per table.

Example:
    python backend/scripts/run_valuation.py assumptions.json
    python backend/scripts/run_valuation.py assumptions.json --sensitivity --metric equity_value
    python backend/scripts/run_valuation.py assumptions.json --monte-carlo 5000 --seed 42
    python backend/scripts/run_valuation.py assumptions.json --sanitize --declining-growth --format table
    python backend/scripts/run_valuation.py assumptions.json --csv-dir out/
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from dcf_engine.core.config import settings
from dcf_engine.core.errors import InvalidAssumption, ModelingError
from dcf_engine.core.logging import configure_logging, get_logger
from dcf_engine.services.modeling.dcf import DcfOptions, run_model
from dcf_engine.services.modeling.frames import (
    sensitivity_to_frame,
    statements_to_frames,
    valuation_to_frame,
)
from dcf_engine.services.modeling.monte_carlo import run_monte_carlo
from dcf_engine.services.modeling.sensitivity import SENSITIVITY_METRICS, SensitivityMatrix, run_sensitivity
from dcf_engine.services.modeling.types import Assumptions, ModelResult, build_declining_growth_path
from dcf_engine.services.modeling.validation import assumption_warnings, sanitize_assumptions

logger = get_logger(__name__)

DECLINING_GROWTH_FLOOR_SPREAD = 0.01  # path never drops below terminal growth + 1pt


def load_assumptions(path: Path) -> Assumptions:
    """
    Read an assumptions record from JSON.

    Raises:
        OSError: the file cannot be read
        json.JSONDecodeError: the file is not valid JSON
        InvalidAssumption: the document is not an assumptions object
    """
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and "assumptions" in data:
        data = data["assumptions"]
    if not isinstance(data, dict):
        raise InvalidAssumption.single("assumptions", "must be a JSON object", type(data).__name__)
    return Assumptions.from_dict(data)


def apply_declining_growth(assumptions: Assumptions) -> Assumptions:
    """Replace the flat growth rate with g, 0.9g, 0.8g, ... floored above terminal growth."""
    path = build_declining_growth_path(
        assumptions.revenue_growth_rate,
        assumptions.projection_years,
        floor=assumptions.terminal_growth_rate + DECLINING_GROWTH_FLOOR_SPREAD,
    )
    return assumptions.with_changes(revenue_growth_path=path)


def _money(x: float) -> str:
    return f"{x:,.2f}"


def write_csv_tables(result: ModelResult, sensitivity: Optional[SensitivityMatrix], csv_dir: Path) -> List[Path]:
    """One CSV per schedule plus the discounting table and, when present, the sensitivity grid."""
    csv_dir.mkdir(parents=True, exist_ok=True)
    tables = statements_to_frames(result.statements)
    tables["valuation"] = valuation_to_frame(result.valuation)
    if sensitivity is not None:
        tables["sensitivity"] = sensitivity_to_frame(sensitivity)

    written = []
    for name, frame in tables.items():
        path = csv_dir / f"{name}.csv"
        frame.to_csv(path)
        written.append(path)
    return written


def render_tables(result: ModelResult, sensitivity: Optional[SensitivityMatrix]) -> str:
    sections = []
    for name, frame in statements_to_frames(result.statements).items():
        sections.append(f"== {name} ==\n{frame.T.to_string(float_format=_money)}")
    sections.append(f"== valuation ==\n{valuation_to_frame(result.valuation).to_string()}")
    if sensitivity is not None:
        grid = sensitivity_to_frame(sensitivity).to_string(float_format=_money)
        sections.append(f"== sensitivity ({sensitivity.metric}) ==\n{grid}")

    v = result.valuation
    sections.append(
        f"Enterprise value: {v.enterprise_value:,.0f}\n"
        f"Equity value: {v.equity_value:,.0f}\n"
        f"Implied share price: {v.implied_share_price:,.2f}"
    )
    return "\n\n".join(sections)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Project three statements and run a DCF valuation from an assumptions JSON file"
    )
    parser.add_argument("assumptions_json", type=str, help="Path to assumptions JSON file")
    parser.add_argument(
        "--sanitize",
        action="store_true",
        help="Clamp assumptions into the supported ranges before valuing",
    )
    parser.add_argument(
        "--declining-growth",
        action="store_true",
        help="Use a declining growth path (g, 0.9g, 0.8g, ...) instead of the flat rate",
    )
    parser.add_argument(
        "--sensitivity",
        action="store_true",
        help="Include a WACC x terminal growth sensitivity matrix",
    )
    parser.add_argument(
        "--metric",
        type=str,
        default="share_price",
        choices=SENSITIVITY_METRICS,
        help="Sensitivity metric (default: share_price)",
    )
    parser.add_argument(
        "--monte-carlo",
        type=int,
        default=None,
        metavar="N",
        help="Run N Monte Carlo trials",
    )
    parser.add_argument("--seed", type=int, default=None, help="Monte Carlo RNG seed")
    parser.add_argument(
        "--terminal-value-method",
        type=str,
        default=None,
        choices=("perpetuity", "blended"),
        help="Override TERMINAL_VALUE_METHOD",
    )
    parser.add_argument(
        "--format",
        type=str,
        default="json",
        choices=("json", "table"),
        help="Output format (default: json)",
    )
    parser.add_argument(
        "--csv-dir",
        type=str,
        default=None,
        help="Also write each schedule as <name>.csv into this directory",
    )
    parser.add_argument(
        "--output-json",
        type=str,
        default=None,
        help="Write the result here instead of stdout",
    )
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL)

    try:
        assumptions_path = Path(args.assumptions_json)
        if not assumptions_path.exists():
            raise FileNotFoundError(f"Assumptions file not found: {args.assumptions_json}")

        logger.info(f"Loading assumptions from: {assumptions_path}")
        assumptions = load_assumptions(assumptions_path)

        if args.sanitize:
            assumptions = sanitize_assumptions(assumptions)
        if args.declining_growth:
            assumptions = apply_declining_growth(assumptions)

        options = DcfOptions.from_settings(settings)
        if args.terminal_value_method:
            options = replace(options, terminal_value_method=args.terminal_value_method)

        for w in assumption_warnings(assumptions):
            logger.warning(f"Assumption warning [{w.severity}] {w.field}: {w.message}")

        model = run_model(assumptions, options)
        output = model.to_dict()

        matrix = None
        if args.sensitivity:
            matrix = run_sensitivity(assumptions, metric=args.metric, options=options)
            output["sensitivity"] = matrix.to_dict()

        if args.monte_carlo is not None:
            result = run_monte_carlo(
                assumptions,
                n=args.monte_carlo,
                seed=args.seed,
                batch_size=settings.MONTE_CARLO_BATCH_SIZE,
                options=options,
                outlier_multiple=settings.MONTE_CARLO_OUTLIER_MULTIPLE,
            )
            output["monte_carlo"] = result.to_dict(include_results=False)

        if args.csv_dir:
            for path in write_csv_tables(model, matrix, Path(args.csv_dir)):
                logger.info(f"Wrote {path}")

        if args.format == "table":
            text = render_tables(model, matrix)
        else:
            text = json.dumps(output, indent=2)

        if args.output_json:
            output_path = Path(args.output_json)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(text, encoding="utf-8")
            print(f"Wrote valuation to {output_path}")
        else:
            print(text)

        logger.info(f"Implied share price: {model.valuation.implied_share_price:,.2f}")
        return 0

    except json.JSONDecodeError as e:
        print(f"ERROR: {args.assumptions_json} is not valid JSON: {e}", file=sys.stderr)
        return 2

    except OSError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    except InvalidAssumption as e:
        print(f"ERROR: {e}", file=sys.stderr)
        for v in e.violations:
            print(f"  - {v.field}: {v.constraint} (got {v.value!r})", file=sys.stderr)
        return 2

    except ModelingError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
