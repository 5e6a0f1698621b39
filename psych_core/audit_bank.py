from __future__ import annotations

import argparse
import json
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import config
from .question_bank import _strata, categories_of, load_pool
from .types import (
    ASPECTS, DIMENSIONS,
    AptitudeQuestion, DichotomyQuestion, ForcedChoicePair, Instrument, Question,
)


def _shape_warnings(instrument: Instrument, q: Question) -> List[str]:
    out: List[str] = []
    if isinstance(q, DichotomyQuestion):
        if len(q.options) != 2 or sorted(q.codes()) != sorted(q.pair):
            out.append(f"{instrument.value} {q.id} options {q.codes()} do not match pair {q.pair}")
    elif isinstance(q, AptitudeQuestion):
        if not q.options:
            out.append(f"{instrument.value} {q.id} has no options")
        aspects = {o.aspect for o in q.options}
        if len(aspects) > 1:
            out.append(f"{instrument.value} {q.id} mixes aspects {sorted(aspects)}")
        if aspects - set(ASPECTS):
            out.append(f"{instrument.value} {q.id} unknown aspect {sorted(aspects - set(ASPECTS))}")
    elif isinstance(q, ForcedChoicePair):
        dims = q.dimensions()
        if len(dims) != 2 or dims[0] == dims[1]:
            out.append(f"{instrument.value} {q.id} needs two different dimensions, has {dims}")
        if set(dims) - set(DIMENSIONS):
            out.append(f"{instrument.value} {q.id} unknown dimension {sorted(set(dims) - set(DIMENSIONS))}")
    return out


def audit_pool(instrument: Instrument, items: Iterable[Question]) -> Dict[str, object]:
    items = list(items)
    strata, minimum = _strata(instrument)
    coverage: Dict[str, int] = {s: 0 for s in strata}
    warnings: List[str] = []

    dupes = [qid for qid, n in Counter(q.id for q in items).items() if n > 1]
    for qid in dupes:
        warnings.append(f"{instrument.value} duplicate id {qid}")

    for q in items:
        warnings.extend(_shape_warnings(instrument, q))
        for cat in categories_of(q):
            coverage[cat] = coverage.get(cat, 0) + 1

    for stratum in strata:
        if coverage.get(stratum, 0) < minimum:
            warnings.append(
                f"{instrument.value} {stratum} has {coverage.get(stratum, 0)} (<{minimum})"
            )
    if minimum * len(strata) > config.QUESTIONS_PER_SESSION and instrument is not Instrument.PAPI_KOSTICK:
        warnings.append(
            f"{instrument.value} minima need {minimum * len(strata)} questions, "
            f"session holds {config.QUESTIONS_PER_SESSION}"
        )
    if len(items) < config.QUESTIONS_PER_SESSION:
        warnings.append(f"{instrument.value} pool has {len(items)} (<{config.QUESTIONS_PER_SESSION})")

    return {"size": len(items), "coverage": coverage, "warnings": warnings}


def audit_all(pools: Optional[Dict[Instrument, List[Question]]] = None) -> Dict[str, object]:
    pools = pools or {inst: load_pool(inst) for inst in Instrument}
    per: Dict[str, Dict[str, object]] = {}
    warnings: List[str] = []
    for inst, items in pools.items():
        summary = audit_pool(inst, items)
        per[inst.value] = summary
        warnings.extend(summary["warnings"])  # type: ignore[arg-type]
    return {"instruments": per, "warnings": warnings}


def print_report(summary: Dict[str, object]) -> None:
    per: Dict[str, Dict[str, object]] = summary["instruments"]  # type: ignore[assignment]
    print("=== Pool Coverage ===")
    for name in sorted(per):
        data = per[name]
        print(f"\n{name}: {data['size']} questions")
        cov: Dict[str, int] = data["coverage"]  # type: ignore[assignment]
        print("  " + "  ".join(f"{k}:{v:3d}" for k, v in cov.items()))

    warnings: List[str] = summary["warnings"]  # type: ignore[assignment]
    if warnings:
        print("\nWarnings:")
        for msg in warnings:
            print(f" - {msg}")
    else:
        print("\nNo warnings.")


def write_summary(summary: Dict[str, object], path: Path) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    return text


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Audit question pools against the selection rules.")
    ap.add_argument("--out", type=Path, default=None, help="also write the JSON summary here")
    args = ap.parse_args(argv)
    summary = audit_all()
    print_report(summary)
    if args.out is not None:
        write_summary(summary, args.out)
    return 2 if summary["warnings"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
