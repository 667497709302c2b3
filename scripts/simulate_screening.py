#!/usr/bin/env python3
"""Simulate a screening session end-to-end with a mocked DB.

Walks one program's catalog through the ScreeningEngine, printing every
question asked, the mock answer chosen, and the final evaluation.

By default answers are **randomised** (``--random``, on by default) so each
run explores a different path through the branching rules.  Use
``--no-random`` for a deterministic run (first option, midpoint, "no").

With ``--fast-path`` every question that maps into the health record is
answered through the fast path instead, using a canned record payload.

Usage::

    # Default run (advair_diskus, random answers)
    python scripts/simulate_screening.py

    # Deterministic Crestor run
    python scripts/simulate_screening.py -p crestor_direct --no-random

    # Reproducible random run
    python scripts/simulate_screening.py --seed 7

    # Use the fast path for mapped questions
    python scripts/simulate_screening.py --fast-path

    # List available programs
    python scripts/simulate_screening.py --list-programs
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so we can import both the SDK and
# test mock infrastructure.
# ---------------------------------------------------------------------------
_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "tests"))
sys.path.insert(0, str(_REPO_ROOT / "src"))

from test_engine import MockRepository  # noqa: E402
from test_fast_path import FakeClock, ScriptedSource, success  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

from screening_flow.catalog import CatalogStore  # noqa: E402
from screening_flow.engine import ScreeningEngine  # noqa: E402
from screening_flow.models.fast_path import FastPathState  # noqa: E402
from screening_flow.models.session import CompletionStep, QuestionPayload  # noqa: E402
from screening_flow.outcome import RuleBasedOutcomeEvaluator  # noqa: E402

USER_ID = "sim_user"
SESSION_ID = "sim_session"
_DEFAULT_PROGRAM = "advair_diskus"

# Health record returned by the simulated record provider.
MOCK_RECORD = {
    "age_verified": True,
    "asthma_copd_diagnosis": True,
    "recent_checkup": True,
    "lab_results": [
        {"test": "LDL Cholesterol", "value": 152, "date": "2026-04-18"},
        {"test": "LDL Cholesterol", "value": 171, "date": "2025-09-02"},
    ],
}

_RANDOM_TEXT_POOL = ["none", "not sure", "see my doctor's notes"]

# Module-level flags toggled by CLI args
_random_mode = True
_quiet = False


# ---------------------------------------------------------------------------
# Mock answer generation
# ---------------------------------------------------------------------------


def generate_mock_answer(q: QuestionPayload) -> Any:
    """Pick an answer based on the question's type and constraints.

    When ``_random_mode`` is True, answers are chosen randomly from the
    available options/range.  Otherwise: "no" for booleans, the first
    option, the midpoint of a numeric range.
    """
    qtype = q.question_type

    if qtype == "boolean":
        return random.choice([True, False]) if _random_mode else False

    if qtype == "choice":
        return random.choice(q.options) if _random_mode else q.options[0]

    if qtype == "numeric":
        constraints = q.constraints or {}
        lo = constraints.get("min") or 0
        hi = constraints.get("max") or 100
        if _random_mode:
            return random.randint(int(lo), int(hi))
        return int((lo + hi) / 2)

    if qtype == "diagnostic_test":
        has_test = random.choice([True, False]) if _random_mode else True
        if not has_test:
            return {"has_test": False}
        return {
            "has_test": True,
            "test_name": "Lipid panel",
            "test_date": "2026-04-18",
            "result": "see attached",
        }

    if not q.required and _random_mode and random.random() < 0.3:
        return None
    return random.choice(_RANDOM_TEXT_POOL) if _random_mode else "none"


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------

_DOUBLE_LINE = "═" * 62
_SINGLE_LINE = "─" * 62


def _print(*args, **kwargs) -> None:
    """Print wrapper that respects the --quiet flag."""
    if not _quiet:
        print(*args, **kwargs)


def log_question_and_answer(index: int, total: int, q: QuestionPayload, answer: Any) -> None:
    _print(f"\n [Q {index + 1}/{total}] {q.text} ({q.qid}) -- type: {q.question_type}")
    if q.options:
        _print(f"     Options: {', '.join(q.options)}")
    if q.constraints:
        _print(f"     Constraints: {json.dumps(q.constraints)}")
    _print(f" [A] {json.dumps(answer)}")


def log_completion(step: CompletionStep) -> None:
    ev = step.evaluation
    _print(f"\n{_DOUBLE_LINE}")
    _print(f" Outcome:     {ev.outcome}")
    _print(f" Reason:      {ev.reason}")
    if ev.recommended_actions:
        _print(f" Actions:     {'; '.join(ev.recommended_actions)}")
    if ev.missing_required:
        _print(f" Missing:     {', '.join(ev.missing_required)}")
    _print(f" Code:        {'eligible' if ev.eligible_for_code else 'not eligible'}")
    _print(_DOUBLE_LINE)


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


async def _answer_by_fast_path(engine: ScreeningEngine, db) -> Any:
    """Run the fast path for the current question; returns the next step or None."""
    ids = {"user_id": USER_ID, "session_id": SESSION_ID}
    fp = await engine.start_fast_path(db, **ids)
    _print(f"\n [FAST PATH] {fp.qid}: connect at {fp.connect_url}")
    engine.deliver_fast_path_message(message=success(MOCK_RECORD), **ids)
    fp = await engine.wait_fast_path(timeout=1, **ids)
    if fp.state != FastPathState.CONFIRMING:
        _print(f"     {fp.state.value}: {fp.message}")
        return None
    _print(f"     Found {json.dumps(fp.value)}; accepting")
    return await engine.confirm_fast_path(db, accept=True, **ids)


async def run_simulation(program_id: str, use_fast_path: bool) -> int:
    store = CatalogStore()
    store.load()
    if program_id not in store.catalogs:
        print(f"Error: Unknown program '{program_id}'.")
        print(f"Available programs: {', '.join(store.catalogs)}")
        return 1

    engine = ScreeningEngine(
        store,
        RuleBasedOutcomeEvaluator(),
        data_source=ScriptedSource() if use_fast_path else None,
        clock=FakeClock(),
    )
    engine._repo = MockRepository()
    db = AsyncMock()

    catalog = store.load_catalog(program_id)
    _print(_DOUBLE_LINE)
    _print(f" SCREENING SIMULATION: {catalog.title} (v{catalog.version})")
    _print(f" Random:    {'ON' if _random_mode else 'OFF'}")
    _print(f" Fast path: {'ON' if use_fast_path else 'OFF'}")
    _print(_DOUBLE_LINE)

    await engine.create_session(db, user_id=USER_ID, session_id=SESSION_ID, program_id=program_id)
    step = await engine.get_current_step(db, user_id=USER_ID, session_id=SESSION_ID)

    # Each question is asked at most once per pass, so this bound is generous
    for _ in range(catalog.total_questions * 2):
        if isinstance(step, CompletionStep):
            break

        if use_fast_path and step.fast_path_offered:
            nxt = await _answer_by_fast_path(engine, db)
            if nxt is not None:
                step = nxt
                continue

        answer = generate_mock_answer(step.question)
        log_question_and_answer(step.index, step.total, step.question, answer)
        step = await engine.submit_answer(
            db, user_id=USER_ID, session_id=SESSION_ID, qid=step.question.qid, value=answer,
        )
        if step.error:
            _print(f"     rejected: {step.error}")
            return 1
        _print(_SINGLE_LINE)
    else:
        _print("\n [!] Questionnaire did not complete")
        await engine.close()
        return 1

    log_completion(step)
    await engine.close()
    return 0


def list_programs() -> None:
    store = CatalogStore()
    store.load()
    print("Available programs:")
    print()
    for i, catalog in enumerate(store.list_catalogs(), 1):
        print(f"  {i:2d}. {catalog.id:<20s} {catalog.title} (v{catalog.version})")


def main() -> None:
    global _random_mode, _quiet

    parser = argparse.ArgumentParser(
        description="Simulate a screening session end-to-end with a mocked DB.",
    )
    parser.add_argument(
        "-p", "--program",
        default=_DEFAULT_PROGRAM,
        help=f"Program to simulate (default: {_DEFAULT_PROGRAM})",
    )
    parser.add_argument(
        "--list-programs",
        action="store_true",
        help="List all available programs and exit",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress all print output (exit code still reflects success/failure)",
    )
    parser.add_argument(
        "--random",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Randomise mock answers (default: on). Use --no-random for deterministic mode.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--fast-path",
        action="store_true",
        help="Answer mapped questions from a canned health record",
    )
    args = parser.parse_args()

    if args.list_programs:
        list_programs()
        sys.exit(0)

    _random_mode = args.random
    _quiet = args.quiet
    if args.seed is not None:
        random.seed(args.seed)

    sys.exit(asyncio.run(run_simulation(args.program, args.fast_path)))


if __name__ == "__main__":
    main()
