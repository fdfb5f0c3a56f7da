#!/usr/bin/env python3
"""Walk random paths through a funnel and tally the outcomes.

Drives ``FormSession`` directly (no database, no HTTP), picking a random
option at every choice step and a random accident date within roughly
three years, then submitting fixed contact details at the contact step.
Useful for eyeballing that every branch ends somewhere sensible after a
funnel YAML edit.

Usage::

    # Install deps (first time only)
    pip install -e ".[scripts]"

    # 200 random walks through the default funnel
    python scripts/simulate_funnel.py -n 200

    # Print every question and answer of a few walks
    python scripts/simulate_funnel.py -f myinjuryclaimnow_mva -n 3 -v

    # Reproducible run
    python scripts/simulate_funnel.py --seed 42
"""

from __future__ import annotations

import argparse
import random
import sys
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path

from rich.console import Console
from rich.table import Table

_REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO_ROOT / "src"))

from lead_funnel.funnel import FunnelStore  # noqa: E402
from lead_funnel.graph import StepGraph  # noqa: E402
from lead_funnel.models.session import Contact, SessionStatus, TrackingMetadata  # noqa: E402
from lead_funnel.models.step import ChoiceStep, DateStep  # noqa: E402
from lead_funnel.session import FormSession  # noqa: E402

SIM_CONTACT = Contact(
    first_name="Sim",
    last_name="Ulated",
    phone="(555) 010-0199",
    email="sim@example.com",
)

# Upper bound for random accident dates, in days before "now"
_MAX_DATE_AGE = 1100

console = Console()


def walk(graph: StepGraph, rng: random.Random, now: datetime, *, verbose: bool) -> FormSession:
    """Run one random path to a terminal state and return the session."""
    tracking = TrackingMetadata.from_landing_page(
        "https://example.com/?utm_source=simulator", created_at=now,
    )
    session = FormSession(graph, tracking=tracking, clock=lambda: now)

    while not session.is_terminal:
        step = graph.get_step(session.current_step_id)
        if isinstance(step, ChoiceStep):
            opt = rng.choice(step.options)
            value, label = opt.value, opt.label
        elif isinstance(step, DateStep):
            value = (now.date() - timedelta(days=rng.randint(0, _MAX_DATE_AGE))).isoformat()
            label = value
        else:
            state = session.submit_contact(SIM_CONTACT)
            if verbose:
                console.print(f"    [dim]{step.id}:[/] contact submitted")
            if state.validation_error is not None:
                raise RuntimeError(f"simulated contact rejected: {state.validation_error}")
            break

        if verbose:
            console.print(f"    [dim]{step.id}:[/] {step.question} -> [bold]{label}[/]")
        session.submit_answer(step.question_key, value, label)

    return session


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("-f", "--funnel", default="commercial_mva", help="Funnel id")
    parser.add_argument("-n", "--runs", type=int, default=100, help="Number of walks")
    parser.add_argument("--funnel-dir", default=None, help="Funnel YAML directory")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--list-funnels", action="store_true")
    args = parser.parse_args()

    store = FunnelStore(args.funnel_dir)
    store.load()

    if args.list_funnels:
        for f in store.list_funnels():
            console.print(f"  {f.id:<28} {f.source_site:<28} {f.lead_type}")
        return

    graph = store.get_graph(args.funnel)
    rng = random.Random(args.seed)
    now = datetime.now(timezone.utc)

    outcomes: Counter[str] = Counter()
    path_lengths: list[int] = []
    for i in range(args.runs):
        if args.verbose:
            console.rule(f"Walk {i + 1}")
        session = walk(graph, rng, now, verbose=args.verbose)
        record = session.to_lead_record()
        if session.status is SessionStatus.QUALIFIED:
            outcomes["Qualified"] += 1
        else:
            outcomes[f"Disqualified: {record.disqualification_reason}"] += 1
        path_lengths.append(len(record.answers))
        if args.verbose:
            console.print(f"  -> [bold]{record.status}[/] {record.disqualification_reason or ''}")

    table = Table(title=f"{args.runs} walks through {graph.funnel_id}")
    table.add_column("Outcome")
    table.add_column("Count", justify="right")
    table.add_column("Share", justify="right")
    for outcome, count in outcomes.most_common():
        table.add_row(outcome, str(count), f"{count / args.runs:.0%}")
    console.print(table)
    if path_lengths:
        console.print(
            f"Answers per walk: min {min(path_lengths)}, max {max(path_lengths)}, "
            f"mean {sum(path_lengths) / len(path_lengths):.1f}"
        )


if __name__ == "__main__":
    main()
