import argparse
import json
from pathlib import Path
from typing import Any, Dict, List

from . import __version__
from . import repository as repo
from .budget import ProviderBudget
from .cleanup import MaintenanceSweep
from .config import Settings
from .contracts import ContractService
from .database import session_scope
from .drivers import IngestionDriver, JobQuery
from .env import load_env
from .errors import PainSignalError
from .logger import get_logger, reset_logger
from .pipeline import Pipeline
from .providers import ContractsFinderProvider, ReedProvider
from .salary import format_salary


def load_records(input_path: Path) -> List[Dict[str, Any]]:
    """Read a JSON object, a JSON array, or JSON lines."""
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    text = input_path.read_text(encoding="utf-8").strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            return [json.loads(line) for line in text.splitlines() if line.strip()]
        except json.JSONDecodeError as e:
            raise SystemExit(f"Invalid JSON input: {e}")
    return data if isinstance(data, list) else [data]


def print_stats(title: str, stats: Dict[str, Any]) -> None:
    print(f"{title}: " + " ".join(f"{k}={v}" for k, v in stats.items()))


def build_pipeline(args: argparse.Namespace) -> Pipeline:
    settings: Settings = args.settings
    return Pipeline.for_database(args.db, max_workers=settings.max_workers)


def build_reed(settings: Settings, pipeline: Pipeline) -> ReedProvider:
    if not settings.reed_api_key:
        raise SystemExit("REED_API_KEY not set. Set env var or add it to .env.")
    budget = ProviderBudget(pipeline.factory, "reed", settings.reed_daily_budget)
    return ReedProvider(settings.reed_api_key, timeout=settings.provider_timeout, budget=budget)


def build_contracts_finder(settings: Settings, pipeline: Pipeline) -> ContractsFinderProvider:
    budget = ProviderBudget(pipeline.factory, "contracts_finder", settings.contracts_daily_budget)
    return ContractsFinderProvider(timeout=settings.provider_timeout, budget=budget)


def cmd_ingest(args: argparse.Namespace) -> None:
    records = load_records(Path(args.input))
    stats = build_pipeline(args).run_batch(records)
    print_stats("Done", stats.as_dict())
    for error in stats.errors:
        print(f"[error] {error}")


def cmd_ingest_contracts(args: argparse.Namespace) -> None:
    records = load_records(Path(args.input))
    counts = ContractService(build_pipeline(args)).ingest_many(records)
    print_stats("Done", counts)


def cmd_fetch_jobs(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(args)
    reed = build_reed(args.settings, pipeline)
    observations = reed.search(args.keywords, args.location, posted_within=args.posted_within, max_results=args.limit)
    print(f"Fetched {len(observations)} postings ({reed.agency_filtered} agency adverts filtered).")
    stats = pipeline.run_batch(observations)
    print_stats("Done", stats.as_dict())


def cmd_fetch_contracts(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(args)
    awards = build_contracts_finder(args.settings, pipeline).fetch_awards(days_back=args.days)
    print(f"Fetched {len(awards)} contract awards.")
    counts = ContractService(pipeline).ingest_many(awards)
    print_stats("Done", counts)


def cmd_run(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(args)
    queries = [
        JobQuery(keywords=k.strip(), location=loc.strip(), posted_within=args.posted_within)
        for k in args.keywords.split(",") if k.strip()
        for loc in args.locations.split(",") if loc.strip()
    ]
    reed = build_reed(args.settings, pipeline) if queries else None
    driver = IngestionDriver(pipeline, reed=reed, contracts=build_contracts_finder(args.settings, pipeline))
    stats = driver.run(queries, contract_days_back=args.days)
    print(f"Queries: run={stats.queries_run} deferred={stats.queries_deferred} agency_filtered={stats.agency_filtered}")
    print_stats("Jobs", stats.jobs.as_dict())
    print_stats("Contracts", stats.contracts)
    print_stats("Reconcile", stats.reconcile.as_dict())
    print_stats("Sweep", stats.sweep.as_dict())


def cmd_sweep(args: argparse.Namespace) -> None:
    stats = MaintenanceSweep(build_pipeline(args)).run_maintenance()
    print_stats("Done", stats.as_dict())


def cmd_reconcile_contracts(args: argparse.Namespace) -> None:
    stats = ContractService(build_pipeline(args)).reconcile_contract_signals()
    print_stats("Done", stats.as_dict())


def cmd_score(args: argparse.Namespace) -> None:
    try:
        score = build_pipeline(args).recalculate_score(args.company_id)
    except PainSignalError as e:
        raise SystemExit(str(e))
    print(f"Company {args.company_id}: pain score {score}")


def cmd_list(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(args)
    with session_scope(pipeline.factory) as session:
        companies = repo.top_companies(session, min_score=args.min_score, limit=args.limit)
        if not companies:
            print("No companies found.")
            return
        print(f"Found {len(companies)} companies:\n")
        for company in companies:
            print(f"{company.name} [{company.id}]")
            print(f"  Pain score: {company.hiring_pain_score}")
            if company.domain:
                print(f"  Domain: {company.domain}")
            for signal in repo.active_signals_for_company(session, company.id):
                print(f"  +{signal.pain_score_contribution:>2} {signal.urgency:<11} {signal.signal_title}")
            if args.jobs:
                for posting in repo.active_postings(session, company.id):
                    print(f"  - {posting.title} ({posting.location or 'n/a'}) "
                          f"{format_salary(posting.salary_min, posting.salary_max)}")
            print()


def main():
    # Load .env if present (REED_API_KEY, PAINSIGNAL_* settings)
    load_env()
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(prog="painsignal", description="Company identity resolution and hiring-pain signals")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", default=str(settings.db_path), help=f"Database path or URL (default: {settings.db_path})")

    subparsers = parser.add_subparsers(dest="command")
    ing = subparsers.add_parser("ingest", help="Ingest job postings from a JSON/JSONL file")
    ing.add_argument("--input", required=True, help="Path to postings JSON")
    ing.set_defaults(func=cmd_ingest)

    ingc = subparsers.add_parser("ingest-contracts", help="Ingest contract awards from a JSON/JSONL file")
    ingc.add_argument("--input", required=True, help="Path to contract awards JSON")
    ingc.set_defaults(func=cmd_ingest_contracts)

    fj = subparsers.add_parser("fetch-jobs", help="Search Reed and ingest direct-employer postings")
    fj.add_argument("--keywords", required=True, help="Search keywords, e.g. \"site manager\"")
    fj.add_argument("--location", required=True, help="Location name, e.g. London")
    fj.add_argument("--posted-within", type=int, default=7, help="Days (default: 7)")
    fj.add_argument("--limit", type=int, default=200, help="Max results (default: 200)")
    fj.set_defaults(func=cmd_fetch_jobs)

    fc = subparsers.add_parser("fetch-contracts", help="Fetch Contracts Finder awards and ingest them")
    fc.add_argument("--days", type=int, default=1, help="Days back (default: 1)")
    fc.set_defaults(func=cmd_fetch_contracts)

    run = subparsers.add_parser("run", help="Full scheduled run: fetch, ingest, reconcile, sweep")
    run.add_argument("--keywords", default="", help="Comma-separated keywords")
    run.add_argument("--locations", default="", help="Comma-separated locations")
    run.add_argument("--posted-within", type=int, default=7, help="Days (default: 7)")
    run.add_argument("--days", type=int, default=1, help="Contract days back (default: 1)")
    run.set_defaults(func=cmd_run)

    sw = subparsers.add_parser("sweep", help="Deactivate unseen postings and refresh signals")
    sw.set_defaults(func=cmd_sweep)

    rc = subparsers.add_parser("reconcile-contracts", help="Emit or resolve contract no-hiring signals")
    rc.set_defaults(func=cmd_reconcile_contracts)

    sc = subparsers.add_parser("score", help="Recalculate one company's pain score")
    sc.add_argument("--company-id", required=True, help="Company id")
    sc.set_defaults(func=cmd_score)

    lst = subparsers.add_parser("list", help="List companies by pain score")
    lst.add_argument("--min-score", type=int, default=0, help="Minimum score (default: 0)")
    lst.add_argument("--limit", type=int, default=50, help="Max companies (default: 50)")
    lst.add_argument("--jobs", action="store_true", help="Also show active postings")
    lst.set_defaults(func=cmd_list)

    args = parser.parse_args()
    if args.version:
        print(__version__)
        return
    if not hasattr(args, "func"):
        parser.print_help()
        return

    args.settings = settings
    reset_logger()
    get_logger(level=settings.log_level, log_dir=settings.log_dir)
    args.func(args)


if __name__ == "__main__":
    main()
