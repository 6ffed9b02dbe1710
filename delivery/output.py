"""
Output delivery. CLI (stdout) only.
"""

from models import CollectionResult


def deliver_cli(result: CollectionResult, run_id: int | None = None):
    """Print a collection snapshot. That's it."""
    separator = "─" * 60

    print(f"\n{separator}")
    print("  COLLECTION RUN" + (f" #{run_id}" if run_id is not None else ""))
    print(f"  {result.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    print(f"  ({len(result.succeeded)}/{len(result.outcomes)} sources ok)")
    print(separator)

    for name, outcome in result.outcomes.items():
        if outcome.succeeded:
            line = f"{outcome.value} records"
        else:
            line = f"{outcome.status.value.upper()}: {outcome.error}"
        print(f"  {name:<10} {line}  [attempts: {outcome.attempts}]")

    if result.errors:
        print(separator)
        print("  Errors:")
        for error in result.errors:
            print(f"    - {error}")

    print(separator)
