"""
Command-line bootstrap for the Finance Tracker

Starts the tracker against the configured local data directory (and the
Google Sheets mirror when configured), prints this half-month's budget
overview and the current month balance, then exits.

    python -m app.main
"""

import asyncio
import json
from datetime import date

from finance_tracker.orchestrator import create_app_components


async def run() -> None:
    tracker = create_app_components()
    try:
        report = await tracker.start()
        today = date.today()
        overview = await tracker.budget_overview(within=today)
        balance = await tracker.current_month_balance(today)

        print(json.dumps(
            {
                "sync": report.model_dump(mode="json") if report else None,
                "budgets": [
                    {
                        "category": aggregate.category_name,
                        "limit": str(aggregate.total_limit),
                        "spent": str(aggregate.total_spent),
                        "percentage": round(aggregate.display_percentage, 1),
                        "alert": aggregate.alert_level.value,
                        "consolidated": aggregate.is_consolidated,
                    }
                    for aggregate in overview
                ],
                "balance": {
                    "income": str(balance.income),
                    "expenses": str(balance.expenses),
                    "balance": str(balance.balance),
                },
            },
            ensure_ascii=False,
            indent=2,
        ))
    finally:
        await tracker.close()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
