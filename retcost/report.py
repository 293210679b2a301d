"""
Console reporting for a cost run.

Uses rich tables when stdout is a terminal and falls back to plain print
statements when output is piped.
"""
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .aggregator import CostAggregator
from .constants import STATUS_FAILED, STATUS_NO_DATA
from .models import BillingPeriod, CostResult, ResourceRecord
from .utils import format_cost


class Reporter:
    """
    Per-resource progress lines and the final summary.

    Usage:
        reporter = Reporter()
        reporter.start(period, total=len(records))
        for index, record in enumerate(records, 1):
            ...
            reporter.resource(index, record, result)
        reporter.summary(aggregator, period)
    """

    def __init__(self, console: Optional[Console] = None, use_rich: Optional[bool] = None):
        self.console = console or Console()
        self._use_rich = sys.stdout.isatty() if use_rich is None else use_rich
        self.total = 0

    def start(self, period: BillingPeriod, total: int) -> None:
        self.total = total
        if self._use_rich:
            self.console.print(
                f"[bold blue]Retirement cost[/] for [bold]{period.start:%Y-%m}[/] "
                f"({total} resource(s))"
            )
        else:
            print(f"\n{'='*60}")
            print(f"Retirement Cost - {period.start:%Y-%m}")
            print(f"{'='*60}")
            print(f"Resources: {total}")
            print()

    def resource(self, index: int, record: ResourceRecord, result: CostResult) -> None:
        """One progress line: index, retirement date, type, feature, name, cost."""
        cost = format_cost(result.cost)
        if result.status == STATUS_FAILED:
            cost += " (query failed)"
        elif result.status == STATUS_NO_DATA:
            cost += " (no usage)"

        line = (
            f"[{index}/{self.total}] {record.retirement_date.isoformat()} "
            f"{record.resource_type} | {record.retiring_feature} | {record.name} | {cost}"
        )
        if self._use_rich:
            style = "red" if result.status == STATUS_FAILED else None
            self.console.print(line, style=style, markup=False, highlight=False)
        else:
            print(line)

    def summary(self, aggregator: CostAggregator, period: BillingPeriod) -> None:
        if self._use_rich:
            self._print_summary_rich(aggregator, period)
        else:
            self._print_summary_plain(aggregator, period)

    def _print_summary_rich(self, aggregator: CostAggregator, period: BillingPeriod) -> None:
        currency = aggregator.currency or ''

        table = Table(title=f"Cost by Type and Feature ({period.start:%Y-%m})")
        table.add_column("Type", style="cyan")
        table.add_column("Retiring Feature")
        table.add_column("Cost", justify="right", style="green")

        for row in aggregator.bucket_rows():
            table.add_row(row['resource_type'], row['retiring_feature'], format_cost(row['cost']))
        table.add_section()
        table.add_row("TOTAL", "", f"{format_cost(aggregator.grand_total)} {currency}".strip())

        self.console.print()
        self.console.print(Panel(table))
        if aggregator.failed_resources:
            self.console.print(
                f"[yellow]{len(aggregator.failed_resources)} resource(s) could not be queried "
                "and were counted as 0[/]"
            )

    def _print_summary_plain(self, aggregator: CostAggregator, period: BillingPeriod) -> None:
        currency = aggregator.currency or ''
        rows = aggregator.bucket_rows()

        type_width = max([len('Type')] + [len(r['resource_type']) for r in rows])
        feature_width = max([len('Retiring Feature')] + [len(r['retiring_feature']) for r in rows])

        print(f"\n{'='*60}")
        print(f"Retirement Cost Summary - {period.start:%Y-%m}")
        print(f"{'='*60}")
        print(f"{'Type':<{type_width}} {'Retiring Feature':<{feature_width}} {'Cost':>18}")
        print(f"{'-'*type_width} {'-'*feature_width} {'-'*18}")
        for row in rows:
            print(
                f"{row['resource_type']:<{type_width}} {row['retiring_feature']:<{feature_width}} "
                f"{format_cost(row['cost']):>18}"
            )
        print(f"{'-'*type_width} {'-'*feature_width} {'-'*18}")
        print(f"{'TOTAL':<{type_width}} {'':<{feature_width}} {format_cost(aggregator.grand_total):>18} {currency}")
        if aggregator.failed_resources:
            print(f"\nWarning: {len(aggregator.failed_resources)} resource(s) could not be queried and were counted as 0")
        print()
