"""Rich terminal reporter for scan runs."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from skillduggery.parser.models import ScanFinding, ScanRun, Severity

SEVERITY_COLORS: dict[Severity, str] = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
    Severity.INFO: "dim",
    Severity.SAFE: "bold green",
}

SEVERITY_SYMBOLS: dict[Severity, str] = {
    Severity.CRITICAL: "[!]",
    Severity.HIGH: "[H]",
    Severity.MEDIUM: "[M]",
    Severity.LOW: "[L]",
    Severity.INFO: "[i]",
    Severity.SAFE: "[ok]",
}


class TerminalReporter:
    """Format and display scan runs in the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    def report(self, run: ScanRun) -> None:
        """Display a full scan report."""
        self._print_header(run)
        self._print_findings_table(run)
        self._print_summary(run)

    def _print_header(self, run: ScanRun) -> None:
        header = Text()
        header.append(f"Run: {run.id}\n", style="bold")
        header.append(f"Trigger: {run.trigger.value}\n")
        header.append(f"Skills scanned: {run.skill_count}\n")
        header.append(f"Duration: {run.duration_seconds * 1000:.0f}ms")
        self._console.print(Panel(header, title="Skillduggery Scan"))

    def _print_findings_table(self, run: ScanRun) -> None:
        """Print findings as a formatted table, most severe first."""
        if not run.findings:
            self._console.print(
                "\n[bold green]No findings.[/bold green] Skills look clean.\n"
            )
            return

        sorted_findings = sorted(run.findings, key=lambda f: -f.severity.priority)

        table = Table(title="Findings", show_lines=True, expand=True)
        table.add_column("Severity", width=12)
        table.add_column("Rule", ratio=1)
        table.add_column("Title", ratio=2)
        table.add_column("Location", ratio=1)
        table.add_column("Analyzer", width=10)

        for finding in sorted_findings:
            sev_text = Text(
                f"{SEVERITY_SYMBOLS[finding.severity]} {finding.severity.value.upper()}",
                style=SEVERITY_COLORS[finding.severity],
            )
            table.add_row(
                sev_text,
                finding.rule_id,
                finding.title,
                _location(finding),
                finding.analyzer,
            )

        self._console.print(table)

        for finding in sorted_findings:
            if finding.severity in (Severity.CRITICAL, Severity.HIGH):
                self._print_finding_detail(finding)

    def _print_finding_detail(self, finding: ScanFinding) -> None:
        content = Text()
        content.append(f"{finding.description}\n\n")
        if finding.snippet:
            content.append("Code:\n", style="bold")
            content.append(f"  {finding.snippet}\n\n")
        if finding.remediation:
            content.append("Remediation: ", style="bold")
            content.append(finding.remediation)
        self._console.print(
            Panel(
                content,
                title=f"{finding.rule_id}: {finding.title}",
                border_style=SEVERITY_COLORS[finding.severity],
            )
        )

    def _print_summary(self, run: ScanRun) -> None:
        style = SEVERITY_COLORS[run.max_severity]
        summary = Text()
        summary.append("\nMax Severity: ", style="bold")
        summary.append(run.max_severity.value.upper(), style=style)
        summary.append(f"\nTotal Findings: {run.finding_count}")

        for sev in Severity:
            count = sum(1 for f in run.findings if f.severity == sev)
            if count > 0:
                summary.append(f"\n  {sev.value}: {count}", style=SEVERITY_COLORS[sev])

        self._console.print(Panel(summary, title="Summary"))


def _location(finding: ScanFinding) -> str:
    if not finding.file_path:
        return "-"
    if finding.line_number:
        return f"{finding.file_path}:{finding.line_number}"
    return finding.file_path
