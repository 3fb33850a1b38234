"""
Console summary of a recipe generation run.

Uses Rich for colored output. The recipe text itself is never printed
through here; it goes to the file or to stdout untouched.
"""

from pathlib import Path
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .error_handling import UnresolvedLicenseWarning
from .generator import GenerationResult

GIT_SCHEMES = ("git://", "gitsm://")


class RecipeReporter:
    """Formats and displays the outcome of a generation run."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_generation_results(
        self,
        result: GenerationResult,
        output_path: Optional[Path] = None,
        verbose: bool = False,
    ) -> None:
        """
        Print a summary of the generated recipe.

        Args:
            result: The generation result to display
            output_path: Where the recipe was written, if it was
            verbose: Also list the source entries of the recipe
        """
        self.console.print()
        self._print_header(result)
        self._print_summary(result)

        if verbose:
            self._print_sources(result)

        if result.notices:
            self._print_notices(list(result.notices))
        if result.warnings:
            self._print_license_warnings(list(result.warnings))

        self._print_footer(result, output_path)

    def _print_header(self, result: GenerationResult) -> None:
        self.console.print(
            Panel(
                f"📦 Recipe: {result.recipe_name}",
                title="[bold blue]cargo-recipe[/bold blue]",
                border_style="blue",
            )
        )

    def _print_summary(self, result: GenerationResult) -> None:
        """Print the recipe's key fields in a table."""
        document = result.document
        table = Table(title="📊 Recipe Summary", box=box.ROUNDED, title_style="bold cyan")
        table.add_column("Field", style="bold")
        table.add_column("Value")

        license_section = document.section("license")
        license_line = license_section.lines[0] if license_section else ""
        table.add_row("Dependencies", str(result.total_dependencies))
        table.add_row("Source entries", str(len(document.source_uris)))
        table.add_row("License", license_line.partition("=")[2].strip().strip('"'))

        git_count = sum(1 for uri in document.source_uris if uri.startswith(GIT_SCHEMES))
        if git_count:
            table.add_row("Git sources", str(git_count))

        if result.warnings:
            table.add_row(
                "Unresolved licenses",
                f"[bold yellow]{len(result.warnings)}[/bold yellow]",
            )

        self.console.print(table)
        self.console.print()

    def _print_sources(self, result: GenerationResult) -> None:
        table = Table(title="🔗 Source Entries", box=box.SIMPLE)
        table.add_column("URI", style="cyan")
        for uri in result.document.source_uris:
            table.add_row(uri)
        self.console.print(table)
        self.console.print()

    def _print_notices(self, notices: List[str]) -> None:
        self.console.print(
            Panel(
                "\n".join(f"• {notice}" for notice in notices),
                title="[bold yellow]ℹ️  Notices[/bold yellow]",
                border_style="yellow",
            )
        )

    def _print_license_warnings(self, warnings: List[UnresolvedLicenseWarning]) -> None:
        """Unresolved licenses need a manual md5 before the recipe can build."""
        lines = [f"• {warning.message}" for warning in warnings]
        lines.append("")
        lines.append("Replace the 'generateme' placeholders in LIC_FILES_CHKSUM by hand.")
        self.console.print(
            Panel(
                "\n".join(lines),
                title="[bold yellow]⚠️  Unresolved Licenses[/bold yellow]",
                border_style="yellow",
            )
        )

    def _print_footer(self, result: GenerationResult, output_path: Optional[Path]) -> None:
        duration_seconds = result.duration_ms / 1000
        self.console.print(
            f"\n[dim]Processed {result.total_dependencies} packages "
            f"in {duration_seconds:.2f} seconds[/dim]"
        )

        if output_path is not None:
            self.console.print(f"\n✅ Wrote {output_path}", style="bold green")
        if result.warnings:
            self.console.print(
                "\n[bold yellow]⚠️  Recipe needs manual license checksums[/bold yellow]"
            )

