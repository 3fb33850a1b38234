import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from .cli_config import (
    RecipeConfig,
    apply_config_section,
    create_sample_config,
    get_config,
    load_config,
    load_config_file,
    validate_config_values,
)
from .completion import get_completion_scripts
from .error_handling import RecipeError, setup_error_handling
from .generator import generate_recipe, write_recipe
from .reporting import RecipeReporter
from .structured_logging import configure_logging

__version__ = "0.9.0"

console = Console()

CONFIG_SECTIONS = ("recipe", "index", "license", "security", "logging")


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    📦 cargo-recipe: BitBake recipes from Cargo projects

    Turns a crate's Cargo.toml and Cargo.lock into a .bb recipe that lists
    every locked dependency as a fetchable source.
    """
    if version:
        console.print(f"cargo-recipe version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command()
@click.option(
    "--manifest-path",
    type=click.Path(exists=True, readable=True),
    help="Path to Cargo.toml or the crate directory (default: search from cwd)",
)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False),
    help="Directory to write the recipe into (default from config or '.')",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress the summary")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="List every source entry of the recipe",
)
@click.option(
    "--reproducible",
    "-R",
    is_flag=True,
    help="Pin git dependencies to the commits locked in Cargo.lock",
)
@click.option(
    "--legacy-overrides",
    "-l",
    is_flag=True,
    help="Use the pre-honister override syntax (PV_append)",
)
@click.option("--index-reference", help="Registry index reference for SRC_URI")
@click.option("--index-md5", help="md5sum of the registry index snapshot")
@click.option("--index-sha256", help="sha256sum of the registry index snapshot")
@click.option(
    "--stdout",
    "to_stdout",
    is_flag=True,
    help="Print the recipe instead of writing it to a file",
)
def generate(
    manifest_path: Optional[str],
    output_dir: Optional[str],
    quiet: bool,
    verbose: bool,
    reproducible: bool,
    legacy_overrides: bool,
    index_reference: Optional[str],
    index_md5: Optional[str],
    index_sha256: Optional[str],
    to_stdout: bool,
) -> None:
    """
    Generate a bitbake recipe for the crate.

    Examples:

      cargo-recipe generate

      cargo-recipe generate --manifest-path path/to/Cargo.toml -o recipes/

      cargo-recipe generate --reproducible --index-reference crate-index://crates.io/abc123

      cargo-recipe generate --stdout > my-crate.bb
    """
    err_console = Console(stderr=True)
    try:
        config = load_config()
        configure_logging(config.logging.log_level, config.logging.enable_json)
        setup_error_handling(getattr(logging, config.logging.log_level.upper(), logging.WARNING))

        if not quiet and not to_stdout:
            console.print(
                Panel(
                    f"📦 [bold blue]cargo-recipe[/bold blue] v{__version__}",
                    border_style="blue",
                )
            )

        result = generate_recipe(
            manifest_path=Path(manifest_path) if manifest_path else None,
            index_reference=index_reference,
            index_md5=index_md5,
            index_sha256=index_sha256,
            reproducible=reproducible or None,
            legacy_overrides=legacy_overrides or None,
        )

        output_path = None
        if to_stdout:
            click.echo(result.text, nl=False)
        else:
            output_path = write_recipe(result, Path(output_dir) if output_dir else None)

        if not quiet:
            reporter = RecipeReporter(err_console if to_stdout else console)
            reporter.print_generation_results(result, output_path, verbose)
        elif output_path is not None:
            console.print(str(output_path))

    except KeyboardInterrupt:
        err_console.print("\n⚠️  Generation interrupted by user", style="yellow")
        sys.exit(130)
    except RecipeError as e:
        err_console.print(f"❌ Error: {e}", style="red")
        sys.exit(1)
    except OSError as e:
        err_console.print(f"❌ Failed to write recipe: {e}", style="red")
        sys.exit(1)


@cli.command()
def info():
    """Show supported inputs, configuration files and environment variables."""
    info_text = """
[bold blue]📋 Inputs:[/bold blue]

• [green]Cargo.toml[/green] - package metadata (description, homepage, license)
• [green]Cargo.lock[/green] - the locked dependency graph
• [green]LICENSE*[/green] files in the crate directory - hashed into LIC_FILES_CHKSUM

[bold blue]🔗 Dependency Sources:[/bold blue]

• [yellow]crates.io[/yellow] - rendered as crate:// URIs
• [yellow]git[/yellow] - rendered as git:// URIs with SRCREV lines
• [yellow]path[/yellow] - workspace members, built from the project checkout

[bold blue]🌍 Environment Variables:[/bold blue]

• [cyan]CARGO_RECIPE_REGISTRY_HOST[/cyan] - Registry host in crate:// URIs
• [cyan]CARGO_RECIPE_OUTPUT_DIR[/cyan] - Default output directory
• [cyan]CARGO_RECIPE_REPRODUCIBLE[/cyan] - Pin git sources to locked commits
• [cyan]CARGO_RECIPE_LEGACY_OVERRIDES[/cyan] - Use PV_append instead of PV:append
• [cyan]CARGO_RECIPE_PROJECT_SOURCE[/cyan] - Append the project's own git source (default true)
• [cyan]CARGO_RECIPE_INDEX_REFERENCE[/cyan] - Registry index reference
• [cyan]CARGO_RECIPE_INDEX_MD5[/cyan] / [cyan]CARGO_RECIPE_INDEX_SHA256[/cyan] - Index digests
• [cyan]CARGO_RECIPE_LICENSE_DIGESTS[/cyan] - Comma separated, e.g. md5,sha256
• [cyan]CARGO_RECIPE_MAX_FILE_SIZE_MB[/cyan] - Manifest and lockfile size limit
• [cyan]CARGO_RECIPE_LOG_LEVEL[/cyan] - Structured log level

[bold blue]📄 Configuration Files:[/bold blue]

• [green].cargo-recipe.json[/green] / [green].cargo-recipe.yaml[/green] - Project-level config
• [green]~/.config/cargo-recipe/config.json[/green] - User-level config

[bold blue]💡 Usage Examples:[/bold blue]

  # Recipe for the crate in the current directory
  cargo-recipe generate

  # Write into a layer
  cargo-recipe generate -o ../meta-mylayer/recipes-rust/my-crate

  # Generate sample config
  cargo-recipe config init
"""
    console.print(
        Panel(
            info_text,
            title="[bold]cargo-recipe Information[/bold]",
            border_style="blue",
        )
    )


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".cargo-recipe.json",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
    except OSError as e:
        console.print(f"❌ Failed to create config file: {e}", style="red")
        sys.exit(1)

    console.print(f"✅ Created configuration file at {config_path}", style="green")
    console.print("Edit this file to customize your settings", style="dim")


@config.command("show")
def config_show():
    """Show current configuration settings."""
    current_config = get_config()

    console.print(Panel("[bold blue]🔧 Configuration[/bold blue]", border_style="blue"))

    console.print("\n[bold cyan]📦 Recipe Settings:[/bold cyan]")
    console.print(f"  Registry Host: {current_config.recipe.registry_host}")
    console.print(f"  URI Scheme: {current_config.recipe.uri_scheme}")
    console.print(f"  Inherit: {current_config.recipe.inherit}")
    console.print(f"  Reproducible: {current_config.recipe.reproducible}")
    console.print(f"  Legacy Overrides: {current_config.recipe.legacy_overrides}")
    console.print(f"  Project Source: {current_config.recipe.include_project_source}")
    console.print(f"  Output Directory: {current_config.recipe.output_dir}")

    console.print("\n[bold cyan]🗂️  Index Provenance:[/bold cyan]")
    console.print(f"  Reference: {current_config.index.reference}")
    console.print(f"  md5sum: {current_config.index.md5sum}")
    console.print(f"  sha256sum: {current_config.index.sha256sum}")

    console.print("\n[bold cyan]📜 License Settings:[/bold cyan]")
    console.print(f"  Digests: {', '.join(current_config.license.digests)}")
    console.print(f"  Bare Names: {', '.join(current_config.license.bare_names)}")
    console.print(f"  Placeholder: {current_config.license.placeholder}")
    console.print(f"  Closed License: {current_config.license.closed_license}")

    console.print("\n[bold cyan]🔒 Security Settings:[/bold cyan]")
    console.print(f"  Max File Size: {current_config.security.max_file_size_mb} MB")
    console.print(
        f"  Allowed Files: {', '.join(current_config.security.allowed_manifest_names)}"
    )

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")
    console.print(f"  JSON Logs: {current_config.logging.enable_json}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True))
def config_validate(config_file: str):
    """Validate a configuration file."""
    config_data = load_config_file(Path(config_file))

    if not isinstance(config_data, dict):
        console.print(f"❌ Could not load config from {config_file}", style="red")
        sys.exit(1)

    candidate = RecipeConfig()
    errors = []
    for section_name in CONFIG_SECTIONS:
        if section_name in config_data:
            errors += apply_config_section(
                getattr(candidate, section_name), config_data[section_name], section_name
            )

    errors += validate_config_values(candidate)
    if errors:
        console.print(f"❌ Configuration file {config_file} is invalid:", style="red")
        for error in errors:
            console.print(f"  • {error}", style="red")
        sys.exit(1)

    console.print(f"✅ Configuration file {config_file} is valid", style="green")


@cli.command()
@click.argument(
    "shell", type=click.Choice(["bash", "zsh", "fish"], case_sensitive=False)
)
@click.option(
    "--install",
    is_flag=True,
    help="Install completion script to the user's completion directory",
)
def completion(shell: str, install: bool):
    """Generate shell completion scripts.

    Examples:

      cargo-recipe completion bash

      cargo-recipe completion zsh --install

      cargo-recipe completion bash > ~/.cargo-recipe-completion.bash
    """
    script_content = get_completion_scripts()[shell.lower()]

    if not install:
        click.echo(script_content)
        return

    install_paths = {
        "bash": "~/.local/share/bash-completion/completions/cargo-recipe",
        "zsh": "~/.local/share/zsh/site-functions/_cargo-recipe",
        "fish": "~/.config/fish/completions/cargo-recipe.fish",
    }
    install_path = Path(install_paths[shell.lower()]).expanduser()
    try:
        install_path.parent.mkdir(parents=True, exist_ok=True)
        with open(install_path, "w", encoding="utf-8") as f:
            f.write(script_content)
    except OSError as e:
        console.print(f"❌ Could not install completion: {e}", style="red")
        sys.exit(1)

    console.print(f"✅ Installed {shell} completion to {install_path}", style="green")


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
