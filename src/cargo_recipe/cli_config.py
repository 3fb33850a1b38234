"""
Configuration management for cargo-recipe.

Settings are layered: dataclass defaults, then the first config file found
(JSON or YAML), then ``CARGO_RECIPE_*`` environment variables.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

console = Console(stderr=True)

SUPPORTED_DIGESTS = ("md5", "sha256")


@dataclass
class GenerateConfig:
    """Recipe generation settings."""

    registry_host: str = "crates.io"
    uri_scheme: str = "crate"
    inherit: str = "cargo"
    legacy_overrides: bool = False
    reproducible: bool = False
    include_project_source: bool = True
    output_dir: str = "."


@dataclass
class IndexConfig:
    """Registry index provenance values passed through into the recipe."""

    reference: str = "crate-index://crates.io/CARGO_INDEX_COMMIT"
    md5sum: str = "generateme"
    sha256sum: str = "generateme"


@dataclass
class LicenseConfig:
    """License lookup and checksum settings."""

    digests: List[str] = field(default_factory=lambda: ["md5"])
    bare_names: List[str] = field(default_factory=lambda: ["LICENSE"])
    placeholder: str = "generateme"
    closed_license: str = "CLOSED"


@dataclass
class SecurityConfig:
    """Input validation limits."""

    max_file_size_mb: int = 10
    allowed_manifest_names: List[str] = field(
        default_factory=lambda: ["Cargo.toml", "Cargo.lock"]
    )

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "WARNING"
    enable_json: bool = True


@dataclass
class RecipeConfig:
    """Main configuration containing all subsections."""

    recipe: GenerateConfig = field(default_factory=GenerateConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    license: LicenseConfig = field(default_factory=LicenseConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_global_config: Optional[RecipeConfig] = None


def validate_config_values(config: RecipeConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if not config.recipe.registry_host.strip():
        errors.append("recipe.registry_host must not be empty")
    if not config.recipe.uri_scheme.strip():
        errors.append("recipe.uri_scheme must not be empty")
    if "/" in config.recipe.registry_host:
        errors.append("recipe.registry_host must be a bare host name")

    if not config.license.digests:
        errors.append("license.digests must name at least one algorithm")
    for digest in config.license.digests:
        if digest not in SUPPORTED_DIGESTS:
            errors.append(
                f"license.digests: unsupported algorithm '{digest}' "
                f"(supported: {', '.join(SUPPORTED_DIGESTS)})"
            )
    if "md5" not in config.license.digests:
        errors.append("license.digests must include md5")
    if not config.license.bare_names:
        errors.append("license.bare_names must not be empty")

    if config.security.max_file_size_mb <= 0:
        errors.append("security.max_file_size_mb must be positive")

    if config.logging.log_level.upper() not in (
        "DEBUG",
        "INFO",
        "WARNING",
        "ERROR",
        "CRITICAL",
    ):
        errors.append(f"logging.log_level is not a valid level: {config.logging.log_level}")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from a JSON or YAML file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in (".yaml", ".yml"):
                return yaml.safe_load(f)
            if config_path.suffix.lower() == ".json":
                return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"⚠️  Error loading config from {config_path}: {e}", style="yellow")

    return None


def find_config_file(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Find config file in standard locations."""
    base = start_dir or Path.cwd()
    locations = [
        base / ".cargo-recipe.json",
        base / ".cargo-recipe.yaml",
        base / ".cargo-recipe.yml",
        Path.home() / ".config" / "cargo-recipe" / "config.json",
        Path.home() / ".config" / "cargo-recipe" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: RecipeConfig) -> None:
    """Apply ``CARGO_RECIPE_*`` environment variable overrides."""

    def get_env_bool(key: str, default: bool) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ("true", "1", "yes", "on") if value else default

    def get_env_int(key: str) -> Optional[int]:
        if key not in os.environ:
            return None
        try:
            return int(os.environ[key])
        except ValueError:
            console.print(f"⚠️  Invalid integer value for {key}, using default", style="yellow")
            return None

    if registry_host := os.environ.get("CARGO_RECIPE_REGISTRY_HOST"):
        config.recipe.registry_host = registry_host
    if output_dir := os.environ.get("CARGO_RECIPE_OUTPUT_DIR"):
        config.recipe.output_dir = output_dir
    config.recipe.legacy_overrides = get_env_bool(
        "CARGO_RECIPE_LEGACY_OVERRIDES", config.recipe.legacy_overrides
    )
    config.recipe.reproducible = get_env_bool(
        "CARGO_RECIPE_REPRODUCIBLE", config.recipe.reproducible
    )
    config.recipe.include_project_source = get_env_bool(
        "CARGO_RECIPE_PROJECT_SOURCE", config.recipe.include_project_source
    )

    if reference := os.environ.get("CARGO_RECIPE_INDEX_REFERENCE"):
        config.index.reference = reference
    if md5sum := os.environ.get("CARGO_RECIPE_INDEX_MD5"):
        config.index.md5sum = md5sum
    if sha256sum := os.environ.get("CARGO_RECIPE_INDEX_SHA256"):
        config.index.sha256sum = sha256sum

    if digests := os.environ.get("CARGO_RECIPE_LICENSE_DIGESTS"):
        config.license.digests = [d.strip().lower() for d in digests.split(",") if d.strip()]

    if max_file_size := get_env_int("CARGO_RECIPE_MAX_FILE_SIZE_MB"):
        config.security.max_file_size_mb = max_file_size

    if log_level := os.environ.get("CARGO_RECIPE_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


def coerce_config_value(current: Any, value: Any, name: str) -> Any:
    """
    Convert a config file value to the type of the field it replaces.

    Raises:
        ValueError: If the value has no sensible conversion
    """
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in _TRUE_STRINGS + _FALSE_STRINGS:
            return value.lower() in _TRUE_STRINGS
        raise ValueError(f"{name} must be true or false, got {value!r}")
    if isinstance(current, int):
        if isinstance(value, bool):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{name} must be an integer, got {value!r}") from e
    if isinstance(current, list):
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
            return list(value)
        raise ValueError(f"{name} must be a list of strings, got {value!r}")
    if isinstance(current, str):
        if isinstance(value, (dict, list, tuple)) or value is None:
            raise ValueError(f"{name} must be a string, got {value!r}")
        return str(value)
    return value


def apply_config_section(config: Any, section_data: Any, section_name: str) -> List[str]:
    """
    Apply configuration from dictionary to config section.

    Values are converted to each field's type; a value that cannot be
    converted leaves the default in place.

    Returns:
        List[str]: Type errors for rejected values
    """
    if not isinstance(section_data, dict):
        return [f"{section_name} must be a mapping of settings"]

    errors = []
    for key, value in section_data.items():
        if not hasattr(config, key):
            console.print(f"⚠️  Unknown config key in {section_name}: {key}", style="yellow")
            continue
        try:
            setattr(
                config,
                key,
                coerce_config_value(getattr(config, key), value, f"{section_name}.{key}"),
            )
        except ValueError as e:
            errors.append(str(e))
    return errors


def load_config(config_path: Optional[Path] = None) -> RecipeConfig:
    """Load configuration from file and environment."""
    global _global_config

    config = RecipeConfig()
    type_errors: List[str] = []

    config_file = config_path or find_config_file()
    if config_file:
        file_config = load_config_file(Path(config_file))
        if file_config:
            for section_name in ("recipe", "index", "license", "security", "logging"):
                if section_name in file_config:
                    type_errors += apply_config_section(
                        getattr(config, section_name),
                        file_config[section_name],
                        section_name,
                    )

    load_environment_overrides(config)

    validation_errors = type_errors + validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        defaults = RecipeConfig()
        if any(e.startswith("license.") for e in validation_errors):
            config.license = defaults.license
        if any(e.startswith("recipe.") for e in validation_errors):
            config.recipe = defaults.recipe
        if any(e.startswith("security.") for e in validation_errors):
            config.security = defaults.security
        if any(e.startswith("logging.") for e in validation_errors):
            config.logging = defaults.logging

    _global_config = config
    return config


def get_config() -> RecipeConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample configuration file."""
    return json.dumps(RecipeConfig().to_dict(), indent=2)
