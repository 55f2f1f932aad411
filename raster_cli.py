#!/usr/bin/env python3
"""
CLI module for Raster Pie - Command-Line Interface

Runs a pipeline of raster operations (quantization, dithering, filtering,
resampling, strokes) described in a JSON config over a single image or a
folder of images. Uses Rich for terminal output.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Rich imports for terminal output
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

# Local imports
from config_manager import DEFAULT_CONFIG_FILE, ConfigManager
from raster_lib import OPERATIONS, TWO_BUFFER_OPERATIONS, PixelBuffer, Stroke, apply_operation
from utils import list_image_files, load_image, parse_color, save_image, validate_image_file


# Initialize Rich console
console = Console()

logger = logging.getLogger('raster_pie')


def setup_logging(verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None):
    """
    Setup logging with Rich handler for terminal output.

    Args:
        verbose: Enable verbose (DEBUG) logging
        quiet: Suppress all but ERROR messages
        log_file: Optional path to log file
    """
    # Determine logging level
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handlers = []

    # Rich handler for console output
    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True
    )
    handlers.append(rich_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        handlers.append(file_handler)

    # Setup root logger
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True
    )

    logger.setLevel(level)
    return logger


class CLIProgressCallback:
    """
    Rich progress bar driven by update(fraction, message) calls.
    """

    def __init__(self, description: str = "Processing..."):
        self.description = description
        self.progress = None
        self.task = None

    def __enter__(self):
        """Setup progress bar."""
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console
        )
        self.progress.__enter__()
        self.task = self.progress.add_task(self.description, total=100)
        return self

    def __exit__(self, *args):
        """Cleanup progress bar."""
        if self.progress:
            self.progress.__exit__(*args)

    def update(self, fraction: float, message: str):
        """
        Update progress bar.

        Args:
            fraction: Progress fraction (0.0 to 1.0)
            message: Status message
        """
        if self.progress and self.task is not None:
            self.progress.update(self.task, completed=fraction * 100, description=message)

    def finish(self):
        """Mark as complete."""
        if self.progress and self.task is not None:
            self.progress.update(self.task, completed=100, description="Complete!")


# ==================== Config Schema & Validation ====================

VALID_MODES = ["image", "folder"]

# keyword parameters each operation accepts from the config
OPERATION_PARAMETERS: Dict[str, Dict[str, Any]] = {
    "quantize_populosity": {"palette_size": int},
    "dither_random": {"seed": int},
    "filter_gaussian_n": {"n": int},
    "resize": {"scale": (int, float)},
    "rotate": {"angle_degrees": (int, float)},
    "paint_stroke": {"radius": int, "x": int, "y": int, "color": (str, list)},
}

REQUIRED_PARAMETERS = {
    "paint_stroke": ("radius", "x", "y"),
}


class ConfigValidationError(Exception):
    """Raised when config validation fails."""
    pass


def _validate_operation(index: int, step: Any) -> List[str]:
    errors = []
    where = f"operations[{index}]"

    if not isinstance(step, dict):
        return [f"'{where}' must be an object/dictionary"]

    name = step.get("op")
    if name not in OPERATIONS:
        return [f"Invalid operation in '{where}': '{name}'. Must be one of: {sorted(OPERATIONS)}"]

    allowed = dict(OPERATION_PARAMETERS.get(name, {}))
    if name in TWO_BUFFER_OPERATIONS:
        allowed["with"] = str
        if "with" not in step:
            errors.append(f"'{where}' ({name}) needs a 'with' image path")

    for key, value in step.items():
        if key == "op":
            continue
        if key not in allowed:
            errors.append(f"Unknown parameter '{key}' for '{name}' in '{where}'")
        elif isinstance(value, bool) or not isinstance(value, allowed[key]):
            errors.append(f"'{where}.{key}' has the wrong type")

    for key in REQUIRED_PARAMETERS.get(name, ()):
        if key not in step:
            errors.append(f"'{where}' ({name}) needs '{key}'")
        elif isinstance(step[key], int) and step[key] < 0:
            errors.append(f"'{where}.{key}' must not be negative")

    size = step.get("palette_size")
    if name == "quantize_populosity" and isinstance(size, int) and size < 1:
        errors.append(f"'{where}.palette_size' must be at least 1")

    if name == "paint_stroke" and "color" in step:
        try:
            parse_color(step["color"])
        except (ValueError, TypeError):
            errors.append(f"'{where}.color' is not a valid color: {step['color']!r}")

    return errors


def validate_config(config: Dict[str, Any], config_path: Path) -> Dict[str, Any]:
    """
    Validate configuration and return normalized config.

    Args:
        config: Raw config dictionary
        config_path: Path to config file (for resolving relative paths)

    Returns:
        Validated and normalized config

    Raises:
        ConfigValidationError: If validation fails
    """
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration must be a JSON object")

    errors = []

    # Required fields
    if "input" not in config:
        errors.append("Missing required field: 'input'")

    if "output" not in config:
        errors.append("Missing required field: 'output'")

    for key in ("input", "output"):
        if key in config and not isinstance(config[key], str):
            errors.append(f"'{key}' must be a path string")

    # Validate mode (optional, can be auto-detected)
    mode = config.get("mode")
    if mode and mode not in VALID_MODES:
        errors.append(f"Invalid mode: '{mode}'. Must be one of: {VALID_MODES}")

    operations = config.get("operations", [])
    if not isinstance(operations, list):
        errors.append("'operations' must be a list")
    else:
        for index, step in enumerate(operations):
            errors.extend(_validate_operation(index, step))

    seed = config.get("random_seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        errors.append("'random_seed' must be an integer or null")

    # If any errors, raise
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  • {e}" for e in errors)
        raise ConfigValidationError(error_msg)

    # Normalize paths (resolve relative to config file)
    config_dir = config_path.parent

    def resolve(path_str: str) -> str:
        path = Path(path_str)
        if not path.is_absolute():
            path = (config_dir / path).resolve()
        return str(path)

    config["input"] = resolve(config["input"])
    config["output"] = resolve(config["output"])
    for step in operations:
        if "with" in step:
            step["with"] = resolve(step["with"])

    # Check if input exists
    if not Path(config["input"]).exists():
        raise ConfigValidationError(f"Input file/directory not found: {config['input']}")

    # Set defaults for optional fields
    config.setdefault("mode", None)  # Will be auto-detected
    config["operations"] = operations
    config.setdefault("random_seed", None)
    config.setdefault("output_format", "tga")
    config.setdefault("overwrite", True)

    return config


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load and validate configuration from JSON file.

    Args:
        config_path: Path to JSON config file

    Returns:
        Validated config dictionary

    Raises:
        ConfigValidationError: If validation fails
    """
    return validate_config(read_config(config_path), config_path)


def read_config(config_path: Path) -> Dict[str, Any]:
    """Read a JSON config file without validating it."""
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"Invalid JSON in config file:\n  Line {e.lineno}: {e.msg}")
    except OSError as e:
        raise ConfigValidationError(f"Failed to load config file: {e}")


def detect_mode(input_path: Path) -> str:
    """
    Auto-detect processing mode based on input path.

    Args:
        input_path: Input file or directory path

    Returns:
        Mode string: "image" or "folder"
    """
    if input_path.is_dir():
        return "folder"
    if validate_image_file(input_path):
        return "image"
    raise ConfigValidationError(f"Cannot determine mode for file extension: {input_path.suffix.lower()}")


def apply_settings(config: Dict[str, Any], settings: ConfigManager) -> Dict[str, Any]:
    """Fill processing defaults the config leaves out from the user preferences."""
    for key in ("random_seed", "output_format", "overwrite"):
        if key not in config:
            config[key] = settings.get("defaults", key)
    return config


# ==================== Image Processing ====================

def run_operations(buffer: PixelBuffer, config: Dict[str, Any], verbose: bool = True) -> bool:
    """
    Apply the configured operations to 'buffer' in order. Stops at the first
    operation that reports failure.

    Args:
        buffer: Image to transform in place
        config: Validated configuration dictionary
        verbose: Log every step at INFO instead of DEBUG

    Returns:
        True if every operation succeeded
    """
    log = logger.info if verbose else logger.debug

    for step in config["operations"]:
        name = step["op"]
        params = {k: v for k, v in step.items() if k not in ("op", "with")}

        if name in TWO_BUFFER_OPERATIONS:
            other = load_image(step["with"])
            if other is None:
                logger.error(f"Could not load second image for {name}: {step['with']}")
                return False
            ok = apply_operation(buffer, name, other)
        elif name == "paint_stroke":
            color = parse_color(params.pop("color", [0, 0, 0, 255]))
            ok = apply_operation(buffer, name, stroke=Stroke(color=color, **params))
        else:
            if name == "dither_random" and "seed" not in params:
                params["seed"] = config.get("random_seed")
            ok = apply_operation(buffer, name, **params)

        if not ok:
            logger.error(f"[red]✗[/] {name} failed")
            return False
        log(f"[green]✓[/] {name} ({buffer.width}x{buffer.height})")

    return True


def _write_output(buffer: PixelBuffer, output_path: Path, overwrite: bool) -> bool:
    if output_path.exists() and not overwrite:
        logger.warning(f"Output exists, skipping: [cyan]{output_path}[/]")
        return False

    output_path.parent.mkdir(parents=True, exist_ok=True)
    return save_image(buffer, output_path)


def process_single_image(config: Dict[str, Any]) -> bool:
    """
    Load one image, run the operations and save the result.

    Args:
        config: Validated configuration dictionary

    Returns:
        True if successful, False otherwise
    """
    try:
        input_path = Path(config["input"])
        output_path = Path(config["output"])

        logger.info(f"Loading image: [cyan]{input_path.name}[/]")
        buffer = load_image(input_path)
        if buffer is None:
            return False
        logger.info(f"Image size: [cyan]{buffer.width}x{buffer.height}[/]")

        if not run_operations(buffer, config):
            return False

        logger.info(f"Saving to: [cyan]{output_path}[/]")
        if not _write_output(buffer, output_path, config.get("overwrite", True)):
            return False

        size_kb = output_path.stat().st_size / 1024
        logger.info(f"[bold green]✓ Image saved successfully![/] ({size_kb:.1f} KB)")
        return True

    except Exception as e:
        logger.error(f"Failed to process image: {e}", exc_info=True)
        return False


def process_folder(config: Dict[str, Any]) -> bool:
    """
    Run the operations over every image in the input folder, writing
    <stem>.<output_format> files to the output folder.

    Returns:
        True if every image was processed
    """
    input_dir = Path(config["input"])
    output_dir = Path(config["output"])
    output_format = config.get("output_format", "tga").lstrip('.')

    files = list_image_files(input_dir)
    if not files:
        logger.warning(f"No images found in [cyan]{input_dir}[/]")
        return False

    logger.info(f"Found {len(files)} images")
    failures = []

    with CLIProgressCallback("Processing images...") as progress:
        for index, path in enumerate(files):
            progress.update(index / len(files), f"{path.name}")
            try:
                buffer = load_image(path)
                ok = (buffer is not None
                      and run_operations(buffer, config, verbose=False)
                      and _write_output(buffer, output_dir / f"{path.stem}.{output_format}",
                                        config.get("overwrite", True)))
            except Exception as e:
                logger.error(f"Failed to process {path.name}: {e}", exc_info=True)
                ok = False
            if not ok:
                failures.append(path.name)
        progress.finish()

    if failures:
        logger.error(f"{len(failures)} of {len(files)} images failed: {', '.join(failures)}")
        return False

    logger.info(f"[bold green]✓ {len(files)} images written to[/] [cyan]{output_dir}[/]")
    return True


def show_banner():
    """Display application banner."""
    banner = """
[bold cyan]╔═══════════════════════════════════════╗[/]
[bold cyan]║[/]      [bold white]Raster Pie CLI[/] [dim]- v1.0[/]          [bold cyan]║[/]
[bold cyan]║[/]  Quantize, Dither, Filter, Resample   [bold cyan]║[/]
[bold cyan]╚═══════════════════════════════════════╝[/]
"""
    console.print(banner)


def show_operations():
    """List available operations and their parameters."""
    console.print("  [bold]Operations:[/]")
    for name in OPERATIONS:
        params = list(OPERATION_PARAMETERS.get(name, {}))
        if name in TWO_BUFFER_OPERATIONS:
            params.insert(0, "with")
        suffix = f" [dim]({', '.join(params)})[/]" if params else ""
        console.print(f"    • [cyan]{name}[/]{suffix}")


def show_help():
    """Display detailed help information."""
    help_text = """
[bold cyan]Raster Pie CLI - Usage[/]

[bold]Basic Usage:[/]
  raster-pie <config.json>          Process with JSON config
  raster-pie --help                 Show this help
  raster-pie --example-config       Generate example config
  raster-pie --list-operations      List operations

[bold]Options:[/]
  --verbose, -v     Enable verbose output
  --quiet, -q       Suppress all but error messages
  --log-file FILE   Write log to file
  --settings FILE   User preferences file (default ~/.raster_pie.json)

[bold]Config File Format:[/]
  JSON file with input, output and a list of operations applied in order.
  Use --example-config to generate a template.
"""
    console.print(help_text)
    show_operations()
    console.print()


def generate_example_config():
    """Generate and print an example configuration file."""
    example = {
        "_comment": "Raster Pie CLI Configuration",
        "input": "path/to/input.tga",
        "output": "path/to/output.tga",
        "mode": "image",
        "random_seed": 42,
        "operations": [
            {"op": "filter_gaussian"},
            {"op": "quantize_populosity"},
            {"op": "paint_stroke", "radius": 4, "x": 16, "y": 16, "color": "#ff8000"},
            {"op": "difference", "with": "path/to/reference.tga"},
            {"op": "dither_fs"}
        ]
    }

    example_json = json.dumps(example, indent=4)

    console.print("\n[bold cyan]Example Configuration:[/]\n")
    console.print(Panel(example_json, title="config.json", border_style="cyan"))
    console.print("\n[dim]Save this to a .json file and modify as needed.[/]\n")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Raster Pie CLI - Pixel Buffer Processing Tool",
        add_help=False  # We'll handle help ourselves
    )

    parser.add_argument('config', nargs='?', help='Path to JSON configuration file')
    parser.add_argument('--help', '-h', action='store_true', help='Show help')
    parser.add_argument('--example-config', action='store_true', help='Generate example config')
    parser.add_argument('--list-operations', action='store_true', help='List operations')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--quiet', '-q', action='store_true', help='Quiet mode (errors only)')
    parser.add_argument('--log-file', type=str, help='Log to file')
    parser.add_argument('--settings', type=str, default=DEFAULT_CONFIG_FILE,
                        help='User preferences file')

    args = parser.parse_args(argv)

    # Handle special commands first (before logging setup)
    if args.help:
        show_banner()
        show_help()
        sys.exit(0)

    if args.example_config:
        show_banner()
        generate_example_config()
        sys.exit(0)

    if args.list_operations:
        show_operations()
        sys.exit(0)

    setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)

    if not args.quiet:
        show_banner()

    if not args.config:
        console.print("[bold red]Error:[/] No configuration file specified.\n")
        console.print("Usage: raster-pie <config.json>")
        console.print("       raster-pie --help\n")
        sys.exit(1)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    logger.info(f"Loading configuration from: [cyan]{config_path}[/]")

    settings = ConfigManager(args.settings)

    try:
        raw = read_config(config_path)
        if isinstance(raw, dict):
            apply_settings(raw, settings)
        config = validate_config(raw, config_path)
    except ConfigValidationError as e:
        logger.error(f"[bold red]{e}[/]")
        sys.exit(1)

    logger.info("[green]✓[/] Configuration validated")

    # Auto-detect mode if not specified
    if not config["mode"]:
        try:
            config["mode"] = detect_mode(Path(config["input"]))
            logger.info(f"Auto-detected mode: [cyan]{config['mode']}[/]")
        except ConfigValidationError as e:
            logger.error(f"{e}")
            sys.exit(1)

    logger.info(f"Input:  [cyan]{config['input']}[/]")
    logger.info(f"Output: [cyan]{config['output']}[/]")
    logger.info(f"Mode:   [cyan]{config['mode']}[/]")
    steps = ", ".join(step["op"] for step in config["operations"]) or "none"
    logger.info(f"Operations: [yellow]{steps}[/]")
    logger.info("")

    if config["mode"] == "folder":
        success = process_folder(config)
    else:
        success = process_single_image(config)

    if success:
        settings.add_recent_file(config["input"])
        settings.update_last_path("input", config["input"])
        settings.update_last_path("output", config["output"])
        settings.save()
        logger.info("")
        logger.info("[bold green]✓ Processing complete![/]")
        sys.exit(0)
    else:
        logger.error("")
        logger.error("[bold red]✗ Processing failed![/]")
        sys.exit(1)


if __name__ == "__main__":
    main()
