"""
ecolog CLI - .env inspection with masked values

Main entry point for the ecolog command-line tool.
"""

import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import EcologConfig, find_config
from .core.discovery import (
    find_env_files,
    generate_example_file,
    load_environment,
    load_shell_variables,
)
from .core.engine import MaskingEngine
from .core.errors import EcologError
from .core.inference import TypeRegistry
from .core.masking import MaskPolicy, coerce_partial_mode, mask_value
from .core.overlay import LineBuffer
from .core.presets import PresetStore
from .core.providers import default_registry, find_references
from .utils.logging import setup_logging


console = Console()

EXTENSION_FILETYPES = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".sh": "sh",
    ".bash": "bash",
    ".zsh": "zsh",
    ".lua": "lua",
    ".go": "go",
    ".rs": "rust",
    ".php": "php",
    ".rb": "ruby",
}


class EcologGroup(click.Group):
    """Command group that reports EcologError as a message and exit status 1."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except EcologError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(1)


def _type_registry(config: EcologConfig) -> TypeRegistry:
    registry = TypeRegistry(config.types)
    registry.register_from_config(config.custom_types)
    return registry


def _active_env_file(config: EcologConfig, env_file=None):
    if env_file:
        return Path(env_file)
    files = find_env_files(config.path, config.preferred_environment)
    return files[0] if files else None


def _load_variables(config: EcologConfig, env_file=None):
    registry = _type_registry(config)
    shell = {}
    if config.load_shell.enabled:
        shell = load_shell_variables(registry=registry)
    active = _active_env_file(config, env_file)
    variables = load_environment(active, shell, config.load_shell.override, registry)
    return variables, active


@click.group(cls=EcologGroup)
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Path to a YAML config file')
@click.option('--log-level', default=None, help='Log level (DEBUG, INFO, WARNING, ERROR)')
@click.pass_context
def cli(ctx, config_path, log_level):
    """
    ecolog - .env parsing with masked values
    """
    if config_path is None:
        config_path = find_config()

    if config_path:
        try:
            config = EcologConfig.load(config_path)
        except FileNotFoundError:
            console.print(f"[red]Error: config file not found: {config_path}[/red]")
            sys.exit(1)
    else:
        config = EcologConfig().apply_env_overrides()

    if log_level:
        config.log_level = log_level
    setup_logging(config.log_level)

    ctx.obj = config


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--reveal', 'reveal', multiple=True, type=int, help='Show this line (1-based) unmasked')
@click.option('--mask-char', default=None, help='Mask character')
@click.option('--partial/--no-partial', default=None, help='Reveal start and end of values')
@click.option('--mask-length', type=int, default=None, help='Fixed mask length')
@click.option('--include-comments', is_flag=True, help='Also mask assignments in comments')
@click.option('--stats', is_flag=True, help='Print cache statistics')
@click.pass_obj
def show(config, file, reveal, mask_char, partial, mask_length, include_comments, stats):
    """
    Print an env file with its values masked.
    """
    shelter = config.shelter
    policy = MaskPolicy(
        mask_char=mask_char if mask_char is not None else shelter.mask_char,
        partial_mode=coerce_partial_mode(partial if partial is not None else shelter.partial_mode),
        fixed_mask_length=mask_length if mask_length is not None else shelter.mask_length,
    )
    skip_comments = shelter.skip_comments and not include_comments

    lines = Path(file).read_text(encoding='utf-8').splitlines()
    revealed = set(reveal)
    buffer = LineBuffer(lines)

    with MaskingEngine(config.performance, policy, style_tag=shelter.style_tag) as engine:
        engine.process_buffer(
            buffer,
            lines,
            source_filename=str(file),
            skip_comments=skip_comments,
            is_line_revealed=(lambda n: n in revealed) if revealed else None,
        )

        for line in buffer.render():
            console.print(line, markup=False, highlight=False, soft_wrap=True)

        if stats:
            _print_cache_stats(engine.get_cache_stats())


def _print_cache_stats(stats):
    table = Table(title="Cache Statistics", box=box.ROUNDED)
    table.add_column("Cache", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Hits", justify="right")
    table.add_column("Misses", justify="right")
    table.add_column("Hit Ratio", justify="right")

    for name, info in stats.items():
        if info.get('not_initialized'):
            table.add_row(name, "-", "-", "-", "-")
            continue
        table.add_row(
            name,
            str(info['size']),
            str(info['stats']['hits']),
            str(info['stats']['misses']),
            f"{info['hit_ratio']:.2f}",
        )

    console.print(table)


@cli.command(name="list")
@click.option('--path', default=None, help='Directory to search for env files')
@click.option('--env-file', default=None, type=click.Path(exists=True, dir_okay=False), help='Env file to load')
@click.option('--show-values', is_flag=True, help='Show values unmasked')
@click.pass_obj
def list_variables(config, path, env_file, show_values):
    """
    List environment variables with their types and sources.
    """
    if path:
        config.path = path

    variables, active = _load_variables(config, env_file)
    if not variables:
        console.print("[yellow]No environment variables found[/yellow]")
        return

    if active is not None:
        console.print(f"[cyan]Env file:[/cyan] {active}")

    policy = config.shelter.policy()
    table = Table(title="Environment Variables", box=box.ROUNDED)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Value")
    table.add_column("Source", style="dim")

    for name in sorted(variables):
        variable = variables[name]
        value = variable.raw_value if show_values else mask_value(variable.raw_value, policy)
        source = "shell" if variable.source == "shell" else Path(variable.source).name
        table.add_row(name, variable.type, escape(value), source)

    console.print(table)


@cli.command(name="check-type")
@click.argument('name')
@click.option('--env-file', default=None, type=click.Path(exists=True, dir_okay=False), help='Env file to load')
@click.pass_obj
def check_type(config, name, env_file):
    """
    Show the detected type of a variable.
    """
    variables, _ = _load_variables(config, env_file)
    variable = variables.get(name)
    if variable is None:
        console.print(f"[yellow]Environment variable '{name}' does not exist[/yellow]")
        sys.exit(1)

    source = "shell" if variable.source == "shell" else Path(variable.source).name
    console.print(f"Environment variable '{name}' exists with type: [green]{variable.type}[/green] (from {source})")


@cli.command()
@click.argument('source', type=click.Path(exists=True, dir_okay=False))
@click.option('--filetype', default=None, help='Source language, inferred from the extension by default')
@click.pass_obj
def refs(config, source, filetype):
    """
    List environment variable references in a source file.
    """
    filetype = filetype or EXTENSION_FILETYPES.get(Path(source).suffix.lower())
    if not filetype:
        console.print(f"[red]Error: cannot infer filetype of {source}, use --filetype[/red]")
        sys.exit(1)

    registry = default_registry()
    references = find_references(Path(source).read_text(encoding='utf-8'), filetype, registry)
    if not references:
        console.print("[dim]No environment variable references found[/dim]")
        return

    variables, _ = _load_variables(config)

    table = Table(title=f"References in {Path(source).name}", box=box.ROUNDED)
    table.add_column("Line", justify="right")
    table.add_column("Column", justify="right")
    table.add_column("Variable", style="cyan")
    table.add_column("Defined")

    for ref in references:
        defined = "[green]yes[/green]" if ref.name in variables else "[red]no[/red]"
        table.add_row(str(ref.line), str(ref.column + 1), ref.name, defined)

    console.print(table)


@cli.command(name="generate-example")
@click.option('--env-file', default=None, type=click.Path(exists=True, dir_okay=False), help='Source env file')
@click.option('--output', default=None, type=click.Path(dir_okay=False), help='Output path')
@click.pass_obj
def generate_example(config, env_file, output):
    """
    Write a .env.example with placeholder values.
    """
    active = _active_env_file(config, env_file)
    if active is None:
        console.print("[yellow]No .env files found[/yellow]")
        sys.exit(1)

    written = generate_example_file(active, output)
    console.print(f"[green]✓ Wrote {written}[/green]")


@cli.group(cls=EcologGroup)
def preset():
    """
    Manage environment presets.
    """


def _store(config: EcologConfig) -> PresetStore:
    return PresetStore(config.presets_file, _type_registry(config))


@preset.command(name="create")
@click.argument('name')
@click.option('--from-file', 'from_file', default=None, type=click.Path(exists=True, dir_okay=False), help='Env file to read')
@click.pass_obj
def preset_create(config, name, from_file):
    """
    Create a preset from an env file.
    """
    active = _active_env_file(config, from_file)
    if active is None:
        console.print("[red]Error: no env file to create the preset from[/red]")
        sys.exit(1)

    if not _store(config).create_preset_from_file(name, str(active)):
        console.print(f"[red]Error: could not create preset '{name}'[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Created preset '{name}' from {active.name}[/green]")


@preset.command(name="validate")
@click.argument('name')
@click.option('--env-file', default=None, type=click.Path(exists=True, dir_okay=False), help='Env file to validate')
@click.pass_obj
def preset_validate(config, name, env_file):
    """
    Validate an env file against a preset.
    """
    active = _active_env_file(config, env_file)
    if active is None:
        console.print("[red]Error: no env file to validate[/red]")
        sys.exit(1)

    errors = _store(config).validate_env_file(str(active), name)
    if "error" in errors and len(errors) == 1:
        console.print(f"[red]Error: {escape(errors['error'])}[/red]")
        sys.exit(1)

    if not errors:
        console.print(f"[green]✓ {active.name} matches preset '{name}'[/green]")
        return

    table = Table(title=f"Validation against '{name}'", box=box.ROUNDED)
    table.add_column("Variable", style="cyan")
    table.add_column("Problem", style="yellow")
    for key in sorted(errors):
        table.add_row(key, errors[key])
    console.print(table)
    sys.exit(1)


@preset.command(name="list")
@click.pass_obj
def preset_list(config):
    """
    List stored presets.
    """
    presets = _store(config).list_presets()
    if not presets:
        console.print("[yellow]No presets found[/yellow]")
        return

    table = Table(title="Presets", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Variables", justify="right")
    table.add_column("Required", justify="right")
    for name in sorted(presets):
        variables = presets[name].variables
        required = sum(1 for v in variables.values() if v.required)
        table.add_row(name, str(len(variables)), str(required))
    console.print(table)


@preset.command(name="delete")
@click.argument('name')
@click.pass_obj
def preset_delete(config, name):
    """
    Delete a preset.
    """
    if not _store(config).delete_preset(name):
        console.print(f"[yellow]Preset '{name}' not found[/yellow]")
        sys.exit(1)
    console.print(f"[green]✓ Deleted preset '{name}'[/green]")


@preset.command(name="set")
@click.argument('name')
@click.argument('variable')
@click.option('--type', 'type_name', default=None, help='Expected type')
@click.option('--required/--optional', default=None, help='Whether the variable must be present')
@click.option('--description', default=None, help='Description')
@click.pass_obj
def preset_set(config, name, variable, type_name, required, description):
    """
    Update one variable of a preset.
    """
    properties = {}
    if type_name is not None:
        properties['type'] = type_name
    if required is not None:
        properties['required'] = required
    if description is not None:
        properties['description'] = description

    if not properties:
        console.print("[yellow]Nothing to update[/yellow]")
        return

    if not _store(config).update_preset_variable(name, variable, **properties):
        console.print(f"[red]Error: preset '{name}' has no variable '{variable}'[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Updated {variable} in preset '{name}'[/green]")


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
