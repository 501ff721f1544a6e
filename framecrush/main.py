import typer
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from framecrush.config.loader import load_config
from framecrush.config.models import AppConfig
from framecrush.config.parameters import PARAMETER_SPECS, PRESET_KEY, compile_parameters, describe_parameters
from framecrush.infrastructure.logging import setup_logging
from framecrush.infrastructure.ffmpeg import FFmpegAdapter
from framecrush.pipeline.service import CrushService

app = typer.Typer(help="framecrush - lo-fi video degradation service")
console = Console()

def _load(config_path: Optional[Path]) -> AppConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValidationError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

def _parse_param_options(values: List[str]) -> Dict[str, str]:
    raw: Dict[str, str] = {}
    for item in values:
        if "=" not in item:
            typer.secho(f"Error: expected KEY=VALUE, got '{item}'", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        key, value = item.split("=", 1)
        raw.setdefault(key.strip(), value.strip())
    return raw

def _render_parameter_table(raw: Dict[str, str], config: AppConfig) -> Table:
    params = compile_parameters(raw, config.presets)
    values = describe_parameters(params)
    table = Table(title=f"Effect parameters (preset: {raw.get(PRESET_KEY, 'none')})")
    table.add_column("field")
    table.add_column("value", justify="right")
    table.add_column("range", justify="right")
    table.add_column("aliases")
    for spec in PARAMETER_SPECS:
        table.add_row(
            spec.name,
            values[spec.name],
            f"{spec.minimum:g} .. {spec.maximum:g}",
            ", ".join(spec.aliases),
        )
    return table

@app.command()
def serve(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config (default conf/framecrush.yaml)"),
    host: Optional[str] = typer.Option(None, "--host", help="Override bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Override port"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Run the HTTP API."""
    import uvicorn
    from framecrush.api.app import create_app

    config = _load(config_path)
    if host: config.server.host = host
    if port: config.server.port = port
    if debug: config.server.debug = True

    setup_logging(debug=config.server.debug, log_path=log_path or config.log_path)
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_config=None,  # keep our logging setup
    )

@app.command()
def crush(
    input_path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Source video"),
    output_path: Path = typer.Argument(..., dir_okay=False, help="Destination .mp4"),
    param: List[str] = typer.Option([], "--param", "-P", help="Effect parameter KEY=VALUE (aliases accepted, repeatable)"),
    preset: Optional[str] = typer.Option(None, "--preset", help="Named preset used as the base look"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Crush a local file without going through HTTP."""
    config = _load(config_path)
    setup_logging(debug=debug, log_path=config.log_path)

    raw = _parse_param_options(param)
    if preset: raw[PRESET_KEY] = preset

    service = CrushService(config, FFmpegAdapter(config.encoder))
    output_path.parent.mkdir(parents=True, exist_ok=True)
    job = service.create_job(input_path, raw, output_path=output_path.resolve())
    console.print(_render_parameter_table(raw, config))

    try:
        service.process(job)
    except KeyboardInterrupt:
        typer.secho("\nStopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    if job.diagnostic is not None:
        typer.secho(f"Failed: {job.diagnostic.message}", fg=typer.colors.RED, err=True)
        if job.diagnostic.detail:
            typer.echo(job.diagnostic.detail, err=True)
        raise typer.Exit(code=1)

    typer.secho(f"✓ {output_path} ({job.duration_seconds:.1f}s)", fg=typer.colors.GREEN)

@app.command()
def params(
    param: List[str] = typer.Option([], "--param", "-P", help="Effect parameter KEY=VALUE (repeatable)"),
    preset: Optional[str] = typer.Option(None, "--preset", help="Named preset used as the base look"),
    show_command: bool = typer.Option(False, "--show-command", help="Also print the ffmpeg argument list"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Show how request parameters compile, without running ffmpeg."""
    config = _load(config_path)
    raw = _parse_param_options(param)
    if preset: raw[PRESET_KEY] = preset

    console.print(_render_parameter_table(raw, config))
    if show_command:
        adapter = FFmpegAdapter(config.encoder)
        args = adapter.build_command(compile_parameters(raw, config.presets), "INPUT", "OUTPUT.mp4")
        console.print(" ".join(args), soft_wrap=True, markup=False)

if __name__ == "__main__":
    app()
