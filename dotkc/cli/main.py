"""dotkc CLI - synced encrypted secrets vault with a dotenv-style runner."""

import functools
import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Iterable, List, Optional

import typer
from dotenv import dotenv_values
from rich.markup import escape
from rich.table import Table

from ..config.settings import Settings, get_settings
from ..utils.logging import console, err_console, setup_logging
from ..vault import (
    KeyStore,
    SecretRepository,
    Severity,
    VaultError,
    VaultStore,
    run_doctor,
    vault_status,
)
from ..vault.specs import parse_category_ref

app = typer.Typer(
    name="dotkc",
    help="Encrypted secrets vault synced across machines, with a dotenv-style runner.",
    no_args_is_help=True,
)

key_app = typer.Typer(help="Manage this machine's vault key.", no_args_is_help=True)
app.add_typer(key_app, name="key")

# Exit status for usage errors (bad spec, missing dotenv file, TTY refusal)
USAGE_EXIT = 2


def _vault_option():
    return typer.Option(None, "--vault", help="Vault file (default: $DOTKC_VAULT or synced folder)")


def _key_option():
    return typer.Option(None, "--key", help="Key file (default: $DOTKC_KEY or ~/.dotkc/key)")


def _fail(message: str, code: int = 1) -> None:
    err_console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)
    raise typer.Exit(code)


def _handle_errors(func):
    """Turn vault errors into a message on stderr and their exit status."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except VaultError as e:
            _fail(str(e), e.exit_code)
        except ValueError as e:
            _fail(str(e), USAGE_EXIT)

    return wrapper


def _settings(vault: Optional[Path], key_path: Optional[Path]) -> Settings:
    return get_settings().with_paths(vault_path=vault, key_path=key_path)


def _store(settings: Settings) -> VaultStore:
    return VaultStore(settings.vault_path, backup_keep=settings.backup_keep)


def _repository(settings: Settings) -> SecretRepository:
    key = KeyStore(settings.key_path).load()
    return SecretRepository(_store(settings), key)


def _read_stdin(what: str) -> str:
    if sys.stdin.isatty():
        _fail(f"Refusing to read {what} from a TTY. Pipe it into stdin.", USAGE_EXIT)
    return sys.stdin.read()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """dotkc - service → category → KEY secrets in one encrypted, synced file."""
    try:
        settings = get_settings()
    except ValueError as e:
        _fail(str(e), USAGE_EXIT)
    setup_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


@app.command()
@_handle_errors
def init(
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """
    Initialize the local key and the vault.

    Creates the key file if it is missing and an empty vault if there is none.
    An existing vault is only checked, never overwritten.
    """
    settings = _settings(vault, key_path)

    key, created = KeyStore(settings.key_path).ensure()
    if created:
        console.print(f"[green]Created key:[/green] {escape(str(settings.key_path))}")
    else:
        console.print(f"Using key: {escape(str(settings.key_path))}")

    store = _store(settings)
    if store.exists:
        store.load(key)
        console.print(f"Vault exists and decrypts: {escape(str(settings.vault_path))}")
    else:
        store.save(key, {}, None)
        console.print(f"[green]Created vault:[/green] {escape(str(settings.vault_path))}")

    if created:
        console.print(
            "\nOn other machines install the same key with:\n"
            f"  cat {escape(str(settings.key_path))} | dotkc key install"
        )


@app.command()
@_handle_errors
def status(
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Print key and vault status as JSON."""
    settings = _settings(vault, key_path)
    typer.echo(json.dumps(vault_status(settings), indent=2))


@app.command()
@_handle_errors
def doctor(
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
    as_json: bool = typer.Option(False, "--json", help="Print checks as JSON"),
):
    """Run diagnostics and suggest fixes."""
    report = run_doctor(_settings(vault, key_path))

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        styles = {Severity.OK: "green", Severity.WARNING: "yellow", Severity.ERROR: "red"}
        table = Table(title="dotkc doctor")
        table.add_column("Check", style="cyan")
        table.add_column("Status")
        table.add_column("Details")

        for check in report.checks:
            details = check.message
            if check.hint:
                details += f"\n→ {check.hint}"
            style = styles[check.severity]
            table.add_row(check.id, f"[{style}]{check.severity.value}[/{style}]", escape(details))

        console.print(table)

    if not report.ok:
        raise typer.Exit(1)


@key_app.command("install")
@_handle_errors
def key_install(
    key_path: Optional[Path] = _key_option(),
    force: bool = typer.Option(False, "--force", help="Replace an existing key"),
):
    """
    Install a key read from stdin.

    Example: cat ~/.dotkc/key | dotkc key install
    """
    settings = _settings(None, key_path)
    material = _read_stdin("the key")
    KeyStore(settings.key_path).install(material, force=force)
    console.print(f"OK (key installed at {escape(str(settings.key_path))})")


@app.command("set")
@_handle_errors
def set_secret(
    service: str = typer.Argument(..., help="Service (e.g. vercel)"),
    category: str = typer.Argument(..., help="Category (project/env)"),
    key: str = typer.Argument(..., help="Environment variable name"),
    value: Optional[str] = typer.Argument(
        None, help="Value; '-' reads stdin, omit for a hidden prompt"
    ),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Set a secret."""
    repo = _repository(_settings(vault, key_path))

    if value == "-":
        value = _read_stdin("the value")
    elif value is None:
        value = typer.prompt(f"{key}", hide_input=True)

    repo.set(service, category, key, value)
    console.print("OK")


@app.command("get")
@_handle_errors
def get_secret(
    service: str = typer.Argument(...),
    category: str = typer.Argument(...),
    key: str = typer.Argument(...),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Print a secret value to stdout (no trailing newline)."""
    value = _repository(_settings(vault, key_path)).get(service, category, key)
    typer.echo(value, nl=False)


@app.command("del")
@_handle_errors
def delete_secret(
    service: str = typer.Argument(...),
    category: str = typer.Argument(...),
    key: str = typer.Argument(...),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Delete a secret."""
    _repository(_settings(vault, key_path)).delete(service, category, key)
    console.print("OK")


@app.command("list")
@_handle_errors
def list_names(
    service: str = typer.Argument(...),
    category: Optional[str] = typer.Argument(None),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """List categories of a service, or keys of a category (never values)."""
    for name in _repository(_settings(vault, key_path)).list(service, category):
        typer.echo(name)


@app.command()
@_handle_errors
def search(
    query: str = typer.Argument(..., help="Substring (case-insensitive)"),
    as_json: bool = typer.Option(False, "--json", help="Print matches as JSON"),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Search service/category/key names (values are never searched)."""
    matches = _repository(_settings(vault, key_path)).search(query)
    if as_json:
        typer.echo(json.dumps(
            [{"service": m.service, "category": m.category, "key": m.key} for m in matches],
            indent=2,
        ))
        return
    for match in matches:
        typer.echo(str(match))


@app.command()
@_handle_errors
def export(
    specs: List[str] = typer.Argument(..., help="<service>:<category>[:<KEY>], comma separated"),
    unsafe_values: bool = typer.Option(
        False, "--unsafe-values", help="Print real values instead of redacted ones"
    ),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Print dotenv lines for the specs (values redacted by default)."""
    for line in _repository(_settings(vault, key_path)).export(specs, unsafe=unsafe_values):
        typer.echo(line)


def _transfer(src: str, dst: str, force: bool, move: bool, settings: Settings) -> None:
    repo = _repository(settings)
    if move:
        count = repo.move(parse_category_ref(src), parse_category_ref(dst), force=force)
    else:
        count = repo.copy(parse_category_ref(src), parse_category_ref(dst), force=force)
    console.print(f"OK ({count} secrets {'moved' if move else 'copied'})")


@app.command()
@_handle_errors
def copy(
    src: str = typer.Argument(..., help="<service>:<category>"),
    dst: str = typer.Argument(..., help="<service>:<category>"),
    force: bool = typer.Option(False, "--force", help="Overwrite a non-empty destination"),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Copy all keys of a category."""
    _transfer(src, dst, force, move=False, settings=_settings(vault, key_path))


@app.command()
@_handle_errors
def move(
    src: str = typer.Argument(..., help="<service>:<category>"),
    dst: str = typer.Argument(..., help="<service>:<category>"),
    force: bool = typer.Option(False, "--force", help="Overwrite a non-empty destination"),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Move all keys of a category."""
    _transfer(src, dst, force, move=True, settings=_settings(vault, key_path))


def pick_keys(keys: Iterable[str]) -> list[str]:
    """Ask about each key on the terminal; returns the accepted ones."""
    return [k for k in keys if typer.confirm(f"Import {k}?", default=True)]


@app.command("import")
@_handle_errors
def import_dotenv(
    service: str = typer.Argument(...),
    category: str = typer.Argument(...),
    dotenv_file: Path = typer.Argument(Path(".env"), help="Dotenv file (default: ./.env)"),
    import_all: bool = typer.Option(False, "--all", help="Import every entry without asking"),
    select: Optional[List[str]] = typer.Option(
        None, "--select", "-s", help="Import only this key (repeatable)"
    ),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """Import KEY=VALUE entries from a dotenv file."""
    if not dotenv_file.exists():
        _fail(f"Dotenv file not found: {dotenv_file}", USAGE_EXIT)

    parsed = {k: v for k, v in dotenv_values(dotenv_file).items() if v is not None}
    keys = sorted(parsed)
    if not keys:
        _fail(f"No entries found in {dotenv_file}", USAGE_EXIT)

    repo = _repository(_settings(vault, key_path))

    if select:
        unknown = [k for k in select if k not in parsed]
        if unknown:
            _fail(f"Not in {dotenv_file}: {', '.join(unknown)}", USAGE_EXIT)
        picked = list(dict.fromkeys(select))
    elif import_all:
        picked = keys
    elif sys.stdin.isatty():
        console.print(f"[bold]dotkc import → {escape(service)}:{escape(category)}[/bold]")
        picked = pick_keys(keys)
    else:
        _fail("Interactive import requires a TTY; use --all or --select.", USAGE_EXIT)

    if not picked:
        _fail("Nothing selected.")

    written = repo.set_many(service, category, {k: parsed[k] for k in picked})
    console.print(f"OK ({written} secrets imported)")


def _load_dotenv_into(env: dict, path: Path, override: bool) -> None:
    if not path.exists():
        return
    for name, value in dotenv_values(path).items():
        if value is None:
            continue
        if override or name not in env:
            env[name] = value


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
@_handle_errors
def run(
    ctx: typer.Context,
    spec: str = typer.Argument(..., help="<spec>[,<spec>...]"),
    dotenv: bool = typer.Option(False, "--dotenv", help="Load ./.env then ./.env.local"),
    dotenv_file: Optional[List[Path]] = typer.Option(
        None, "--dotenv-file", help="Load a specific dotenv file (repeatable)"
    ),
    dotenv_override: bool = typer.Option(
        False, "--dotenv-override", help="Let dotenv values override the process environment"
    ),
    vault: Optional[Path] = _vault_option(),
    key_path: Optional[Path] = _key_option(),
):
    """
    Run a command with secrets injected into its environment.

    Without a command (dotkc run acme:prod), prints the redacted result.
    Environment order: process env, then dotenv files, then vault secrets.
    """
    repo = _repository(_settings(vault, key_path))
    command = list(ctx.args)

    if not command:
        for line in repo.export(spec):
            typer.echo(line)
        return

    secrets = repo.resolve(spec)

    env = dict(os.environ)
    if dotenv or dotenv_file:
        cwd = Path.cwd()
        for path in [cwd / ".env", cwd / ".env.local", *(dotenv_file or [])]:
            _load_dotenv_into(env, path, dotenv_override)
    env.update(secrets)

    try:
        proc = subprocess.run(command, env=env)
    except FileNotFoundError:
        _fail(f"Command not found: {command[0]}", 127)
    except PermissionError:
        _fail(f"Command not executable: {command[0]}", 126)

    code = proc.returncode
    # Killed by a signal: shell convention 128 + signal number
    raise typer.Exit(128 - code if code < 0 else code)


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"dotkc v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
