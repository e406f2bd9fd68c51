"""CLI entry point for proxyperf."""

from __future__ import annotations

import logging
import os
import signal
import sys
from typing import Optional

import click
import httpx
from rich.logging import RichHandler

from proxyperf import __version__
from proxyperf.config import (
    DEFAULT_CONTROLLER,
    DEFAULT_EXCLUDED_MEMBERS,
    DEFAULT_MIXED_PROXY,
    DEFAULT_PROVIDER,
    DEFAULT_SELECTOR,
    DEFAULT_TIMEOUT,
    NEAREST_CANDIDATES,
)
from proxyperf.engine import CancellationToken
from proxyperf.errors import MeasurementError
from proxyperf.models import MeasurementMode, ProxyDescriptor, RunOptions

MODE_CHOICES = click.Choice([m.value for m in MeasurementMode], case_sensitive=False)


def _setup_logging(verbose: int, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    from proxyperf.display import console

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    logging.getLogger("httpcore").setLevel(max(level, logging.WARNING))


def _install_interrupt(token: CancellationToken) -> None:
    """Turn the first Ctrl-C into a cooperative cancel."""

    def handler(signum, frame):
        if token.cancelled:
            raise KeyboardInterrupt
        token.cancel()

    signal.signal(signal.SIGINT, handler)


def _warn_ignored_proxy_env() -> None:
    for var in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        if os.environ.get(var):
            from proxyperf.display import render_warning

            render_warning(f"{var} is set but ignored; pass --proxy to measure through a proxy")
            break


def _fail(message: str) -> None:
    from proxyperf.display import render_error

    render_error(message)
    sys.exit(1)


def _proxy_descriptor(proxy: str) -> ProxyDescriptor:
    """Check *proxy* is an http(s) URL with a host before anything is sent."""
    try:
        url = httpx.URL(proxy)
    except (httpx.InvalidURL, ValueError) as exc:
        _fail(f"Invalid proxy URL {proxy!r}: {exc}")
    if url.scheme not in ("http", "https") or not url.host:
        _fail(f"Invalid proxy URL {proxy!r}: expected http://host:port")
    return ProxyDescriptor(proxy)


def _describe(exc: MeasurementError) -> str:
    if exc.stage is not None:
        return f"{exc} (during {exc.stage.value})"
    return str(exc)


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """proxyperf: throughput and latency measurement through proxies.

    Picks the nearest responsive speedtest endpoint, then runs a time-boxed
    multithreaded download and upload benchmark, optionally through an
    outbound HTTP proxy or across every member of a Clash selector group.
    """


def _run_options(provider: str, nearest: int, timeout: float) -> RunOptions:
    return RunOptions(
        nearest=nearest,
        probe_timeout=timeout,
        provider=provider,
    )


def _build_runner(
    provider: str,
    config_url: Optional[str],
    catalog_url: Optional[str],
    nearest: int,
    timeout: float,
    token: CancellationToken,
    progress_callback=None,
):
    from proxyperf.providers import create_generic_provider, get_provider, list_providers
    from proxyperf.runner import MeasurementRunner

    if bool(config_url) != bool(catalog_url):
        _fail("--config-url and --catalog-url must be given together")
    if config_url:
        endpoint_provider = create_generic_provider(config_url, catalog_url)
    else:
        try:
            endpoint_provider = get_provider(provider)
        except ValueError:
            _fail(f"Unknown provider {provider!r}. Available: {', '.join(list_providers())}")

    try:
        options = _run_options(provider, nearest, timeout)
    except ValueError as exc:
        _fail(str(exc))

    return MeasurementRunner(
        provider=endpoint_provider,
        options=options,
        token=token,
        progress_callback=progress_callback,
    )


def _common_options(func):
    func = click.option("-q", "--quiet", is_flag=True, help="Suppress progress and log output")(func)
    func = click.option("-v", "--verbose", count=True, help="Log progress (-vv for debug)")(func)
    func = click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")(func)
    func = click.option(
        "-t", "--timeout", default=DEFAULT_TIMEOUT, show_default=True,
        help="Latency probe timeout in seconds",
    )(func)
    func = click.option(
        "-n", "--nearest", default=NEAREST_CANDIDATES, show_default=True,
        help="Number of nearest candidates to probe",
    )(func)
    func = click.option("--catalog-url", default=None, help="Custom server catalog URL")(func)
    func = click.option("--config-url", default=None, help="Custom client configuration URL")(func)
    func = click.option(
        "--provider", default=DEFAULT_PROVIDER, show_default=True,
        help="Endpoint provider slug",
    )(func)
    func = click.option(
        "-m", "--mode", type=MODE_CHOICES, default=MeasurementMode.FULL.value,
        show_default=True, help="Which benchmark directions to run",
    )(func)
    return func


@main.command()
@_common_options
@click.option("-x", "--proxy", default=None, help="Outbound HTTP proxy URL")
def run(
    mode: str,
    provider: str,
    config_url: Optional[str],
    catalog_url: Optional[str],
    nearest: int,
    timeout: float,
    json_output: bool,
    verbose: int,
    quiet: bool,
    proxy: Optional[str],
) -> None:
    """Measure latency and throughput against the best endpoint."""
    from proxyperf.display import ProgressTracker, console, render_record
    from proxyperf.export import export_json

    _setup_logging(verbose, quiet)
    token = CancellationToken()
    _install_interrupt(token)

    progress = None
    if not quiet and not json_output:
        progress = ProgressTracker()
        if proxy is None:
            _warn_ignored_proxy_env()

    runner = _build_runner(
        provider, config_url, catalog_url, nearest, timeout, token,
        progress_callback=progress.update if progress else None,
    )
    outbound = _proxy_descriptor(proxy) if proxy else None

    if progress:
        via = f" via {proxy}" if proxy else ""
        console.print(f"[bold]Measuring ({mode}){via}...[/bold]\n")
        progress.start()

    failure: Optional[MeasurementError] = None
    try:
        record = runner.run(mode, outbound)
    except MeasurementError as exc:
        failure = exc
    except KeyboardInterrupt:
        token.cancel()
    finally:
        if progress:
            progress.finish()

    if token.cancelled:
        if not json_output:
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    if failure is not None:
        _fail(_describe(failure))

    if json_output:
        click.echo(export_json(record))
    else:
        console.print()
        render_record(record)


@main.command()
@_common_options
@click.option(
    "-c", "--controller", default=DEFAULT_CONTROLLER, show_default=True,
    help="Clash external controller host:port",
)
@click.option("-s", "--secret", default=None, envvar="PROXYPERF_SECRET", help="Controller secret")
@click.option("--selector", default=DEFAULT_SELECTOR, show_default=True, help="Selector group to walk")
@click.option(
    "-x", "--proxy", default=DEFAULT_MIXED_PROXY, show_default=True,
    help="Local proxy port that routes through the selected member",
)
@click.option(
    "-e", "--exclude", multiple=True,
    help=f"Member to skip (repeatable) [default: {', '.join(DEFAULT_EXCLUDED_MEMBERS)}]",
)
def batch(
    mode: str,
    provider: str,
    config_url: Optional[str],
    catalog_url: Optional[str],
    nearest: int,
    timeout: float,
    json_output: bool,
    verbose: int,
    quiet: bool,
    controller: str,
    secret: Optional[str],
    selector: str,
    proxy: str,
    exclude: tuple[str, ...],
) -> None:
    """Measure through every member of a Clash selector group."""
    from proxyperf.control import ClashController
    from proxyperf.display import console, render_batch
    from proxyperf.export import export_batch_json
    from proxyperf.runner import measure_proxies

    _setup_logging(verbose, quiet)
    token = CancellationToken()
    _install_interrupt(token)

    outbound = _proxy_descriptor(proxy)
    runner = _build_runner(provider, config_url, catalog_url, nearest, timeout, token)
    clash = ClashController(controller, secret=secret)

    if not quiet and not json_output:
        console.print(f"[bold]Measuring members of {selector} via {proxy}...[/bold]")
    try:
        results = measure_proxies(
            clash,
            selector=selector,
            mode=mode,
            outbound_proxy=outbound,
            exclude=exclude or DEFAULT_EXCLUDED_MEMBERS,
            runner=runner,
        )
    except MeasurementError as exc:
        _fail(str(exc))
    except KeyboardInterrupt:
        if not json_output:
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

    if json_output:
        click.echo(export_batch_json(results))
    else:
        render_batch(results)

    if token.cancelled:
        if not json_output:
            console.print("[yellow]Interrupted.[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
