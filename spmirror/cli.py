"""CLI interface for spmirror."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import SharePointClient
from .auth import SharePointAuth, resource_scopes
from .config import config
from .exceptions import (
    LibraryNotFoundError,
    SharePointAPIError,
    SharePointAuthenticationError,
    SharePointConfigError,
)
from .items_manager import LibraryItemsManager
from .output import OutputFormatter
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_PAGE_SIZE, format_timestamp

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _attach_transcript(log_path: Path, verbose: bool) -> logging.Handler:
    """Write the package's log records to ``log_path`` for this run."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger("spmirror").addHandler(handler)
    return handler


def _detach_transcript(handler: logging.Handler) -> None:
    logging.getLogger("spmirror").removeHandler(handler)
    handler.close()


def _make_auth(
    site_url: str, client_id: str, tenant: str, interactive: bool
) -> SharePointAuth:
    return SharePointAuth(
        site_url=site_url,
        client_id=client_id,
        tenant=tenant,
        interactive=interactive,
        token_cache_path=config.get_token_cache_path(),
        prompt=lambda message: click.echo(message, err=True),
    )


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="spmirror")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """spmirror - Mirror a SharePoint document library to a local directory."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    package_logger = logging.getLogger("spmirror")
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT, datefmt="%H:%M:%S")
        package_logger.setLevel(logging.DEBUG)
        package_logger.propagate = True
    else:
        # Console output goes through OutputFormatter; records only reach
        # the transcript handler
        package_logger.setLevel(logging.INFO)
        package_logger.propagate = False


@main.command()
@click.option("--site-url", "-s", prompt="SharePoint site URL", help="Site URL")
@click.option("--client-id", prompt="Application (client) ID", help="Azure AD app ID")
@click.option("--tenant", prompt="Tenant (domain or ID)", help="Azure AD tenant")
@click.option("--library", "-l", default=None, help="Default document library")
@click.option(
    "--target",
    "-t",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Default local target directory",
)
@click.pass_context
def init(
    ctx: Any,
    site_url: str,
    client_id: str,
    tenant: str,
    library: Optional[str],
    target: Optional[Path],
) -> None:
    """Store connection defaults in ~/.config/spmirror/config."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        resource_scopes(site_url)
    except SharePointConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    path = config.save(
        {
            "site_url": site_url.rstrip("/"),
            "client_id": client_id,
            "tenant": tenant,
            "library_name": library,
            "target_path": str(target.expanduser().resolve()) if target else None,
        }
    )
    out.success(f"Configuration saved to {path}")


@main.command()
@click.option("--site-url", "-s", help="SharePoint site URL")
@click.option("--library", "-l", help="Document library title")
@click.option(
    "--target",
    "-t",
    type=click.Path(file_okay=False, path_type=Path),
    help="Local target directory",
)
@click.option("--client-id", help="Azure AD application (client) ID")
@click.option("--tenant", help="Azure AD tenant (domain or ID)")
@click.option(
    "--log-path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Transcript log file (default: ~/.config/spmirror/logs/sync_<time>.log)",
)
@click.option(
    "--interactive/--device-code",
    default=True,
    help="Sign in through the browser (default) or with a device code",
)
@click.option("--log-skips", is_flag=True, help="Log files skipped as up to date")
@click.option("--dry-run", is_flag=True, help="Show what would be downloaded")
@click.option(
    "--page-size",
    type=int,
    default=DEFAULT_PAGE_SIZE,
    show_default=True,
    help="Items per listing page",
)
@click.option(
    "--workers",
    "-j",
    type=int,
    default=1,
    show_default=True,
    help="Number of parallel downloads",
)
@click.option(
    "--retries",
    type=int,
    default=DEFAULT_MAX_RETRIES,
    show_default=True,
    help="Retries for transient download errors",
)
@click.option("--no-progress", is_flag=True, help="Disable the progress display")
@click.pass_context
def sync(
    ctx: Any,
    site_url: Optional[str],
    library: Optional[str],
    target: Optional[Path],
    client_id: Optional[str],
    tenant: Optional[str],
    log_path: Optional[Path],
    interactive: bool,
    log_skips: bool,
    dry_run: bool,
    page_size: int,
    workers: int,
    retries: int,
    no_progress: bool,
) -> None:
    """Mirror a document library onto a local directory.

    Files that are missing locally or older than the remote copy are
    downloaded; everything else is skipped. Local files are never deleted.

    Examples:
        spmirror sync -s https://contoso.sharepoint.com/sites/Team \\
            -l Documents -t ./Team --client-id <id> --tenant contoso.com
        spmirror sync --dry-run                 # Use saved defaults
        spmirror sync -j 4 --log-skips          # 4 parallel downloads
    """
    from .cli_progress import run_sync_with_progress
    from .sync import SyncEngine, SyncOperations, SyncPair, error_report_path

    out: OutputFormatter = ctx.obj["out"]
    verbose: bool = ctx.obj["verbose"]

    try:
        settings = config.build_settings(
            site_url=site_url,
            library_name=library,
            target_path=target,
            client_id=client_id,
            tenant=tenant,
            log_path=log_path,
            interactive=interactive,
            log_skips=log_skips,
            page_size=page_size,
            max_workers=workers,
            max_retries=retries,
        )
    except SharePointConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return  # Unreachable, but helps type checker

    handler = _attach_transcript(settings.log_path, verbose)
    auth = _make_auth(
        settings.site_url, settings.client_id, settings.tenant, settings.interactive
    )
    client = SharePointClient(settings.site_url, token_provider=auth.get_token)

    try:
        if not out.quiet:
            out.info(f"Site:    {settings.site_url}")
            out.info(f"Library: {settings.library_name}")
            out.info(f"Target:  {settings.target_path}")
            if dry_run:
                out.info("Dry run: No files will be downloaded")
            out.print("")

        pair = SyncPair(
            local=settings.target_path,
            library=settings.library_name,
            log_skips=settings.log_skips,
        )
        engine_out = OutputFormatter(json_output=out.json_output, quiet=out.quiet)
        operations = SyncOperations(client, max_retries=settings.max_retries)
        engine = SyncEngine(client, engine_out, operations)

        result = run_sync_with_progress(
            engine,
            pair,
            show_progress=not (no_progress or out.quiet or out.json_output),
            dry_run=dry_run,
            page_size=settings.page_size,
            max_workers=settings.max_workers,
            report_path=None if dry_run else error_report_path(settings.log_path),
        )

        if out.json_output:
            data = result.tally.to_dict()
            data["severity"] = result.severity.value
            data["started_at"] = result.started_at.isoformat()
            data["finished_at"] = result.finished_at.isoformat()
            data["log_path"] = str(settings.log_path)
            data["error_report"] = (
                str(result.error_report) if result.error_report else None
            )
            out.output_json(data)
        else:
            out.print("")
            out.print(result.summary)
            if result.error_report is not None:
                out.warning(f"Error report written to {result.error_report}")
            out.info(f"Log file: {settings.log_path}")

        if result.tally.cancelled:
            ctx.exit(130)  # Standard exit code for SIGINT

    except (LibraryNotFoundError, SharePointAuthenticationError) as e:
        logger.error(str(e))
        out.error(str(e))
        ctx.exit(1)
    except SharePointAPIError as e:
        logger.error(f"Could not connect to {settings.site_url}: {e}")
        out.error(f"Could not connect to {settings.site_url}: {e}")
        ctx.exit(1)
    except ValueError as e:
        out.error(str(e))
        ctx.exit(1)
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
    finally:
        client.close()
        _detach_transcript(handler)


@main.command()
@click.option("--site-url", "-s", help="SharePoint site URL")
@click.option("--library", "-l", help="Document library title")
@click.option("--client-id", help="Azure AD application (client) ID")
@click.option("--tenant", help="Azure AD tenant (domain or ID)")
@click.option(
    "--interactive/--device-code",
    default=True,
    help="Sign in through the browser (default) or with a device code",
)
@click.option(
    "--page-size",
    type=int,
    default=DEFAULT_PAGE_SIZE,
    show_default=True,
    help="Items per listing page",
)
@click.pass_context
def ls(
    ctx: Any,
    site_url: Optional[str],
    library: Optional[str],
    client_id: Optional[str],
    tenant: Optional[str],
    interactive: bool,
    page_size: int,
) -> None:
    """List every file in a document library."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        values = config.resolve(
            ("site_url", "library_name", "client_id", "tenant"),
            ("site_url", "library_name", "client_id", "tenant"),
            site_url=site_url,
            library_name=library,
            client_id=client_id,
            tenant=tenant,
        )
        auth = _make_auth(
            str(values["site_url"]),
            str(values["client_id"]),
            str(values["tenant"]),
            interactive,
        )
    except SharePointConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    library_title = str(values["library_name"])
    client = SharePointClient(str(values["site_url"]), token_provider=auth.get_token)
    try:
        client.get_library(library_title)
        files = LibraryItemsManager(client, library_title).get_all_files(page_size)

        if out.json_output:
            out.output_json(
                [
                    {
                        "path": f.server_relative_path,
                        "name": f.leaf_name,
                        "modified": f.modified_at.isoformat(),
                    }
                    for f in files
                ]
            )
            return

        for f in sorted(files, key=lambda d: d.server_relative_path.casefold()):
            out.print(f"{format_timestamp(f.modified_at)}  {f.server_relative_path}")
        out.info(f"\n{len(files)} file(s)")

    except SharePointAPIError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()
