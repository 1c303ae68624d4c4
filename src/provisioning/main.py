"""Command-line entry point for the tool provisioner.

Usage:
    toolprov provision --source-url URL [--revision REV] --sub-tool PATH ...

Exit codes:
    0   every sub-tool installed and the workspace removed
    1   invalid configuration
    2   the source could not be fetched (or the workspace root created)
    3   a sub-tool failed to install
    4   installed, but the workspace could not be removed
    130 interrupted; the workspace was removed before exiting
"""

import argparse
import asyncio
import contextlib
import logging
import shlex
import signal
import sys
from typing import List, Optional

import structlog
from pydantic_settings import SettingsError

from src.provisioning.config import ProvisionerSettings, get_settings
from src.provisioning.events.emitter import CompositeEventEmitter, LoggingEventEmitter
from src.provisioning.events.metrics import MetricsEventEmitter, ProvisionMetrics
from src.provisioning.orchestrator import Provisioner
from src.provisioning.provisioner.errors import (
    CleanupWarning,
    InstallError,
    ProvisionError,
)
from src.provisioning.provisioner.fetch import GitFetcher
from src.provisioning.provisioner.models import ProvisionReport, ProvisionSpec
from src.provisioning.runner.installer import InstallerRunner

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_CLEANUP_WARNING = CleanupWarning.exit_code
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolprov",
        description="Fetch a toolset repository and install its sub-tools",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser(
        "provision",
        help="Fetch the source, install each sub-tool, remove the workspace",
    )
    provision.add_argument("--source-url", help="Git URL of the toolset repository")
    provision.add_argument("--revision", help="Commit, tag or branch to pin the fetch to")
    provision.add_argument("--clone-name", help="Directory name for the clone")
    provision.add_argument(
        "--sub-tool",
        dest="sub_tools",
        action="append",
        metavar="PATH",
        help="Sub-tool path inside the clone (repeatable, installed in order)",
    )
    provision.add_argument("--workspace-root", help="Directory that holds the clone")
    provision.add_argument(
        "--installer",
        help='Installer command; the sub-tool path is appended (default: "cargo install --force --path")',
    )
    provision.add_argument("--git", dest="git_path", help="git executable")
    provision.add_argument(
        "--timeout",
        dest="step_timeout_seconds",
        type=float,
        help="Timeout in seconds for each fetch or install step",
    )
    provision.add_argument("--metrics-gateway", dest="metrics_gateway_url")
    provision.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    provision.add_argument("--json-logs", action="store_true", default=None)

    return parser


def settings_from_args(args: argparse.Namespace) -> ProvisionerSettings:
    """Build settings, letting command-line values override the environment.

    Raises:
        pydantic.ValidationError: If the resulting settings are invalid.
        pydantic_settings.SettingsError: If an environment value cannot be parsed.
        ValueError: If the --installer string is not valid shell syntax.
    """
    installer_command = shlex.split(args.installer) if args.installer else None
    return get_settings(
        source_url=args.source_url,
        revision=args.revision,
        clone_name=args.clone_name,
        sub_tools=args.sub_tools,
        workspace_root=args.workspace_root,
        installer_command=installer_command,
        git_path=args.git_path,
        step_timeout_seconds=args.step_timeout_seconds,
        metrics_gateway_url=args.metrics_gateway_url,
        log_level=args.log_level,
        json_logs=args.json_logs,
    )


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Route structlog and stdlib logging through one structlog renderer.

    Stdlib records keep their ``extra`` fields as structured keys.
    """
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_logs:
        final_processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final_processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(),
        ]

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*shared_processors, structlog.stdlib.ExtraAdder()],
        processors=final_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)


def build_provisioner(
    settings: ProvisionerSettings, metrics: ProvisionMetrics
) -> Provisioner:
    """Wire the Provisioner and its collaborators from settings."""
    return Provisioner(
        fetcher=GitFetcher(
            git_path=settings.git_path,
            timeout_seconds=settings.step_timeout_seconds,
        ),
        installer=InstallerRunner(
            command=settings.installer_command,
            timeout_seconds=settings.step_timeout_seconds,
        ),
        event_emitter=CompositeEventEmitter(
            [LoggingEventEmitter(), MetricsEventEmitter(metrics)]
        ),
    )


async def run_provision(provisioner: Provisioner, spec: ProvisionSpec) -> ProvisionReport:
    """Run ``provisioner`` with SIGTERM mapped to task cancellation.

    SIGINT is already delivered as cancellation by ``asyncio.run``.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()

    # add_signal_handler is unavailable on Windows event loops
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    try:
        return await provisioner.provision(spec)
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGTERM)


def _log_configuration(settings: ProvisionerSettings, spec: ProvisionSpec) -> None:
    logger.info(
        "Provisioner configuration",
        source_url=spec.source_url,
        revision=spec.revision or "(unpinned)",
        clone_path=str(spec.clone_path),
        sub_tools=list(spec.sub_tool_paths),
        installer=" ".join(settings.installer_command),
        step_timeout_seconds=settings.step_timeout_seconds,
    )


def _report_failure(exc: ProvisionError) -> None:
    details = {"step": exc.step, "error": str(exc)}
    if isinstance(exc, InstallError):
        details["tool_path"] = exc.path
    if exc.cleanup_warning is not None:
        details["cleanup_warning"] = str(exc.cleanup_warning)
    logger.error("Provisioning failed", **details)


def provision_command(settings: ProvisionerSettings, spec: ProvisionSpec) -> int:
    """Execute one provisioning run and map its outcome to an exit code."""
    metrics = ProvisionMetrics()
    provisioner = build_provisioner(settings, metrics)

    try:
        report = asyncio.run(run_provision(provisioner, spec))
    except ProvisionError as exc:
        _report_failure(exc)
        return exc.exit_code
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.warning("Provisioning interrupted; workspace removed")
        return EXIT_INTERRUPTED
    finally:
        if settings.metrics_gateway_url:
            metrics.push(settings.metrics_gateway_url)

    if report.cleanup_warning is not None:
        logger.warning(
            "Provisioning succeeded but the workspace was not removed",
            workspace=str(report.cleanup_warning.path),
            error=report.cleanup_warning.cause,
        )
        return EXIT_CLEANUP_WARNING

    logger.info(
        "Provisioning complete",
        installed=report.installed,
        fetched=report.fetched,
        duration_seconds=round(report.duration_seconds, 2),
    )
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = settings_from_args(args)
        spec = settings.to_spec()
    # pydantic.ValidationError is a ValueError, as are shlex parse errors.
    except (SettingsError, ValueError) as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(settings.log_level, settings.json_logs)
    _log_configuration(settings, spec)

    return provision_command(settings, spec)


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
