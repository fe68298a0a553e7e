#!/usr/bin/env python3
"""
Resource Provisioner
Main entry point: creates every file resource listed in a JSON manifest.

Each resource goes through the factory, so a failing entry never leaves a
half-configured file behind.
"""

import argparse
import os
import sys
from typing import List, Optional, Tuple

from acquisition.factory import create_file
from models.config import ResourceConfig
from tracking.events import EventLog, EventType
from utils.logger import ResourceLogger
from utils.manifest_loader import ManifestLoadError, get_manifest_description, load_manifest

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_BAD_MANIFEST = 2


def run_provisioning(
    manifest_path: str,
    verbose: bool = False,
    log_file: Optional[str] = None,
    dry_run: bool = False,
    show_events: bool = False,
    quiet: bool = False
) -> Tuple[int, EventLog]:
    """
    Provision all resources in a manifest.

    Resources are processed in manifest order; a failure does not stop
    the remaining entries.

    Args:
        manifest_path: Path to manifest JSON file
        verbose: Enable debug logging
        log_file: Optional log file path
        dry_run: Only validate and report what would be created
        show_events: Print the event log at the end
        quiet: Suppress console output except errors

    Returns:
        Tuple of (exit status, EventLog)
    """
    logger = ResourceLogger(verbose=verbose, log_file=log_file, quiet=quiet)
    event_log = EventLog()

    try:
        configs = load_manifest(manifest_path)
    except ManifestLoadError as e:
        logger.log(f"Failed to load manifest: {e}", "error")
        logger.close()
        return EXIT_BAD_MANIFEST, event_log

    logger.log(f"\n{'='*60}")
    logger.log(f"PROVISIONING{' (DRY RUN)' if dry_run else ''}: {manifest_path}")
    description = get_manifest_description(manifest_path)
    if description:
        logger.log(description)
    logger.log(f"{'='*60}\n")

    _display_manifest(configs, logger)

    if dry_run:
        failures = _dry_run(configs, logger)
    else:
        failures = _provision_all(configs, logger, event_log)

    logger.log(f"\n{'='*60}")
    logger.log("PROVISIONING COMPLETE")
    logger.log(f"{'='*60}")

    _display_statistics(configs, failures, event_log, logger, dry_run)

    if show_events and event_log.events:
        logger.log("\nEvents:")
        logger.log(event_log.display())

    logger.close()
    return (EXIT_FAILURES if failures else EXIT_OK), event_log


def _provision_all(configs: List[ResourceConfig], logger: ResourceLogger, event_log: EventLog) -> int:
    """Create each resource, close it, and return the failure count."""
    failures = 0
    for config in configs:
        result = create_file(config, event_log=event_log, logger=logger)
        if not result.ok:
            failures += 1
            logger.log(str(result.error), "error")
            continue

        with result.value as resource:
            logger.log(f"  {resource.identity}: {resource.size()} bytes", "debug")
    return failures


def _dry_run(configs: List[ResourceConfig], logger: ResourceLogger) -> int:
    """Report what would happen without touching the filesystem."""
    conflicts = 0
    for config in configs:
        exists = os.path.lexists(config.identity)
        if exists and not config.overwrite_existing:
            conflicts += 1
            logger.log(f"WOULD FAIL {config.identity} - AlreadyExists", "warning")
        elif exists:
            logger.log(f"WOULD REPLACE {config.describe()}")
        else:
            logger.log(f"WOULD CREATE {config.describe()}")
    return conflicts


def _display_manifest(configs: List[ResourceConfig], logger: ResourceLogger) -> None:
    logger.log("Manifest Resources:")
    for config in configs:
        logger.log(f"  {config.describe()}", "debug")
    logger.log(f"  {len(configs)} resource(s)\n")


def _display_statistics(
    configs: List[ResourceConfig],
    failures: int,
    event_log: EventLog,
    logger: ResourceLogger,
    dry_run: bool
) -> None:
    """Display final provisioning statistics."""
    if dry_run:
        logger.log(f"\n  Resources checked: {len(configs)}")
        logger.log(f"  Conflicts: {failures}")
        return

    logger.log_summary(
        acquired=len(event_log.get_events_by_type(EventType.ACQUIRED)),
        failed=failures,
        rolled_back=len(event_log.get_events_by_type(EventType.ROLLED_BACK)),
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the provisioner."""
    parser = argparse.ArgumentParser(
        description='Create file resources from a manifest without partial results'
    )
    parser.add_argument(
        '--manifest',
        type=str,
        required=True,
        help='Path to manifest JSON file'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Also write the log to this file'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate the manifest and report what would be created'
    )
    parser.add_argument(
        '--show-events',
        action='store_true',
        help='Print every acquisition event at the end'
    )

    args = parser.parse_args(argv)

    status, _ = run_provisioning(
        args.manifest,
        verbose=args.verbose,
        log_file=args.log_file,
        dry_run=args.dry_run,
        show_events=args.show_events
    )
    return status


if __name__ == '__main__':
    sys.exit(main())
