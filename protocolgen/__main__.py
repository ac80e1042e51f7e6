"""
Construction Protocol Generator - CLI Entry Point

Commands:
    generate  - Generate a protocol PDF from a project bundle
"""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from .audit import RecordingAuditLog
from .config import load_config
from .errors import ProtocolError
from .jobs import ProtocolJobOrchestrator
from .models import JobStatus, TaskPriority, TaskStatus
from .storage import BundleError, LocalBlobStore, load_bundle, sanitize_filename


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )


def cmd_generate(args):
    """Generate a protocol for the project in a bundle."""
    try:
        config = load_config(Path(args.config) if args.config else None)
    except (OSError, ValueError) as e:
        print(f"Invalid config: {e}")
        return 1

    blob_store = LocalBlobStore(config.storage_root)
    try:
        bundle = load_bundle(Path(args.bundle), blob_store)
    except (OSError, BundleError) as e:
        print(f"Could not load bundle: {e}")
        return 1

    filters = {}
    if args.status:
        filters["status"] = args.status
    if args.trade:
        filters["trade"] = args.trade
    if args.priority:
        filters["priority"] = args.priority

    name = args.name or f"{bundle.project.name} Protocol"
    output_path = Path(args.output) if args.output else Path(f"{sanitize_filename(name)}.pdf")

    orchestrator = ProtocolJobOrchestrator(
        projects=bundle.projects,
        organizations=bundle.organizations,
        tasks=bundle.tasks,
        photos=bundle.photos,
        blueprints=bundle.blueprints,
        blob_store=blob_store,
        protocols=bundle.protocols,
        audit_log=RecordingAuditLog(),
        config=config,
    )
    try:
        try:
            job_id = orchestrator.start_generation(
                project_id=bundle.project.id,
                organization_id=bundle.organization.id,
                requester_id=args.requested_by,
                name=name,
                filters=filters,
            )
        except (ValidationError, ValueError, ProtocolError) as e:
            print(f"Could not start protocol generation: {e}")
            return 1

        job = orchestrator.wait(job_id)
    finally:
        orchestrator.shutdown()

    if job is None or job.status is not JobStatus.COMPLETED:
        print(f"\nResult: FAILED (job {job_id})")
        return 1

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "wb") as f:
        f.write(blob_store.read(job.storage_key))

    view = orchestrator.get_job(job_id, organization_id=bundle.project.organization_id, project_id=bundle.project.id)
    print("\nResult: SUCCESS")
    print(f"Tasks: {bundle.task_count}")
    print(f"Size: {job.size_bytes:,} bytes")
    print(f"Stored: {view.download_ref}")
    print(f"Output: {output_path}")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Construction Protocol Generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate a protocol with all tasks
  python -m protocolgen generate project/bundle.yaml --output protocol.pdf

  # Only open electrical tasks
  python -m protocolgen generate project/bundle.yaml --status open --trade Electrical
        """
    )

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    gen_parser = subparsers.add_parser('generate', help='Generate a protocol PDF')
    gen_parser.add_argument('bundle', help='Project bundle YAML')
    gen_parser.add_argument('--output', '-o', default=None,
                            help='Output PDF path (default: <name>.pdf)')
    gen_parser.add_argument('--name', '-n', default=None,
                            help='Protocol name (default: "<project> Protocol")')
    gen_parser.add_argument('--status', choices=[s.value for s in TaskStatus],
                            help='Only include tasks with this status')
    gen_parser.add_argument('--trade', help='Only include tasks of this trade')
    gen_parser.add_argument('--priority', choices=[p.value for p in TaskPriority],
                            help='Only include tasks with this priority')
    gen_parser.add_argument('--config', '-c', default=None,
                            help='Config YAML')
    gen_parser.add_argument('--requested-by', default='cli',
                            help='Requester recorded on the job')
    gen_parser.add_argument('-v', '--verbose', action='store_true', default=argparse.SUPPRESS,
                            help='Enable verbose logging')
    gen_parser.set_defaults(func=cmd_generate)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
