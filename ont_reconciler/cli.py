"""Command-line interface for the ONT intent reconciler."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime

import yaml

from .config import ConfigurationManager
from .main import ReconcilerApp
from .models import AttributeStatus
from .errors import ReconcilerError, report_error
from .logging import (
    initialize_logging, LogLevel, get_logger, LogCategory,
    get_performance_summary, ReconcilerLogger
)


class CLIProgressReporter:
    """Progress reporter for CLI operations. Writes to stderr so reports can go to stdout."""

    def __init__(self, verbose: bool = False, stream=None):
        self.verbose = verbose
        self.stream = stream or sys.stderr
        self.start_time = None
        self.current_step = 0
        self.total_steps = 0

    def start_operation(self, operation_name: str, total_steps: int = 0):
        self.start_time = datetime.now()
        self.current_step = 0
        self.total_steps = total_steps
        if self.verbose:
            print(f"Starting {operation_name}...", file=self.stream)

    def update_progress(self, step_name: str, step_number: Optional[int] = None):
        if step_number is not None:
            self.current_step = step_number
        else:
            self.current_step += 1

        if not self.verbose:
            return
        if self.total_steps > 0:
            percentage = (self.current_step / self.total_steps) * 100
            print(f"[{percentage:.1f}%] {step_name}", file=self.stream)
        else:
            print(f"[{self.current_step}] {step_name}", file=self.stream)

    def complete_operation(self, operation_name: str, success: bool = True):
        status = "completed successfully" if success else "failed"
        if self.start_time:
            duration = datetime.now() - self.start_time
            print(f"{operation_name} {status} in {duration.total_seconds():.2f} seconds", file=self.stream)
        else:
            print(f"{operation_name} {status}", file=self.stream)

    def show_error(self, error_message: str):
        print(f"ERROR: {error_message}", file=self.stream)

    def show_warning(self, warning_message: str):
        print(f"WARNING: {warning_message}", file=self.stream)

    def show_info(self, info_message: str):
        if self.verbose:
            print(f"INFO: {info_message}", file=self.stream)


def parse_bindings(raw_bindings: Optional[List[str]]) -> Dict[str, str]:
    """Parse ``name=value`` template bindings given on the command line."""
    bindings = {}
    for raw in raw_bindings or []:
        name, sep, value = raw.partition("=")
        if not sep or not name:
            raise argparse.ArgumentTypeError(f"Binding must look like name=value: {raw!r}")
        bindings[name.strip()] = value.strip()
    return bindings


class ReconcilerCLI:
    """Main CLI interface for the ONT intent reconciler."""

    def __init__(self):
        self.config_manager = None
        self.app = None
        self.progress_reporter = None
        self.logger = None

    def create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="ont-reconcile",
            description="ONT Intent Reconciler - apply vendor-agnostic configuration intent to TR-098/TR-181 devices",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Plan the writes a policy needs on a device snapshot
  ont-reconcile reconcile --snapshot device.yaml --policy policy.json --format text

  # Apply them to the snapshot and save the converged state
  ont-reconcile reconcile --snapshot device.yaml --policy policy.json --apply --save-snapshot after.yaml

  # Show detected vendor and schema
  ont-reconcile detect --snapshot device.yaml

  # Resolve or read a capability
  ont-reconcile resolve --snapshot device.yaml --capability wifi.band.5.password --bind i=5
  ont-reconcile query --snapshot device.yaml --capability wifi.band.5.ssid

  # Validate a policy document
  ont-reconcile validate-policy --policy policy.json
            """
        )

        parser.add_argument('--config', '-c', type=str, default='ont-reconciler.yaml',
                            help='Path to configuration file (default: ont-reconciler.yaml)')
        parser.add_argument('--verbose', '-v', action='store_true',
                            help='Enable verbose output')
        parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                            help='Set logging level (default: from configuration)')
        parser.add_argument('--log-file', type=str,
                            help='Path to log file (default: console only)')

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        reconcile_parser = subparsers.add_parser('reconcile', help='Diff a policy against a device snapshot')
        reconcile_parser.add_argument('--snapshot', required=True, help='Device snapshot (JSON or YAML)')
        reconcile_parser.add_argument('--policy', required=True, help='Policy document (JSON or YAML)')
        reconcile_parser.add_argument('--apply', action='store_true',
                                      help='Apply the planned writes and tags to the snapshot store')
        reconcile_parser.add_argument('--output', '-o', help='Write the report to this file instead of stdout')
        reconcile_parser.add_argument('--format', choices=['json', 'text'], default='json',
                                      help='Report format (default: json)')
        reconcile_parser.add_argument('--save-snapshot', help='Save the store state after the run')

        detect_parser = subparsers.add_parser('detect', help='Detect vendor and schema generation')
        detect_parser.add_argument('--snapshot', required=True, help='Device snapshot (JSON or YAML)')

        for name, help_text in (('resolve', 'Resolve a capability to a concrete path'),
                                ('query', 'Read the current value of a capability')):
            sub = subparsers.add_parser(name, help=help_text)
            sub.add_argument('--snapshot', required=True, help='Device snapshot (JSON or YAML)')
            sub.add_argument('--capability', required=True, help='Capability key, e.g. wifi.band.5.ssid')
            sub.add_argument('--bind', action='append', metavar='NAME=VALUE',
                             help='Template binding such as i=5 (repeatable)')

        validate_parser = subparsers.add_parser('validate-policy', help='Validate a policy document')
        validate_parser.add_argument('--policy', required=True, help='Policy document (JSON or YAML)')

        list_parser = subparsers.add_parser('list-capabilities', help='List registered capabilities')
        list_parser.add_argument('--prefix', default='', help='Only show keys starting with this prefix')

        config_parser = subparsers.add_parser('create-config', help='Write a default configuration file')
        config_parser.add_argument('--output', '-o', required=True, help='Output configuration file path')

        return parser

    def setup_logging(self, log_level: Optional[str], log_file: Optional[str] = None, verbose: bool = False):
        """Setup structured logging configuration."""
        level = LogLevel[log_level.upper()] if log_level else LogLevel.WARNING

        ReconcilerLogger.reset()
        initialize_logging(
            log_level=level,
            log_file=log_file,
            enable_performance=True,
            enable_structured=True
        )
        self.logger = get_logger("cli")
        self.logger.info(
            "CLI logging initialized",
            LogCategory.AUDIT,
            context={'log_level': level.value, 'log_file': log_file, 'verbose': verbose}
        )

    async def run(self, args: List[str] = None) -> int:
        """Run the CLI with given arguments."""
        parser = self.create_parser()
        parsed_args = parser.parse_args(args)

        self.setup_logging(parsed_args.log_level, parsed_args.log_file, parsed_args.verbose)
        self.progress_reporter = CLIProgressReporter(parsed_args.verbose)
        self.config_manager = ConfigurationManager()

        if parsed_args.command is None:
            parser.print_help()
            return 1

        try:
            config_path = Path(parsed_args.config)
            if config_path.exists():
                config = self.config_manager.load_config(config_path)
                if parsed_args.log_level is None and parsed_args.log_file is None:
                    ReconcilerLogger.reset()
                    ReconcilerLogger.initialize(config.logging.to_logging_config())
                    self.logger = get_logger("cli")
            else:
                config = self.config_manager.create_default_config()
                self.progress_reporter.show_info(f"Using default configuration (config file not found: {config_path})")

            self.app = ReconcilerApp(config, self.progress_reporter)

            self.logger.info(
                f"Executing CLI command: {parsed_args.command}",
                LogCategory.AUDIT,
                context={'command': parsed_args.command, 'args': vars(parsed_args)}
            )

            handlers = {
                'reconcile': self._handle_reconcile,
                'detect': self._handle_detect,
                'resolve': self._handle_resolve,
                'query': self._handle_query,
                'validate-policy': self._handle_validate_policy,
                'list-capabilities': self._handle_list_capabilities,
                'create-config': self._handle_create_config,
            }
            return await handlers[parsed_args.command](parsed_args)

        except ReconcilerError as e:
            self.logger.error(
                f"Reconciler error in CLI: {e}",
                LogCategory.ERROR,
                context={'error_type': type(e).__name__, 'command': parsed_args.command}
            )
            self.progress_reporter.show_error(e.get_user_message())
            report_error(e)
            return 1
        except argparse.ArgumentTypeError as e:
            self.progress_reporter.show_error(str(e))
            return 2
        except Exception as e:
            self.logger.critical(
                f"Unexpected error in CLI: {e}",
                LogCategory.ERROR,
                context={'error_type': type(e).__name__, 'command': parsed_args.command}
            )
            self.progress_reporter.show_error(f"Unexpected error: {e}")
            logging.getLogger("ont_reconciler.cli").exception("Unexpected error in CLI")
            return 1
        finally:
            perf_summary = get_performance_summary()
            if perf_summary.get('total_operations', 0) > 0:
                self.logger.info("CLI session performance summary", LogCategory.PERFORMANCE, context=perf_summary)

    async def _handle_reconcile(self, args) -> int:
        result, store = await self.app.reconcile_device(args.snapshot, args.policy, apply=args.apply)

        if args.output:
            await self.app.export_result(result, args.output, args.format)
            print(f"Report written to {args.output}")
        elif args.format == 'text':
            print(self.app.report_generator.to_text(result))
        else:
            print(self.app.report_generator.to_json(result))

        if args.save_snapshot:
            self._save_snapshot(store.to_snapshot(), Path(args.save_snapshot))
            self.progress_reporter.show_info(f"Snapshot saved to {args.save_snapshot}")

        if result.aborted or result.results_with_status(AttributeStatus.FAILED):
            return 1
        return 0

    async def _handle_detect(self, args) -> int:
        context = await self.app.detect_device(args.snapshot)
        print(f"Vendor: {context.vendor_tag or 'none'}")
        print(f"Schema: {context.schema_generation.value} ({context.schema_generation.tag})")
        return 0

    async def _handle_resolve(self, args) -> int:
        path = await self.app.resolve_capability(args.snapshot, args.capability, parse_bindings(args.bind))
        if path is None:
            print(f"{args.capability}: not found on this device")
            return 1
        print(f"{args.capability} -> {path}")
        return 0

    async def _handle_query(self, args) -> int:
        observed = await self.app.query_capability(args.snapshot, args.capability, parse_bindings(args.bind))
        if observed is None:
            print(f"{args.capability}: not found on this device")
            return 1
        print(f"{observed.path} = {observed.value!r}")
        return 0

    async def _handle_validate_policy(self, args) -> int:
        intent, validation = self.app.validate_policy_file(args.policy)

        for warning in validation.warnings:
            self.progress_reporter.show_warning(warning)

        if validation.is_valid:
            print(f"Policy '{args.policy}' is valid ({', '.join(intent.sections()) or 'no sections'})")
            return 0

        print(f"Policy '{args.policy}' has validation errors:")
        for error in validation.errors:
            location = error.section + (f".{error.field_name}" if error.field_name else "")
            print(f"  - [{location}] {error.message}")
        return 1

    async def _handle_list_capabilities(self, args) -> int:
        capabilities = self.app.list_capabilities()
        for key, candidates in capabilities.items():
            if not key.startswith(args.prefix):
                continue
            print(key)
            for candidate in candidates:
                conditions = ", ".join(
                    f"{name}={candidate[name]}" for name in ('vendor', 'schema') if candidate[name]
                )
                print(f"    {candidate['template']}" + (f"  [{conditions}]" if conditions else ""))
        return 0

    async def _handle_create_config(self, args) -> int:
        default_config = self.config_manager.create_default_config()
        self.config_manager.save_config(default_config, args.output)
        print(f"Default configuration created at: {args.output}")
        return 0

    def _save_snapshot(self, snapshot: Dict[str, Any], output_path: Path):
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            if output_path.suffix.lower() in ('.yaml', '.yml'):
                yaml.safe_dump(snapshot, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(snapshot, f, indent=2, default=str)


def main():
    """Main entry point for the CLI."""
    cli = ReconcilerCLI()
    try:
        exit_code = asyncio.run(cli.run())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(130)


if __name__ == '__main__':
    main()
