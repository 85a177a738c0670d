# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""A CommandLine User Interface for the paging audit framework.

The command line makes use of the framework to:
 * load a platform snapshot
 * determine the available checks
 * run the selected checks, or dump the snapshot for offline inspection
 * display the results
"""
import argparse
import json
import logging
import os
import sys
import traceback
from typing import Any, Dict, List, Optional, Tuple, Type

from pagingaudit import framework
from pagingaudit.cli import text_renderer
from pagingaudit.framework import checks, constants, contexts, exceptions, interfaces, snapshot

# Make sure we log everything

rootlog = logging.getLogger()
vollog = logging.getLogger(__name__)
console = logging.StreamHandler()
console.setLevel(logging.WARNING)
formatter = logging.Formatter("%(levelname)-8s %(name)-12s: %(message)s")
# Trim the console down by default
console.setFormatter(formatter)


class CommandLine:
    """Constructs a command-line interface object for users to audit snapshots."""

    CLI_NAME = "pagingaudit"

    def __init__(self):
        self.setup_logging()
        self.output_dir = None

    @classmethod
    def setup_logging(cls):
        rootlog.setLevel(1)
        if console not in rootlog.handlers:
            rootlog.addHandler(console)

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Executes the command line module, taking the system arguments,
        determining the command to run and then running it.

        Returns:
            The exit status, non-zero if any check failed
        """

        framework.require_interface_version(1, 0, 0)

        renderers = dict(
            [
                (x.name.lower(), x)
                for x in framework.class_subclasses(text_renderer.CLIRenderer)
            ]
        )

        # Load up system defaults
        delayed_logs, default_config = self.load_system_defaults(
            constants.DEFAULTS_FILENAME
        )

        parser = argparse.ArgumentParser(
            add_help=False,
            prog=self.CLI_NAME,
            description="Audits a platform's memory translation configuration against security invariants",
            epilog="NOTE: Combined commands (i.e. -rd) are not supported",
        )
        commands = parser.add_mutually_exclusive_group()
        commands.add_argument(
            "-r",
            "--run",
            help="Run the audit checks (the default)",
            dest="command",
            action="store_const",
            const="run",
        )
        commands.add_argument(
            "-d",
            "--dump",
            help="Dump the paging snapshot to the output directory",
            dest="command",
            action="store_const",
            const="dump",
        )
        commands.add_argument(
            "-h",
            "--help",
            action="help",
            default=argparse.SUPPRESS,
            help="Show this help message and exit",
        )
        parser.add_argument(
            "-c",
            "--config",
            help="Load the configuration from a json file",
            default=None,
            type=str,
        )
        parser.add_argument(
            "-f",
            "--file",
            metavar="FILE",
            help="The platform snapshot to audit",
            default=None,
            type=str,
        )
        parser.add_argument(
            "-p",
            "--check-dirs",
            help="Semi-colon separated list of paths to find checks",
            default="",
            type=str,
        )
        parser.add_argument(
            "--checks",
            help="Comma separated list of checks to run (class names or test ids)",
            default=None,
            type=str,
        )
        parser.add_argument(
            "--renderer",
            metavar="RENDERER",
            help=f"Determines how to render the output ({', '.join(list(renderers))})",
            default="quick",
            choices=list(renderers),
        )
        parser.add_argument(
            "-v",
            "--verbosity",
            help="Increase output verbosity",
            default=0,
            action="count",
        )
        parser.add_argument(
            "-l",
            "--log",
            help="Log output to a file as well as the console",
            default=None,
            type=str,
        )
        parser.add_argument(
            "-o",
            "--output-dir",
            help="Directory in which to output any generated files",
            default=os.getcwd(),
            type=str,
        )
        parser.set_defaults(command="run", **default_config)

        partial_args, _ = parser.parse_known_args(argv)
        if partial_args.config:
            with open(partial_args.config, "r") as f:
                config = json.load(f)
            if not isinstance(config, dict):
                parser.error(f"Configuration file {partial_args.config} does not contain a dictionary")
            delayed_logs.append((logging.INFO, f"Loading configuration from {partial_args.config}"))
            parser.set_defaults(**config)
        args = parser.parse_args(argv)

        banner_output = sys.stdout
        if renderers[args.renderer].structured_output:
            banner_output = sys.stderr
        banner_output.write(f"Paging Audit Framework {constants.PACKAGE_VERSION}\n")

        ### Start up logging
        if args.log:
            file_logger = logging.FileHandler(args.log)
            file_logger.setLevel(1)
            file_formatter = logging.Formatter(
                datefmt="%y-%m-%d %H:%M:%S",
                fmt="%(asctime)s %(name)-12s %(levelname)-8s %(message)s",
            )
            file_logger.setFormatter(file_formatter)
            rootlog.addHandler(file_logger)
            vollog.info("Logging started")

        self.order_extra_verbose_levels()
        if args.verbosity < 3:
            if args.verbosity < 1:
                sys.tracebacklimit = None
            console.setLevel(logging.WARNING - (args.verbosity * 10))
        else:
            console.setLevel(logging.DEBUG - (args.verbosity - 2))

        for level, msg in delayed_logs:
            vollog.log(level, msg)

        ### Alter constants if necessary
        if args.check_dirs:
            checks.__path__ = [
                os.path.abspath(p) for p in args.check_dirs.split(";")
            ] + constants.CHECKS_PATH
        vollog.info(f"Paging audit checks path: {checks.__path__}")

        failures = framework.import_files(
            checks, True
        )  # Will not log as console's default level is WARNING
        if failures:
            vollog.warning(
                "The following checks could not be loaded (use -vv to see why): "
                + ", ".join(sorted(failures))
            )
        selected = self.select_checks(parser, framework.list_checks(), args.checks)

        if not args.file:
            parser.error("a platform snapshot is required (use -f)")

        self.output_dir = args.output_dir
        source: Optional[snapshot.SnapshotSource] = None
        try:
            source = snapshot.SnapshotSource.from_file(args.file)
            with contexts.AuditContext(source) as context:
                if args.command == "dump":
                    self.dump(context)
                    return 0

                result = checks.run_checks(context, selected)
                renderers[args.renderer]().render(result)
                return 0 if result.passed else 1
        except exceptions.PagingAuditException as excp:
            self.process_exceptions(excp)
        finally:
            if source is not None:
                source.close()
        return 1

    def select_checks(
        self,
        parser: argparse.ArgumentParser,
        available: Dict[str, Type[interfaces.checks.CheckInterface]],
        requested: Optional[str],
    ) -> List[Type[interfaces.checks.CheckInterface]]:
        """Returns the checks named on the command line, or every check."""
        if not requested:
            return list(available.values())

        selected = []
        for name in [x.strip() for x in requested.split(",") if x.strip()]:
            matches = [
                check
                for check_name, check in available.items()
                if name.lower() in (check_name.lower(), check.test_id.lower())
            ]
            if not matches:
                parser.error(
                    f"invalid check {name} (choose from {', '.join(available)})"
                )
            selected += [check for check in matches if check not in selected]
        return sorted(selected, key=lambda x: x.priority)

    def dump(self, context: contexts.AuditContext) -> str:
        """Writes the paging snapshot to the output directory."""
        if not os.path.exists(self.output_dir):
            os.makedirs(self.output_dir)
        location = os.path.join(self.output_dir, constants.DUMP_FILENAME)
        snapshot.write_snapshot(context, location)
        sys.stdout.write(f"Snapshot written to {location}\n")
        return location

    def load_system_defaults(
        self, filename: str
    ) -> Tuple[List[Tuple[int, str]], Dict[str, Any]]:
        """Modify the main configuration based on the default configuration override"""
        # Build the config path
        default_config_path = os.path.join(constants.CONFIG_PATH, filename)

        delayed_logs = []

        # Process it if the files exist
        if os.path.exists(default_config_path):
            with open(default_config_path, "rb") as config_json:
                result = json.load(config_json)
            if not isinstance(result, dict):
                delayed_logs.append(
                    (
                        logging.INFO,
                        f"Default configuration file {default_config_path} does not contain a dictionary",
                    )
                )
            else:
                delayed_logs.append(
                    (
                        logging.INFO,
                        f"Loading default configuration options from {default_config_path}",
                    )
                )
                delayed_logs.append(
                    (
                        logging.DEBUG,
                        f"Loaded configuration: {json.dumps(result, indent = 2, sort_keys = True)}",
                    )
                )
                return delayed_logs, result
        return delayed_logs, {}

    def process_exceptions(self, excp):
        """Provide useful feedback if an exception occurs during an audit."""
        # Ensure there's nothing in the cache
        sys.stdout.write("\n\n")
        sys.stdout.flush()
        sys.stderr.flush()

        # Log the full exception at a high level for easy access
        fulltrace = traceback.TracebackException.from_exception(excp).format(chain=True)
        vollog.debug("".join(fulltrace))

        if isinstance(excp, exceptions.SnapshotException):
            general = f"The snapshot could not be loaded: {excp.location}"
            detail = f"{excp}"
            caused_by = [
                "A missing or unreadable snapshot file",
                "A snapshot written by an incompatible version (check the metadata format)",
            ]
        elif isinstance(excp, exceptions.PagedInvalidAddressException):
            general = "The page tables could not be walked:"
            detail = f"Page error {hex(excp.invalid_address)} in layer {excp.layer_name} ({excp})"
            caused_by = [
                "An incorrect page map offset for the page table dump",
                "The physical memory image being incomplete (try re-capturing if possible)",
            ]
        elif isinstance(excp, exceptions.LayerException):
            general = f"The audit experienced a layer-related issue: {excp.layer_name}"
            detail = f"{excp}"
            caused_by = [
                "A faulty page table producer (re-run with -vvv and file a bug)"
            ]
        elif isinstance(excp, exceptions.PopulationException):
            general = "A snapshot buffer could not be populated:"
            detail = f"{excp}"
            caused_by = ["A producer that changed size between sizing and population"]
        elif isinstance(excp, exceptions.ProducerUnavailableException):
            general = f"A required part of the snapshot is missing: {excp.source}"
            detail = f"{excp}"
            caused_by = ["A snapshot captured without the section required"]
        else:
            general = "The audit encountered an unexpected situation."
            detail = f"{excp}"
            caused_by = [
                "Please re-run using with -vvv and file a bug with the output",
                f"at {constants.BUG_URL}",
            ]

        # Code that actually renders the exception
        output = sys.stderr
        output.write(f"{general}\n")
        output.write(f"{detail}\n\n")
        for cause in caused_by:
            output.write(f"	* {cause}\n")
        output.write("\nNo further results will be produced\n")
        sys.exit(1)

    def order_extra_verbose_levels(self):
        for level, level_value in enumerate(
            [
                constants.LOGLEVEL_V,
                constants.LOGLEVEL_VV,
                constants.LOGLEVEL_VVV,
                constants.LOGLEVEL_VVVV,
            ]
        ):
            logging.addLevelName(level_value, f"DETAIL {level+1}")


def main():
    """A convenience function for constructing and running the
    :class:`CommandLine`'s run method."""
    sys.exit(CommandLine().run())
