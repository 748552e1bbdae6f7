#!/usr/bin/env python3
"""CLI entry point for staticfile-compiler.

Commands, as invoked by the platform through bin/ shims:
- detect:  bin/detect <build_dir>
- compile: bin/compile <build_dir> <cache_dir>
- release: bin/release <build_dir>

Exit codes are stable; see errors.py.
"""

import argparse
import logging
import sys
from pathlib import Path

from config import CompilerSettings, ConfigError
from detector import DETECT_TAG, Detection, detect
from errors import EXIT_INTERNAL, EXIT_SUCCESS
from launch import release_metadata
from reporting.buildlog import configure_logging
from staging import StagingOrchestrator

logger = logging.getLogger(__name__)

COMMANDS = {
    "detect": "Report whether this compiler applies to an application tree",
    "compile": "Stage an application tree into a launchable static site",
    "release": "Print default process types for a compiled tree",
}


def print_usage():
    """Print top-level usage."""
    print("staticfile-compiler")
    print()
    print("Usage: staticfile-compiler <command> [options]")
    print()
    print("Commands:")
    for command, desc in COMMANDS.items():
        print(f"  {command:<12} {desc}")
    print()
    print("Run 'staticfile-compiler <command> --help' for command-specific options.")


def detect_main(argv: list) -> int:
    parser = argparse.ArgumentParser(prog='staticfile-compiler detect', description=COMMANDS['detect'])
    parser.add_argument('build_dir', type=Path, help='Application source tree')
    parser.add_argument(
        '--fallback',
        action='store_true',
        help='Also claim trees without a Staticfile that look like plain static sites'
    )
    args = parser.parse_args(argv)

    if detect(args.build_dir, fallback=args.fallback) is Detection.APPLICABLE:
        print(DETECT_TAG)
        return EXIT_SUCCESS
    print("no")
    return 1


def compile_main(argv: list) -> int:
    parser = argparse.ArgumentParser(prog='staticfile-compiler compile', description=COMMANDS['compile'])
    parser.add_argument('build_dir', type=Path, help='Application source tree (modified in place)')
    parser.add_argument('cache_dir', type=Path, help='Cache directory kept between compiles')
    parser.add_argument(
        '--strict',
        action='store_true',
        help='Fail when the Staticfile is missing instead of using defaults'
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output the build outcome as JSON to stdout (logs go to stderr)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )
    args = parser.parse_args(argv)

    try:
        settings = CompilerSettings.from_env()
    except ConfigError as e:
        configure_logging(stream=sys.stderr if args.json_output else None)
        logger.error(str(e))
        return EXIT_INTERNAL

    if args.strict:
        settings.strict = True

    configure_logging(
        verbose=args.verbose or settings.debug,
        stream=sys.stderr if args.json_output else None,
    )

    args.cache_dir.mkdir(parents=True, exist_ok=True)
    orchestrator = StagingOrchestrator(args.build_dir, args.cache_dir, settings)
    outcome = orchestrator.run()

    if args.json_output:
        print(outcome.to_json())

    return outcome.exit_code


def release_main(argv: list) -> int:
    parser = argparse.ArgumentParser(prog='staticfile-compiler release', description=COMMANDS['release'])
    parser.add_argument('build_dir', type=Path, help='Compiled application tree')
    args = parser.parse_args(argv)

    sys.stdout.write(release_metadata(args.build_dir))
    return EXIT_SUCCESS


HANDLERS = {
    "detect": detect_main,
    "compile": compile_main,
    "release": release_main,
}


def main(argv=None):
    """CLI entry point - dispatch to command handlers."""
    argv = sys.argv[1:] if argv is None else argv

    if not argv or argv[0] in ('-h', '--help'):
        print_usage()
        return EXIT_SUCCESS

    command = argv[0]
    if command not in HANDLERS:
        print(f"Error: Unknown command '{command}'")
        print_usage()
        return 1

    return HANDLERS[command](argv[1:])


if __name__ == '__main__':
    sys.exit(main())
