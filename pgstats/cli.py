"""CLI entry points for pgstats and the per-utility commands."""

from __future__ import annotations

import argparse
import logging
import os
import sys

from pgstats import __version__
from pgstats.errors import (
    ConfigError,
    ConnectionFailed,
    Interrupted,
    PgStatsError,
    QueryFailed,
    SinkError,
    TargetGone,
)

# Command name -> standalone executable name
TOOLS = {
    "csvstat": "pgcsvstat",
    "stat": "pgstat",
    "report": "pgreport",
    "waitevent": "pgwaitevent",
    "fsm": "pgdisplay",
}

_DESCRIPTIONS = {
    "csvstat": "Append a snapshot of every statistics view to CSV files.",
    "stat": "Print vmstat-like per-interval deltas of one statistics domain.",
    "report": "Print a report on the cluster, or a SQL script producing it.",
    "waitevent": "Trace the wait events of every query run by a backend.",
    "fsm": "Display the free space map of a relation as colored cells.",
}

# Exit status of the snapshotter on query and file errors
SNAPSHOT_FAILURE = -1


class _Parser(argparse.ArgumentParser):
    """Argument errors are configuration errors, exiting with status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        raise ConfigError(message)


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: {text!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {text!r}")
    return value


def _non_negative_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {text!r}")
    return value


def _add_common_args(parser: argparse.ArgumentParser, prog: str):
    parser.add_argument("--help", "-?", action="help", help="Show this help, then exit")
    parser.add_argument(
        "--version", "-V", action="version", version=f"{prog} {__version__}",
        help="Output version information, then exit",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Print progress")
    parser.add_argument("--config", default=None, help="Path to a pgstats.yaml file")

    grp = parser.add_argument_group("connection")
    grp.add_argument("-h", "--host", default=None, help="Database server host or socket directory")
    grp.add_argument("-p", "--port", type=_positive_int, default=None, help="Database server port")
    grp.add_argument("-U", "--user", default=None, help="Database user name")
    grp.add_argument("-d", "--dbname", default=None, help="Database name to connect to")


def _add_csvstat_args(parser: argparse.ArgumentParser):
    parser.add_argument("-D", "--directory", default=None, help="Output directory (default: ./)")
    parser.add_argument(
        "-q", "--quiet", action="store_true", default=None,
        help="Do not write the CSV header nor the detected release",
    )


def _add_stat_args(parser: argparse.ArgumentParser):
    parser.add_argument("-s", "--stat", default=None, help="Statistics domain (default: bgwriter)")
    parser.add_argument("-f", "--filter", default=None, help="Include only this object")
    parser.add_argument(
        "-H", "--human-readable", action="store_true", default=None,
        help="Print byte counters in human readable units",
    )
    parser.add_argument(
        "-n", "--no-redisplay-header", action="store_true", default=None,
        help="Do not redisplay the header",
    )
    parser.add_argument("delay", nargs="?", type=_positive_int, help="Seconds between samples")
    parser.add_argument("count", nargs="?", type=_positive_int, help="Number of samples")


def _add_report_args(parser: argparse.ArgumentParser):
    parser.add_argument(
        "-s", "--script", default=None, metavar="VERSION",
        help="Print a SQL script for a MAJOR.MINOR server instead of running the report",
    )


def _add_waitevent_args(parser: argparse.ArgumentParser):
    parser.add_argument(
        "-g", "--include-leader-workers", action="store_true", default=None,
        help="Include the wait events of the leader and its parallel workers",
    )
    parser.add_argument(
        "-i", "--interval", type=_non_negative_float, default=None,
        help="Sampling interval in seconds (default: 1)",
    )
    parser.add_argument("pid", type=int, help="PID of the backend to trace")


def _add_fsm_args(parser: argparse.ArgumentParser):
    parser.add_argument("-t", "--table", required=True, help="Relation to display")
    parser.add_argument(
        "-G", "--groups", type=_positive_int, default=None,
        help="Number of block groups (default: 20)",
    )


_COMMAND_ARGS = {
    "csvstat": _add_csvstat_args,
    "stat": _add_stat_args,
    "report": _add_report_args,
    "waitevent": _add_waitevent_args,
    "fsm": _add_fsm_args,
}


def build_command_parser(command: str, prog: str | None = None) -> argparse.ArgumentParser:
    """Parser of one utility, as used by its standalone executable."""
    prog = prog or TOOLS[command]
    parser = _Parser(prog=prog, description=_DESCRIPTIONS[command], add_help=False)
    _add_common_args(parser, prog)
    _COMMAND_ARGS[command](parser)
    parser.set_defaults(command=command)
    return parser


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="pgstats",
        description="Statistics, reporting and tracing utilities for PostgreSQL.",
        add_help=False,
    )
    parser.add_argument("--help", "-?", action="help", help="Show this help, then exit")
    parser.add_argument("--version", "-V", action="version", version=f"pgstats {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    for command, add_args in _COMMAND_ARGS.items():
        sub = subparsers.add_parser(
            command, help=_DESCRIPTIONS[command], description=_DESCRIPTIONS[command], add_help=False
        )
        _add_common_args(sub, TOOLS[command])
        add_args(sub)
    return parser


def configure_logging(prog: str, verbose: bool):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=f"{prog}: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def main(argv: list[str] | None = None, command: str | None = None):
    raw_args = argv if argv is not None else sys.argv[1:]
    if command is not None:
        parser = build_command_parser(command)
    else:
        parser = build_parser()
        if not raw_args:
            parser.print_help()
            sys.exit(1)

    try:
        args = parser.parse_args(raw_args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(e.exit_code)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    prog = TOOLS[args.command]
    configure_logging(prog, args.verbose)

    handlers = {
        "csvstat": _cmd_csvstat,
        "stat": _cmd_stat,
        "report": _cmd_report,
        "waitevent": _cmd_waitevent,
        "fsm": _cmd_fsm,
    }
    from pgstats.config import load_config

    try:
        config = load_config(args.config)
        handlers[args.command](args, config)
    except (Interrupted, TargetGone) as e:
        # already reported on stdout, or a plain SIGINT
        sys.exit(e.exit_code)
    except PgStatsError as e:
        _print_error(e)
        sys.exit(e.exit_code)


def _print_error(e: PgStatsError):
    print(f"Error: {e}", file=sys.stderr)
    if isinstance(e, QueryFailed):
        print(f"query was: {e.sql}", file=sys.stderr)


def _with_connection(args, config, body, readonly: bool = True, watch_resize: bool = False):
    """Connect, run ``body(conn, flags, settings)``, close the connection on every path."""
    from pgstats.config import merge_connection
    from pgstats.connection import cancel_on_shutdown, close_quietly, connect, connection_hint
    from pgstats.signals import SignalFlags, install_handlers

    settings = merge_connection(config, args.host, args.port, args.user, args.dbname)
    flags = SignalFlags()
    restore = install_handlers(flags, watch_resize=watch_resize)
    cancel_on_shutdown(flags)
    conn = None
    try:
        try:
            conn = connect(
                host=settings.host,
                port=settings.port,
                dbname=settings.dbname,
                user=settings.user,
                application_name=TOOLS[args.command],
                readonly=readonly,
            )
        except ConnectionFailed as e:
            error_msg = str(e)
            print("Error: Could not connect to database.", file=sys.stderr)
            print(f"       {error_msg}", file=sys.stderr)
            hint = connection_hint(error_msg, settings.host, settings.port)
            if hint:
                print(f"\nHint: {hint}", file=sys.stderr)
            sys.exit(e.exit_code)
        body(conn, flags, settings)
    finally:
        close_quietly(conn)
        restore()


def _cmd_csvstat(args, config):
    from pgstats.config import pick
    from pgstats.snapshotter import run_snapshot

    directory = pick(args.directory, config.csvstat.directory)
    quiet = pick(args.quiet, config.csvstat.quiet)
    if not os.path.isdir(directory):
        raise ConfigError(f"directory {directory} does not exist")

    def body(conn, flags, settings):
        try:
            run_snapshot(conn, directory=directory, quiet=quiet)
        except (QueryFailed, SinkError) as e:
            _print_error(e)
            sys.exit(SNAPSHOT_FAILURE)

    _with_connection(args, config, body)


def _cmd_stat(args, config):
    from pgstats.catalog.monitor import CONSOLE_COMMANDS, MONITOR_TEMPLATES, MONITORED_DOMAINS
    from pgstats.config import pick
    from pgstats.models import Domain
    from pgstats.monitor.collector import StatOptions, run_monitor
    from pgstats.monitor.sampler import SamplerOptions
    from pgstats.signals import stdout_is_tty

    stat = pick(args.stat, config.stat.stat)
    try:
        domain = Domain.from_name(stat)
    except ValueError:
        raise ConfigError(f"unknown statistic: {stat}") from None
    if domain not in MONITORED_DOMAINS:
        raise ConfigError(f"unknown statistic: {stat}")
    template = MONITOR_TEMPLATES.get(domain)
    if args.filter is not None and (template is None or not template.filter_column):
        raise ConfigError(f"the {domain.value} statistic does not accept a filter")

    interval = pick(args.delay, config.stat.interval)
    count = pick(args.count, config.stat.count)
    for name, value in (("delay", interval), ("count", count)):
        if value is not None and (not isinstance(value, int) or value <= 0):
            raise ConfigError(f"{name} must be a positive integer")

    options = StatOptions(
        domain=domain,
        filter=args.filter,
        human_readable=bool(pick(args.human_readable, config.stat.human_readable)),
    )
    sampler_options = SamplerOptions(
        interval=interval,
        count=count,
        redisplay_header=not pick(args.no_redisplay_header, config.stat.no_redisplay_header),
    )

    def body(conn, flags, settings):
        run_monitor(conn, options, sampler_options, flags)

    # the pgBouncer admin console rejects the SET a read-only session sends
    readonly = domain not in CONSOLE_COMMANDS
    _with_connection(args, config, body, readonly=readonly, watch_resize=stdout_is_tty())


def _cmd_report(args, config):
    from pgstats.config import merge_connection
    from pgstats.reporters.report_renderer import render_script, run_report
    from pgstats.version import parse_script_version

    exclude = config.report.exclude

    if args.script is not None:
        version = parse_script_version(args.script)
        settings = merge_connection(config, args.host, args.port, args.user, args.dbname)
        sys.stdout.write(render_script(version, settings.dbname, exclude))
        return

    def body(conn, flags, settings):
        run_report(conn, settings.dbname, exclude, flags)

    _with_connection(args, config, body, readonly=False)


def _cmd_waitevent(args, config):
    from pgstats.config import pick
    from pgstats.tracer.tracer import run_tracer

    interval = pick(args.interval, config.waitevent.interval)
    if interval is None or interval < 0:
        raise ConfigError("interval must not be negative")
    include_workers = bool(pick(args.include_leader_workers, config.waitevent.include_leader_workers))

    def body(conn, flags, settings):
        run_tracer(conn, args.pid, flags, interval, include_workers)

    _with_connection(args, config, body, readonly=False)


def _cmd_fsm(args, config):
    from pgstats.config import pick
    from pgstats.fsm import display_fsm

    groups = pick(args.groups, config.fsm.groups)
    if not isinstance(groups, int) or groups <= 0:
        raise ConfigError("groups must be a positive integer")

    def body(conn, flags, settings):
        display_fsm(conn, args.table, groups)

    _with_connection(args, config, body)


def pgcsvstat_main(argv: list[str] | None = None):
    main(argv, command="csvstat")


def pgstat_main(argv: list[str] | None = None):
    main(argv, command="stat")


def pgreport_main(argv: list[str] | None = None):
    main(argv, command="report")


def pgwaitevent_main(argv: list[str] | None = None):
    main(argv, command="waitevent")


def pgdisplay_main(argv: list[str] | None = None):
    main(argv, command="fsm")
