#!/usr/bin/python3 -B
import argparse
import sys
import textwrap
import traceback
from typing import NoReturn, Optional, Sequence

from debpack import DEFAULT_CONTROL_DIR, DEFAULT_MANIFEST, DEFAULT_STAGING_DIR
from debpack.build import BuildConfig, build_deb
from debpack.control_fields import ControlFieldOverride, parse_control_override
from debpack.exceptions import DebpackFormatError, DebpackRuntimeError
from debpack.external_tools import SubprocessToolRunner
from debpack.output import output_styling
from debpack.util import (
    ColorizedArgumentParser,
    _check_color,
    _error,
    _info,
    _warn,
    program_name,
    setup_logging,
)
from debpack.version import __version__


def _control_override_arg(raw: str) -> ControlFieldOverride:
    try:
        return parse_control_override(raw)
    except DebpackFormatError as e:
        raise argparse.ArgumentTypeError(e.message) from e


def _compression_level_arg(raw: str) -> int:
    try:
        level = int(raw)
    except ValueError:
        level = -1
    if not 0 <= level <= 9:
        raise argparse.ArgumentTypeError(
            f'Invalid compression level "{raw}": Must be a number between 0 and 9'
        )
    return level


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    description = textwrap.dedent(
        """\
    Build a Debian binary package (.deb) from a manifest of files.

    Each line of the manifest has the form "<source><TAB><destination>", where
    the source is a path or glob relative to the current directory and the
    destination is the absolute path of the file once the package is installed.
    Empty lines and lines starting with "#" are ignored.

    Fields given as "Key:Value" arguments are written to the control file,
    replacing any existing field of the same name.

    The package is assembled with dpkg-deb and renamed with dpkg-name.
    """
    )

    parser = ColorizedArgumentParser(
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        prog=program_name(),
    )

    parser.add_argument("--version", action="version", version=f"{__version__}")
    parser.add_argument(
        "-d",
        dest="control_dir",
        metavar="PATH",
        default=DEFAULT_CONTROL_DIR,
        help="Directory with the control files (control, postinst, ...) to include in DEBIAN"
        f" (default: {DEFAULT_CONTROL_DIR})",
    )
    parser.add_argument(
        "-f",
        dest="manifest_path",
        metavar="FILE",
        default=DEFAULT_MANIFEST,
        help='The manifest listing the content of the package. Use "-" to read it from'
        f" standard input (default: {DEFAULT_MANIFEST})",
    )
    parser.add_argument(
        "--staging-dir",
        dest="staging_dir",
        metavar="DIR",
        default=DEFAULT_STAGING_DIR,
        help="Where the package tree is assembled. Any existing content is *deleted*"
        f" (default: {DEFAULT_STAGING_DIR})",
    )
    parser.add_argument(
        "--output-dir",
        dest="output_dir",
        metavar="DIR",
        default=".",
        help="Where the resulting deb should be placed (default: current directory)",
    )
    parser.add_argument(
        "--compression-level",
        dest="compression_level",
        metavar="LEVEL",
        type=_compression_level_arg,
        default=9,
        help="The gzip compression level passed to dpkg-deb (default: 9)",
    )
    parser.add_argument(
        "--debug",
        dest="debug_mode",
        action="store_true",
        default=False,
        help="Show the full stack trace when something goes wrong",
    )
    parser.add_argument(
        "control_fields",
        metavar="Key:Value",
        nargs="*",
        type=_control_override_arg,
        help="A control field to set in DEBIAN/control (such as Version:1.0-1)",
    )

    return parser.parse_args(argv)


def config_from_args(parsed_args: argparse.Namespace) -> BuildConfig:
    return BuildConfig(
        control_dir=parsed_args.control_dir,
        manifest_path=parsed_args.manifest_path,
        overrides=tuple(parsed_args.control_fields),
        staging_dir=parsed_args.staging_dir,
        output_dir=parsed_args.output_dir,
        compression_level=parsed_args.compression_level,
    )


def _error_w_stack_trace(
    warning: str,
    error_msg: str,
    stacktrace: BaseException,
    debug_mode: bool,
) -> "NoReturn":
    if debug_mode:
        _warn(
            "Re-raising original exception to show the full stack trace due to debug mode being active"
        )
        raise stacktrace
    _warn(warning)
    _warn("  ----- 8< ---- BEGIN STACK TRACE ---- 8< -----")
    traceback.print_exception(stacktrace)
    _warn("  ----- 8< ---- END STACK TRACE ---- 8< -----")
    _error(error_msg)


def main(argv: Optional[Sequence[str]] = None) -> None:
    setup_logging()
    parsed_args = parse_args(argv)
    config = config_from_args(parsed_args)
    stdout_color, _, _ = _check_color()
    fancy_output = output_styling(sys.stdout, use_color=stdout_color)
    try:
        result = build_deb(config, SubprocessToolRunner(), fancy_output)
    except DebpackRuntimeError as e:
        if parsed_args.debug_mode:
            _warn(
                "Re-raising original exception to show the full stack trace due to debug mode being active"
            )
            raise e
        _error(e.message)
    except OSError as e:
        _error_w_stack_trace(
            "Unhandled file system error (Re-run with --debug to see the raw stack trace)",
            str(e),
            e,
            parsed_args.debug_mode,
        )
    if result.deb_path is not None:
        _info(f'Successfully built "{result.deb_path}"')
    else:
        _info("Successfully built the package")


if __name__ == "__main__":
    main()
