#!/usr/bin/env python
#
# Command line tool to take in Unikraft Kconfig files and .config files with
# project settings, and output data in multiple formats (updated .config, JSON
# menu tree, dependency map, preprocessed Kconfig, configuration report as JSON
# or text).
#
# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
import argparse
import json
import os.path
import sys
import tempfile
from typing import List
from typing import Optional

from kraft_kconfig import __version__
from ukconfiglib import DotConfigFile
from ukconfiglib import KConfigFile
from ukconfiglib import KconfigError
from ukconfiglib import KConfigValues
from ukconfiglib import KeyValueMap
from ukconfiglib import MissingMainmenuPolicy
from ukconfiglib import env_lookup
from ukconfiglib import parse
from ukconfiglib import parse_config
from ukconfiglib import preamble_env
from ukconfiglib import preprocess_file


class FatalError(RuntimeError):
    """
    Class for runtime errors (not caused by bugs but by user input).
    """

    pass


class ConfigState:
    """
    Everything the output functions may need: the parsed Kconfig tree (None if the
    Kconfig file has no mainmenu and the "empty" policy is used), the .config values
    and the options the Kconfig file was parsed with.
    """

    def __init__(
        self,
        kconfig: str,
        env: KeyValueMap,
        kconfig_file: Optional[KConfigFile],
        dot_config: DotConfigFile,
        timeout: Optional[float] = None,
    ) -> None:
        self.kconfig = kconfig
        self.env = env
        self.kconfig_file = kconfig_file
        self.dot_config = dot_config
        self.timeout = timeout


def write_config(state: ConfigState, filename: str) -> None:
    with open(filename, "w", encoding="utf-8") as f:
        f.write(state.dot_config.serialize())


def write_json(state: ConfigState, filename: str) -> None:
    tree = state.kconfig_file.to_dict() if state.kconfig_file is not None else {}
    with open(filename, "w", encoding="utf-8") as f:
        json.dump(tree, f, indent=4)


def write_deps(state: ConfigState, filename: str) -> None:
    deps = {}
    if state.kconfig_file is not None:
        deps = {name: sorted(names) for name, names in state.kconfig_file.resolve_all().items()}
    with open(filename, "w", encoding="utf-8") as f:
        json.dump(deps, f, indent=4, sort_keys=True)


def write_preprocessed(state: ConfigState, filename: str) -> None:
    # Assignments of the file must not leak into the environment used for parsing
    env = KeyValueMap(state.env)
    preamble_env(env, timeout=state.timeout)
    text = preprocess_file(state.kconfig, env, timeout=state.timeout)
    with open(filename, "w", encoding="utf-8") as f:
        f.write(text)


def write_report(state: ConfigState, filename: str) -> None:
    if state.kconfig_file is None:
        with open(filename, "w", encoding="utf-8") as f:
            json.dump({}, f)
        return
    state.kconfig_file.report.output_json(filename)


def write_report_text(state: ConfigState, filename: str) -> None:
    if state.kconfig_file is None:
        with open(filename, "w", encoding="utf-8"):
            pass
        return
    state.kconfig_file.report.print_report(filename)


def update_if_changed(source: str, destination: str) -> None:
    with open(source, "r", encoding="utf-8") as f:
        source_contents = f.read()

    if os.path.exists(destination):
        with open(destination, "r", encoding="utf-8") as f:
            dest_contents = f.read()
        if source_contents == dest_contents:
            return  # nothing to update

    with open(destination, "w", encoding="utf-8") as f:
        f.write(source_contents)


OUTPUT_FORMATS = {
    "config": write_config,
    "json": write_json,
    "deps": write_deps,
    "preprocessed": write_preprocessed,
    "report": write_report,
    "report-text": write_report_text,
}


def _load_env(env_args: List[str], env_file) -> KeyValueMap:
    for e in env_args:
        if "=" not in e:
            raise FatalError("--env arguments must each contain =. To bind an empty value, use 'NAME='")
    env = KeyValueMap.from_strings(*env_args)

    if env_file is not None:
        try:
            values = json.load(env_file)
        except ValueError as e:
            raise FatalError(f"--env-file {env_file.name} is not valid JSON: {e}")
        if not isinstance(values, dict):
            raise FatalError(f"--env-file {env_file.name} must contain a JSON object")
        env.override_by(KeyValueMap.from_map(values))
    return env


def _apply_values(args: argparse.Namespace, kconfig_file: Optional[KConfigFile], dot_config: DotConfigFile) -> None:
    values = KConfigValues.from_strings(*args.set).resolve(env_lookup)
    unresolved = [name for name, cfg in values.items() if cfg is None]
    if unresolved:
        raise FatalError(
            "--set arguments without a value must name an environment variable: {}".format(", ".join(unresolved))
        )

    if kconfig_file is not None:
        for name, cfg in values.items():
            if name not in kconfig_file.configs:
                print(f"warning: unknown kconfig symbol '{name}' assigned to '{cfg.value}'", file=sys.stderr)

    values.apply(dot_config)
    for name in args.unset:
        dot_config.unset(name)

    if args.mod_to_yes:
        dot_config.mod_to_yes()
    if args.mod_to_no:
        dot_config.mod_to_no()


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="ukconfgen v%s - Unikraft Config Generation Tool" % __version__,
        prog=os.path.basename(sys.argv[0]),
    )

    parser.add_argument("--kconfig", help="KConfig file with config item definitions", required=True)

    parser.add_argument("--config", help="Project configuration settings (.config file)", nargs="?", default=None)

    parser.add_argument(
        "--output",
        nargs=2,
        action="append",
        help="Write output file (format and output filename)",
        metavar=("FORMAT", "FILENAME"),
        default=[],
    )

    parser.add_argument(
        "--env",
        action="append",
        default=[],
        help="Environment to set when evaluating the config file",
        metavar="NAME=VAL",
    )

    parser.add_argument(
        "--env-file",
        type=argparse.FileType("r"),
        help="Optional file to load environment variables from. Contents "
        "should be a JSON object where each key/value pair is a variable.",
    )

    parser.add_argument(
        "--set",
        action="append",
        default=[],
        help="Set a config value (name without the CONFIG_ prefix). "
        "NAME alone takes the value of the environment variable NAME.",
        metavar="NAME=VALUE",
    )

    parser.add_argument(
        "--unset",
        action="append",
        default=[],
        help="Mark a config present in the .config file as not set",
        metavar="NAME",
    )

    parser.add_argument("--mod-to-yes", help="Turn every module (m) value into y", action="store_true")

    parser.add_argument("--mod-to-no", help="Turn every module (m) value into not set", action="store_true")

    parser.add_argument(
        "--missing-mainmenu",
        choices=[policy.value for policy in MissingMainmenuPolicy],
        default=None,
        help="What to do with a Kconfig file without a mainmenu. "
        "Defaults to $UKCONFIG_MISSING_MAINMENU or 'error'.",
    )

    parser.add_argument("--no-preprocess", help="Do not expand macros in Kconfig files", action="store_true")

    parser.add_argument(
        "--reverse-dependencies",
        help="Make the targets of select/imply depend on the selecting config",
        action="store_true",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Timeout in seconds for commands run by $(shell, ...). Waits forever by default.",
    )

    parser.add_argument("--report", help="Print the configuration report to stderr", action="store_true")

    args = parser.parse_args(argv)

    for fmt, filename in args.output:
        if fmt not in OUTPUT_FORMATS.keys():
            raise FatalError("Format '%s' not recognised. Known formats: %s" % (fmt, ", ".join(OUTPUT_FORMATS)))

    env = _load_env(args.env, args.env_file)

    try:
        kconfig_file = parse(
            args.kconfig,
            env,
            preprocess=not args.no_preprocess,
            missing_mainmenu=args.missing_mainmenu,
            reverse_dependencies=args.reverse_dependencies,
            timeout=args.timeout,
        )

        # If previous .config file exists, load it
        if args.config and os.path.exists(args.config):
            dot_config = parse_config(args.config)
        else:
            dot_config = DotConfigFile()

        _apply_values(args, kconfig_file, dot_config)

        state = ConfigState(args.kconfig, env, kconfig_file, dot_config, timeout=args.timeout)
        if kconfig_file is not None:
            # Dependency loops are only found (and reported) once resolved
            kconfig_file.resolve_all()
            if args.report:
                kconfig_file.report.print_report()

        # Output the files specified in the arguments
        for output_type, filename in args.output:
            with tempfile.NamedTemporaryFile(prefix="ukconfgen_tmp", delete=False) as f:
                temp_file = f.name
            try:
                output_function = OUTPUT_FORMATS[output_type]
                output_function(state, temp_file)
                update_if_changed(temp_file, filename)
            finally:
                try:
                    os.remove(temp_file)
                except OSError:
                    pass
    except KconfigError as e:
        print(e, file=sys.stderr)
        sys.exit(1)
