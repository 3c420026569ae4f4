# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
"""
Macro handlers for $(handler, arg, ...) references.

Handlers are plain callables taking a MacroContext and the comma-separated
arguments following the handler name. They return the text substituted for
the reference. The table of handlers is passed to Preprocessor and LineScanner
objects on construction, so callers (and tests) can add or replace handlers
without touching any global state.
"""

import subprocess
from dataclasses import dataclass
from typing import Callable
from typing import Dict
from typing import Optional

from .errors import PreprocessorError


@dataclass
class MacroContext:
    file: str
    linenr: int
    cwd: Optional[str] = None
    timeout: Optional[float] = None
    warn: Optional[Callable[[str], None]] = None


Handler = Callable[..., str]


def shell_handler(ctx: MacroContext, *args: str) -> str:
    # Arguments were split on commas, which may be a part of the command
    command = ",".join(args).strip()
    if not command:
        raise PreprocessorError("shell: missing command")

    try:
        result = subprocess.run(
            ["sh", "-c", command],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=ctx.cwd or None,
            timeout=ctx.timeout,
        )
    except subprocess.TimeoutExpired:
        raise PreprocessorError(f"'{command}' did not finish within {ctx.timeout} seconds")
    except OSError as e:
        raise PreprocessorError(f"could not run '{command}': {e}")

    stdout = result.stdout.decode("utf-8", errors="replace")
    stderr = result.stderr.decode("utf-8", errors="replace")
    if result.returncode != 0:
        raise PreprocessorError(
            "'{}' exited with status {}: {}".format(command, result.returncode, "\\n".join(stderr.splitlines()))
        )
    if stderr and ctx.warn:
        ctx.warn("'{}' wrote to stderr: {}".format(command, "\\n".join(stderr.splitlines())))

    # Universal newlines with splitlines(), newline-to-space conversion and trimming
    return " ".join(stdout.splitlines()).strip()


def info_handler(ctx: MacroContext, *args: str) -> str:
    print(f"{ctx.file}:{ctx.linenr}: {','.join(args).strip()}")
    return ""


def warning_if_handler(ctx: MacroContext, *args: str) -> str:
    cond, msg = _condition_and_message("warning-if", args)
    if cond == "y" and ctx.warn:
        ctx.warn(msg)
    return ""


def error_if_handler(ctx: MacroContext, *args: str) -> str:
    cond, msg = _condition_and_message("error-if", args)
    if cond == "y":
        raise PreprocessorError(msg)
    return ""


def _condition_and_message(name, args):
    if len(args) < 2:
        raise PreprocessorError(f"'{name}' expects a condition and a message, got {len(args)} argument(s)")
    return args[0].strip(), ",".join(args[1:]).strip()


DEFAULT_HANDLERS: Dict[str, Handler] = {
    "shell": shell_handler,
    "info": info_handler,
    "warning-if": warning_if_handler,
    "error-if": error_if_handler,
}


def make_handlers(handlers: Optional[Dict[str, Handler]] = None) -> Dict[str, Handler]:
    """
    Return the default handler table updated with 'handlers'.
    """
    table = dict(DEFAULT_HANDLERS)
    if handlers:
        table.update(handlers)
    return table
