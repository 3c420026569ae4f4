# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
"""
Macro preprocessor for Kconfig files.

The preprocessor works on raw text, before the Kconfig grammar is parsed. It
understands a small dialect of the Make/Kconfig macro language:

    NAME := VALUE        assignment, stored into the (shared) environment
    $(NAME)              environment lookup, fails if NAME is undefined
    $(handler, arg, ...) call of a registered handler (e.g. "shell")
    # ...                comment, macros are not expanded in the rest of the line
    \\ at end of line     line continuation

Substitutions may be nested, e.g. $(shell, ls $(UK_BASE)).
"""

import os
import sys
from typing import Dict
from typing import Iterator
from typing import List
from typing import Optional
from typing import Tuple

from .constants import ENV_DEBUG
from .errors import KconfigError
from .errors import PreprocessorError
from .errors import io_error
from .key_value import KeyValueMap
from .macros import Handler
from .macros import MacroContext
from .macros import make_handlers

# Derived paths of the UK_BASE-rooted source tree layout. UK_APP, BUILD_DIR,
# ELIB_DIR and EPLAT_DIR may be left empty by the caller.
MAKEFILE_PREAMBLE = r"""
CONFIG_UK_BASE        := $(UK_BASE)
CONFIG_UK_APP         := $(UK_APP)
CONFIG_UK_PLAT        := $(CONFIG_UK_BASE)/plat/
CONFIG_UK_LIB         := $(CONFIG_UK_BASE)/lib/
CONFIG_CONFIG_IN      := $(CONFIG_UK_BASE)/Config.uk
CONFIG                := $(CONFIG_UK_BASE)/support/kconfig
CONFIGLIB             := $(CONFIG_UK_BASE)/support/kconfiglib
UK_CONFIG_OUT         := $(BUILD_DIR)/config
UK_GENERATED_INCLUDES := $(BUILD_DIR)/include
KCONFIG_DIR           := $(BUILD_DIR)/kconfig
UK_FIXDEP             := $(KCONFIG_DIR)/fixdep
KCONFIG_AUTOCONFIG    := $(KCONFIG_DIR)/auto.conf
KCONFIG_TRISTATE      := $(KCONFIG_DIR)/tristate.config
KCONFIG_AUTOHEADER    := $(UK_GENERATED_INCLUDES)/uk/_config.h
KCONFIG_APP_DIR       := $(CONFIG_UK_APP)
KCONFIG_LIB_IN        := $(KCONFIG_DIR)/libs.uk
KCONFIG_DEF_PLATS     := $(shell, find $(CONFIG_UK_PLAT)/* -maxdepth 0 \
                         -type d \( -path $(CONFIG_UK_PLAT)/common -o \
                         -path $(CONFIG_UK_PLAT)/drivers \
                         \) -prune -o -type d -print 2>/dev/null || true)
KCONFIG_LIB_DIR       := $(shell, find $(CONFIG_UK_LIB)/* -maxdepth 0 -type d 2>/dev/null || true) \
                         $(CONFIG_UK_BASE)/lib $(ELIB_DIR)
KCONFIG_PLAT_DIR      := $(KCONFIG_DEF_PLATS) $(EPLAT_DIR) $(CONFIG_UK_PLAT)
KCONFIG_PLAT_IN       := $(KCONFIG_DIR)/plat.uk

# Makefile support scripts
SCRIPTS_DIR           := $(CONFIG_UK_BASE)/support/scripts
"""

# Variables the preamble refers to which are optional for callers
_PREAMBLE_OPTIONAL = ("UK_APP", "BUILD_DIR", "ELIB_DIR", "EPLAT_DIR")


class Preprocessor:
    """
    Expands macros in 'data' (contents of 'file') using and updating 'env'.

    env:
      KeyValueMap shared with every other preprocessor/parser taking part in the
      same parse. It is updated in place by assignments.

    handlers:
      Extra handlers for $(name, ...) references, merged over the default table.

    timeout:
      Timeout (seconds) for subprocesses started by handlers. None waits forever.

    cwd:
      Working directory for subprocesses. Defaults to the directory of 'file'.
    """

    def __init__(
        self,
        data: str,
        file: str,
        env: Optional[KeyValueMap] = None,
        handlers: Optional[Dict[str, Handler]] = None,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
        warn: bool = True,
        warn_to_stderr: bool = True,
    ) -> None:
        self.data = data
        self.file = file
        self.env = env if env is not None else KeyValueMap()
        self.handlers = make_handlers(handlers)
        self.timeout = timeout
        self.cwd = cwd if cwd is not None else (os.path.dirname(file) or None)

        self.warn = warn
        self.warn_to_stderr = warn_to_stderr
        self.warnings: List[str] = []
        self.info = os.environ.get(ENV_DEBUG) == "y"

        self.error: Optional[str] = None
        self.linenr = 0
        self._current = ""
        self._col = 0
        self._in_comment = False
        self._is_assignment = False
        # Output buffers, one per open substitution on top of the line buffer
        self._stack: List[List[str]] = []

    def process(self) -> str:
        """
        Return the expanded text, or raise PreprocessorError.
        """
        return "".join(f"{text}\n" for _, text in self.iter_lines())

    def iter_lines(self) -> Iterator[Tuple[int, str]]:
        """
        Generate (line number, expanded text) for every logical line. Lines are
        expanded lazily, so assignments made by other files between two lines
        (e.g. by a sourced file) are visible to the following lines.
        """
        lines = self.data.splitlines()
        i = 0
        while i < len(lines):
            start = i + 1
            line = lines[i]
            i += 1
            while line.endswith("\\") and i < len(lines):
                line = line[:-1] + lines[i]
                i += 1
            self.linenr = i
            yield start, self._process_line(line)

    def _process_line(self, line: str) -> str:
        self._current = line
        self._col = 0
        self._in_comment = False
        self._is_assignment = False
        self._stack = [[]]

        self._parse_line()
        if self.error is None and len(self._stack) > 1:
            self._fail("unterminated substitution")
        if self.error is None and self._is_assignment:
            self._handle_assignment()

        if self.error is not None:
            raise PreprocessorError(self.error)

        return "".join(self._stack[0])

    def _parse_line(self) -> None:
        while self.error is None and self._col < len(self._current):
            c = self._current[self._col]
            if self._in_comment:
                self._char()
            elif c == "#" and not self._in_substitution():
                self._in_comment = True
                self._char()
            elif c == "$":
                self._col += 1
                if self._peek() == "(":
                    self._col += 1
                    self._stack.append([])
                else:
                    self._write("$")
            elif c == ":":
                self._char()
                if not self._in_substitution() and self._peek() == "=":
                    self._char()
                    self._is_assignment = True
            elif c == ")" and self._in_substitution():
                self._col += 1
                self._pop_substitution()
            elif c == "\\":
                # Escaped character is copied verbatim
                self._char()
                self._char()
            else:
                self._char()

    def _handle_assignment(self) -> None:
        text = "".join(self._stack[0])
        lhs, _, rhs = text.partition(":=")
        lhs, rhs = lhs.strip(), rhs.strip()
        if not lhs:
            self._fail("assignment without a variable name")
            return

        self.env.set(lhs, rhs)
        self._info(f"assignment: {lhs} = {rhs}")

    def _pop_substitution(self) -> None:
        substitution = "".join(self._stack.pop())
        self._write(self._evaluate(substitution))

    def _evaluate(self, substitution: str) -> str:
        self._info(f"evaluating substitution '{substitution}'")

        tokens = substitution.strip().split(",")
        if len(tokens) == 1:
            return self._lookup_env(tokens[0].strip())

        name = tokens[0].strip()
        handler = self.handlers.get(name)
        if handler is None:
            self._fail(f"unknown substitution handler '{name}'")
            return ""

        ctx = MacroContext(
            file=self.file,
            linenr=self.linenr,
            cwd=self.cwd,
            timeout=self.timeout,
            warn=lambda msg: self._warn(msg, self.file, self.linenr),
        )
        try:
            value = handler(ctx, *tokens[1:])
        except KconfigError as e:
            self._fail(f"error evaluating '{substitution}': {e}")
            return ""

        self._info(f"'{substitution}' evaluates to '{value}'")
        return value

    def _lookup_env(self, key: str) -> str:
        value = self.env.value(key)
        if value is None:
            self._fail(f"unknown substitution '{key}'")
            return ""
        return value

    def _in_substitution(self) -> bool:
        return len(self._stack) > 1

    def _peek(self) -> str:
        if self._col < len(self._current):
            return self._current[self._col]
        return ""

    def _char(self) -> None:
        if self._col >= len(self._current):
            self._fail("unexpected end of line")
            return
        self._write(self._current[self._col])
        self._col += 1

    def _write(self, s: str) -> None:
        if self.error is None:
            self._stack[-1].append(s)

    def _fail(self, msg: str) -> None:
        # Only the first error is kept, the rest of the line is scanned without side effects
        if self.error is None:
            self.error = f"{self.file}:{self.linenr}:{self._col}: {msg}\n{self._current}"

    def _warn(self, msg: str, filename: Optional[str] = None, linenr: Optional[int] = None) -> None:
        if not self.warn:
            return

        msg = "warning: " + msg
        if filename is not None:
            msg = f"{filename}:{linenr}: {msg}"

        self.warnings.append(msg)
        if self.warn_to_stderr:
            sys.stderr.write(msg + "\n")

    def _info(self, msg: str) -> None:
        if not self.info:
            return

        sys.stderr.write(f"info: {msg}\n")


def preprocess(data: str, file: str, env: Optional[KeyValueMap] = None, **kwargs) -> str:
    return Preprocessor(data, file, env, **kwargs).process()


def preprocess_file(filename: str, env: Optional[KeyValueMap] = None, **kwargs) -> str:
    try:
        with open(filename, "r", encoding="utf-8") as f:
            data = f.read()
    except OSError as e:
        raise io_error(e, "Kconfig file", filename)

    return preprocess(data, filename, env, **kwargs)


def preamble_env(
    env: KeyValueMap, handlers: Optional[Dict[str, Handler]] = None, timeout: Optional[float] = None
) -> KeyValueMap:
    """
    Seed 'env' with the paths derived from UK_BASE. Nothing is done if UK_BASE is not bound.
    """
    if "UK_BASE" not in env:
        return env

    for name in _PREAMBLE_OPTIONAL:
        if name not in env:
            env.set(name, "")

    Preprocessor(MAKEFILE_PREAMBLE, "preamble", env, handlers=handlers, timeout=timeout).process()
    return env
