# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
"""
Line-oriented scanner with the tokenizer primitives of the Kconfig language.

The scanner works on one logical line at a time (lines ending with a backslash
are joined). Tokens are read with the primitives below, which skip the blanks
following the token. The first error is stored in LineScanner.error; once it is
set, next_line() returns False and the scan is over.
"""

import os
import re
from typing import Dict
from typing import Iterable
from typing import Iterator
from typing import Optional
from typing import Tuple

from .errors import KconfigError
from .errors import KconfigParseError
from .key_value import KeyValueMap
from .macros import Handler
from .macros import MacroContext
from .macros import make_handlers

_IDENT_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-")

# $(...) reference without nested parentheses
_MACRO_RE = re.compile(r"\$\(([^()]*)\)")
_MAX_EXPANSION_ROUNDS = 32


class LineScanner:
    def __init__(
        self,
        data: str,
        file: str,
        env: Optional[KeyValueMap] = None,
        handlers: Optional[Dict[str, Handler]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.file = file
        self.env = env if env is not None else KeyValueMap()
        self.handlers = make_handlers(handlers)
        self.timeout = timeout

        self.error: Optional[KconfigError] = None
        self.linenr = 0
        self.current = ""
        self.col = 0
        # Set by push_back(): the next next_line() returns the current line again
        self.reuse = False

        self._lines: Iterator[Tuple[int, str]] = iter(enumerate(data.splitlines(), start=1))

    @classmethod
    def from_lines(cls, lines: Iterable[Tuple[int, str]], file: str, **kwargs) -> "LineScanner":
        """
        Build a scanner reading (line number, text) pairs, e.g. lazily from a Preprocessor.
        """
        scanner = cls("", file, **kwargs)
        scanner._lines = iter(lines)
        return scanner

    ############################
    # Lines
    ############################
    def next_line(self) -> bool:
        """
        Advance to the next logical line. Returns False at the end of data or after an error.
        """
        if self.error is not None:
            return False

        if self.reuse:
            self.reuse = False
            self.col = 0
            self.skip_spaces()
            return True

        line = self._read_line()
        if line is None:
            return False

        self.linenr, self.current = line
        while self.current.endswith("\\"):
            following = self._read_line()
            if following is None:
                break
            self.current = self.current[:-1] + following[1]

        self.col = 0
        self.skip_spaces()
        return True

    def _read_line(self) -> Optional[Tuple[int, str]]:
        try:
            return next(self._lines)
        except StopIteration:
            return None
        except KconfigError as e:
            # Errors of the line source (preprocessor) are errors of the scan
            self.set_error(e)
            return None

    def push_back(self) -> None:
        self.reuse = True

    def indent_level(self) -> int:
        """
        Column of the cursor, tabs advance to the next multiple of 8.
        """
        level = 0
        for c in self.current[: self.col]:
            level += 1
            if c == "\t":
                level = (level + 7) & ~7
        return level

    ############################
    # Errors
    ############################
    def fail(self, msg: str, cause: Optional[KconfigError] = None) -> None:
        if self.error is not None:
            return

        text = f"{self.file}:{self.linenr}:{self.col}: {msg}\n{self.current}"
        if cause is not None:
            text += f"\n{cause}"
        error = KconfigParseError(text)
        error.__cause__ = cause
        self.error = error

    def set_error(self, error: KconfigError) -> None:
        if self.error is None:
            self.error = error

    ############################
    # Primitives
    ############################
    def skip_spaces(self) -> None:
        while self.col < len(self.current) and self.current[self.col] in " \t":
            self.col += 1

    def eol(self) -> bool:
        return self.col >= len(self.current)

    def peek(self) -> str:
        if self.error is not None or self.eol():
            return ""
        return self.current[self.col]

    def char(self) -> str:
        if self.error is not None:
            return ""
        if self.eol():
            self.fail("unexpected end of line")
            return ""
        c = self.current[self.col]
        self.col += 1
        return c

    def rest(self) -> str:
        return self.current[self.col :]

    def advance(self, n: int) -> None:
        self.col = min(self.col + n, len(self.current))
        self.skip_spaces()

    def consume_line(self) -> str:
        res = self.current[self.col :]
        self.col = len(self.current)
        return res

    def try_consume(self, what: str) -> bool:
        if not self.current.startswith(what, self.col):
            return False
        self.col += len(what)
        self.skip_spaces()
        return True

    def try_consume_word(self, word: str) -> bool:
        """
        Like try_consume(), but 'word' must not be directly followed by an identifier character.
        """
        end = self.col + len(word)
        if not self.current.startswith(word, self.col):
            return False
        if end < len(self.current) and self.current[end] in _IDENT_CHARS:
            return False
        self.col = end
        self.skip_spaces()
        return True

    def must_consume(self, what: str) -> None:
        if not self.try_consume(what):
            self.fail(f"expected '{what}'")

    def ident(self) -> str:
        start = self.col
        while self.col < len(self.current) and self.current[self.col] in _IDENT_CHARS:
            self.col += 1

        res = self.current[start : self.col]
        if not res:
            self.fail("expected an identifier")
        self.skip_spaces()
        return res

    def peek_ident(self) -> bool:
        return self.peek() in _IDENT_CHARS if self.peek() else False

    def quoted_string(self) -> str:
        res = []
        quote = self.char()
        if quote not in ('"', "'"):
            self.fail("expected a quoted string")
            return ""

        while self.error is None:
            if self.eol():
                self.fail("unterminated quoted string")
                break
            c = self.char()
            if c == quote:
                break
            if c == "\\":
                c = self.char()
                if c not in ("'", '"', "\\"):
                    self.fail("bad quoted character")
                    break
                res.append(c)
                continue

            res.append(c)
            if c == "$" and self.peek() == "(":
                res.append(self._macro_reference())

        self.skip_spaces()
        return self.interpolate("".join(res))

    def try_quoted_string(self) -> Tuple[str, bool]:
        if self.peek() in ('"', "'"):
            return self.quoted_string(), True
        return "", False

    def _macro_reference(self) -> str:
        # Captures "(...)" verbatim, with balanced parentheses
        start = self.col
        depth = 0
        while not self.eol():
            c = self.current[self.col]
            self.col += 1
            if c == "(":
                depth += 1
            elif c == ")":
                depth -= 1
                if depth == 0:
                    return self.current[start : self.col]
        self.fail("macro reference is not terminated")
        return self.current[start : self.col]

    ############################
    # Interpolation
    ############################
    def interpolate(self, text: str) -> str:
        """
        Expand $(NAME) and $(handler, args...) references left in a string (e.g.
        when the file was not preprocessed). NAME is looked up as is and with the
        CONFIG_ prefix; unknown names and handlers are left untouched.
        """
        if "$(" not in text:
            return text

        def expand(match: "re.Match") -> str:
            tokens = match.group(1).split(",")
            if len(tokens) == 1:
                name = tokens[0].strip()
                value = self.env.value(name)
                if value is None:
                    value = self.env.value("CONFIG_" + name)
                return match.group(0) if value is None else value

            handler = self.handlers.get(tokens[0].strip())
            if handler is None:
                return match.group(0)
            ctx = MacroContext(
                file=self.file,
                linenr=self.linenr,
                cwd=os.path.dirname(self.file) or None,
                timeout=self.timeout,
            )
            try:
                return handler(ctx, *tokens[1:])
            except KconfigError as e:
                self.fail(f"error evaluating '{match.group(0)}': {e}")
                return ""

        # Inner references first, so nested references are expanded too
        for _ in range(_MAX_EXPANSION_ROUNDS):
            expanded = _MACRO_RE.sub(expand, text)
            if expanded == text or self.error is not None:
                break
            text = expanded
        return expanded
