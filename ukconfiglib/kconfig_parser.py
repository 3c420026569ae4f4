# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
import errno
import os
import sys
from glob import iglob
from typing import Dict
from typing import List
from typing import Optional
from typing import Union

from .constants import MissingMainmenuPolicy
from .errors import KconfigError
from .errors import KconfigParseError
from .errors import io_error
from .expr import Expr
from .expr import expr_and
from .expr import parse_expr_prefix
from .key_value import KeyValueMap
from .macros import Handler
from .menu import ConfigType
from .menu import DefaultValue
from .menu import KConfigFile
from .menu import KConfigMenu
from .menu import KConfigPrompt
from .menu import MenuKind
from .menu import Range
from .menu import ReverseDependency
from .preprocessor import Preprocessor
from .preprocessor import preamble_env
from .report import KconfigReport
from .report import MiscArea
from .report import MultipleDefinitionArea
from .scanner import LineScanner

_TYPES = {
    "bool": ConfigType.BOOL,
    "boolean": ConfigType.BOOL,
    "tristate": ConfigType.TRISTATE,
    "string": ConfigType.STRING,
    "int": ConfigType.INT,
    "hex": ConfigType.HEX,
}

_SOURCE_KEYWORDS = ("source", "rsource", "osource", "orsource")
_END_KEYWORDS = ("endmenu", "endif", "endchoice")


class Parser:
    """
    The Parser class is responsible for parsing the Kconfig file and building the menu tree.

    Parsing logic: the file is read line by line with a LineScanner (fed by a Preprocessor, so
    macros are expanded lazily, line by line). The parser keeps a stack of open scopes
    (mainmenu, menu, if, choice) and the "current" entry collecting properties:

    * mainmenu/menu/if/choice end the current entry and open a new scope,
    * config/menuconfig/comment end the current entry and start a new one,
    * endmenu/endif/endchoice end the current entry and close the innermost scope,
    * source parses the included file(s) with a new scanner, sharing the scope stack.

    The first error stops the parse and is raised from parse().
    """

    def __init__(
        self,
        filename: str,
        env=None,
        preprocess: bool = True,
        preamble: bool = True,
        handlers: Optional[Dict[str, Handler]] = None,
        timeout: Optional[float] = None,
        missing_mainmenu: Union[MissingMainmenuPolicy, str, None] = None,
        reverse_dependencies: bool = False,
        warn: bool = True,
        warn_to_stderr: bool = True,
    ) -> None:
        self.filename = filename
        self.env = KeyValueMap.coerce(env)
        self.preprocess = preprocess
        self.preamble = preamble
        self.handlers = handlers
        self.timeout = timeout
        if missing_mainmenu is None:
            self.missing_mainmenu = MissingMainmenuPolicy.from_env()
        else:
            self.missing_mainmenu = MissingMainmenuPolicy(missing_mainmenu)
        self.reverse_dependencies = reverse_dependencies

        self.warn = warn
        self.warn_to_stderr = warn_to_stderr
        self.warnings: List[str] = []
        self.report = KconfigReport(filename)

        self.stack: List[KConfigMenu] = []
        self.cur: Optional[KConfigMenu] = None
        # Real paths of the files being parsed, outermost first
        self._include_path: List[str] = []
        self._preprocessors: List[Preprocessor] = []

    def parse(self, data: Optional[str] = None) -> Optional[KConfigFile]:
        """
        Parse the Kconfig file (or 'data' as its contents). Returns None only if the
        file has no mainmenu and the missing mainmenu policy is EMPTY.
        """
        if data is None:
            try:
                with open(self.filename, "r", encoding="utf-8") as f:
                    data = f.read()
            except OSError as e:
                raise io_error(e, "Kconfig file", self.filename)

        if self.preprocess and self.preamble:
            preamble_env(self.env, handlers=self.handlers, timeout=self.timeout)

        scanner = self._make_scanner(data, self.filename)
        self._include_path.append(os.path.realpath(self.filename))
        try:
            self.parse_file(scanner)
        finally:
            self._include_path.pop()
            self._collect_warnings()

        if scanner.error is not None:
            raise scanner.error

        for warning in self.warnings:
            self.report.add_record(MiscArea, message=warning)

        # Scopes left open by missing endmenu/endif/endchoice are closed implicitly
        while len(self.stack) > 1:
            last = self.stack.pop()
            self.stack[-1].add_child(last)

        root = self._root()
        if root is None:
            return None

        kconfig_file = KConfigFile(
            root, filename=self.filename, report=self.report, reverse_dependencies=self.reverse_dependencies
        )
        self._check_multiple_definitions(kconfig_file)
        return kconfig_file

    def _root(self) -> Optional[KConfigMenu]:
        if self.stack and self.stack[0].kind == MenuKind.MAIN:
            return self.stack[0]

        if self.missing_mainmenu == MissingMainmenuPolicy.EMPTY:
            return None
        if self.missing_mainmenu == MissingMainmenuPolicy.IMPLICIT:
            if self.stack:
                return self.stack[0]
            return KConfigMenu(MenuKind.MAIN, source=os.path.normpath(self.filename))
        raise KconfigError(f"{self.filename}: no mainmenu in config")

    def _make_scanner(self, data: str, filename: str) -> LineScanner:
        options = dict(env=self.env, handlers=self.handlers, timeout=self.timeout)
        if not self.preprocess:
            return LineScanner(data, filename, **options)

        preprocessor = Preprocessor(data, filename, warn=self.warn, warn_to_stderr=self.warn_to_stderr, **options)
        self._preprocessors.append(preprocessor)
        return LineScanner.from_lines(preprocessor.iter_lines(), filename, **options)

    def _collect_warnings(self) -> None:
        for preprocessor in self._preprocessors:
            self.warnings.extend(preprocessor.warnings)
        self._preprocessors = []

    ############################
    # Lines
    ############################
    def parse_file(self, scanner: LineScanner) -> None:
        while scanner.next_line():
            self.parse_line(scanner)
            self._end_line(scanner)

        self.end_current(scanner)

    def _end_line(self, scanner: LineScanner) -> None:
        if scanner.reuse or scanner.error is not None:
            return
        if scanner.try_consume("#"):
            scanner.consume_line()
        elif not scanner.eol():
            self._warn(f"ignoring extra tokens at end of line: '{scanner.consume_line()}'", scanner.file, scanner.linenr)

    def parse_line(self, scanner: LineScanner) -> None:
        if scanner.eol():
            return

        if scanner.try_consume("#"):
            scanner.consume_line()
            return

        # Macro calls which were not preprocessed, e.g. $(error-if ...)
        if scanner.rest().startswith("$("):
            scanner.consume_line()
            return

        ident = scanner.ident()
        if scanner.try_consume(":="):
            # Macro definition, already handled by the preprocessor
            scanner.consume_line()
            return
        for op in ("=", "+="):
            if scanner.try_consume(op):
                scanner.consume_line()
                self._warn(
                    f"ignoring '{ident} {op} ...': only ':=' assignments define macros", scanner.file, scanner.linenr
                )
                return

        self.parse_menu(scanner, ident)

    def parse_menu(self, scanner: LineScanner, cmd: str) -> None:
        if cmd in _SOURCE_KEYWORDS:
            self.include_source(scanner, optional=cmd in ("osource", "orsource"))

        elif cmd == "mainmenu":
            prompt = KConfigPrompt(scanner.quoted_string())
            self.push_current(scanner, self._new_node(scanner, MenuKind.MAIN, prompt=prompt))

        elif cmd == "comment":
            prompt = KConfigPrompt(scanner.quoted_string())
            self.new_current(scanner, self._new_node(scanner, MenuKind.COMMENT, prompt=prompt))

        elif cmd == "menu":
            prompt = KConfigPrompt(scanner.quoted_string())
            self.push_current(scanner, self._new_node(scanner, MenuKind.GROUP, prompt=prompt))

        elif cmd == "if":
            self.push_current(scanner, self._new_node(scanner, MenuKind.GROUP, dep=self.parse_expr(scanner)))

        elif cmd == "choice":
            name = scanner.ident() if scanner.peek_ident() else ""
            self.push_current(scanner, self._new_node(scanner, MenuKind.CHOICE, name=name))

        elif cmd in _END_KEYWORDS:
            self.pop_current(scanner)

        elif cmd == "config":
            self.new_current(scanner, self._new_node(scanner, MenuKind.CONFIG, name=scanner.ident()))

        elif cmd == "menuconfig":
            self.new_current(scanner, self._new_node(scanner, MenuKind.MENUCONFIG, name=scanner.ident()))

        else:
            self.parse_config_type(scanner, cmd)

    def parse_config_type(self, scanner: LineScanner, typ: str) -> None:
        if typ in _TYPES:
            self.current(scanner).type = _TYPES[typ]
            self.try_parse_prompt(scanner)
        elif typ.startswith("def_") and typ[len("def_") :] in _TYPES:
            self.current(scanner).type = _TYPES[typ[len("def_") :]]
            self.parse_default(scanner)
        else:
            self.parse_property(scanner, typ)

    def parse_property(self, scanner: LineScanner, prop: str) -> None:
        cur = self.current(scanner)

        if prop == "prompt":
            self.try_parse_prompt(scanner)

        elif prop == "depends":
            scanner.must_consume("on")
            cur.dep = expr_and(cur.dep, self.parse_expr(scanner))

        elif prop == "visible":
            scanner.must_consume("if")
            cur.visibility = expr_and(cur.visibility, self.parse_expr(scanner))

        elif prop in ("select", "imply"):
            rdep = ReverseDependency(scanner.ident())
            if scanner.try_consume_word("if"):
                rdep.condition = self.parse_expr(scanner)
            (cur.selects if prop == "select" else cur.implies).append(rdep)

        elif prop == "option":
            # It can be 'option foo', or 'option bar="BAZ"'
            cur.options.append(scanner.consume_line().strip())

        elif prop == "modules":
            cur.options.append("modules")

        elif prop == "optional":
            cur.optional = True

        elif prop == "default":
            self.parse_default(scanner)

        elif prop == "range":
            low, high = self.parse_expr(scanner), self.parse_expr(scanner)
            condition = self.parse_expr(scanner) if scanner.try_consume_word("if") else None
            if low is not None and high is not None:
                cur.ranges.append(Range(low, high, condition))

        elif prop in ("help", "---help---"):
            self.parse_help(scanner)

        else:
            scanner.fail("unknown line")

    ############################
    # Properties
    ############################
    def parse_expr(self, scanner: LineScanner) -> Optional[Expr]:
        if scanner.error is not None:
            return None

        try:
            expr, length = parse_expr_prefix(scanner.rest())
        except KconfigParseError as e:
            scanner.fail(str(e))
            return None

        scanner.advance(length)
        return expr

    def try_parse_prompt(self, scanner: LineScanner) -> None:
        text, ok = scanner.try_quoted_string()
        if not ok:
            return

        prompt = KConfigPrompt(text)
        if scanner.try_consume_word("if"):
            prompt.condition = self.parse_expr(scanner)
        self.current(scanner).prompt = prompt

    def parse_default(self, scanner: LineScanner) -> None:
        default = DefaultValue(value=self.parse_expr(scanner))
        if scanner.try_consume_word("if"):
            default.condition = self.parse_expr(scanner)
        self.current(scanner).defaults.append(default)

    def parse_help(self, scanner: LineScanner) -> None:
        # The indentation of the first non-blank line is the indentation of the
        # block. The block ends with the first non-blank line indented less.
        cur = self.current(scanner)
        lines: List[str] = []
        block_indent = None
        while scanner.next_line():
            if scanner.eol():
                lines.append("")
                continue

            indent = scanner.indent_level()
            if block_indent is None:
                if indent == 0:
                    # Help text must be indented, so the help is empty
                    scanner.push_back()
                    break
                block_indent = indent
            elif indent < block_indent:
                scanner.push_back()
                break

            # Relative indentation of the line is kept
            lines.append(scanner.current.expandtabs()[block_indent:].rstrip())
            scanner.consume_line()

        cur.help = "\n".join(lines).strip("\n")

    ############################
    # Source
    ############################
    def include_source(self, scanner: LineScanner, optional: bool = False) -> None:
        path, ok = scanner.try_quoted_string()
        if not ok:
            path = scanner.consume_line().strip()
        if not path:
            return

        self.new_current(scanner, None)
        if not os.path.isabs(path):
            path = os.path.join(os.path.dirname(scanner.file), path)

        filenames = sorted(iglob(path))
        if not filenames:
            if not optional:
                scanner.fail(f"could not find '{path}' (no such file or directory)")
            return

        for filename in filenames:
            self.parse_source(scanner, filename)
            if scanner.error is not None:
                return

    def parse_source(self, scanner: LineScanner, filename: str) -> None:
        real_filename = os.path.realpath(filename)
        if real_filename in self._include_path:
            scanner.fail(f"recursive 'source' of '{filename}' detected")
            return

        try:
            with open(filename, "r", encoding="utf-8") as f:
                data = f.read()
        except OSError as e:
            code = errno.errorcode.get(e.errno, "EIO") if e.errno is not None else "EIO"
            scanner.fail(f"could not open '{filename}' ({code}: {e.strerror})")
            return

        nested = self._make_scanner(data, filename)
        self._include_path.append(real_filename)
        try:
            self.parse_file(nested)
        finally:
            self._include_path.pop()

        if nested.error is not None:
            scanner.fail("error in sourced file", cause=nested.error)

    ############################
    # Scopes
    ############################
    def _new_node(self, scanner: LineScanner, kind: MenuKind, **kwargs) -> KConfigMenu:
        return KConfigMenu(kind, source=os.path.normpath(scanner.file), linenr=scanner.linenr, **kwargs)

    def push_current(self, scanner: LineScanner, node: KConfigMenu) -> None:
        self.end_current(scanner)
        self.cur = node
        self.stack.append(node)

    def pop_current(self, scanner: LineScanner) -> None:
        self.end_current(scanner)
        if len(self.stack) < 2:
            return

        last = self.stack.pop()
        self.stack[-1].add_child(last)

    def new_current(self, scanner: LineScanner, node: Optional[KConfigMenu]) -> None:
        self.end_current(scanner)
        self.cur = node

    def current(self, scanner: LineScanner) -> KConfigMenu:
        if self.cur is None:
            scanner.fail("config property outside of config")
            # Properties of a throwaway node are discarded
            return KConfigMenu(MenuKind.CONFIG)
        return self.cur

    def end_current(self, scanner: LineScanner) -> None:
        if self.cur is None:
            return

        if not self.stack:
            # No enclosing mainmenu, the entry becomes the base of the stack
            self.stack.append(self.cur)
        elif self.stack[-1] is not self.cur:
            self.stack[-1].add_child(self.cur)

        self.cur = None

    ############################
    # Diagnostics
    ############################
    def _check_multiple_definitions(self, kconfig_file: KConfigFile) -> None:
        for name, nodes in kconfig_file.definitions.items():
            if len(nodes) < 2:
                continue
            last = nodes[-1]
            self._warn(
                f"config {name} is defined {len(nodes)} times, the definition at {last.location} is used",
                last.source,
                last.linenr,
            )
            self.report.add_record(MultipleDefinitionArea, name=name, occurrences=[n.location for n in nodes])

    def _warn(self, msg: str, filename: Optional[str] = None, linenr: Optional[int] = None) -> None:
        # For printing general warnings

        if not self.warn:
            return

        msg = "warning: " + msg
        if filename is not None:
            msg = f"{filename}:{linenr}: {msg}"

        self.warnings.append(msg)
        if self.warn_to_stderr:
            sys.stderr.write(msg + "\n")


def parse(filename: str, env=None, **options) -> Optional[KConfigFile]:
    """
    Parse the Kconfig file 'filename' (and the files it sources).

    env:
      Seed environment for macro expansion: a KeyValueMap, a str -> str mapping
      or an iterable of KeyValue objects. It is copied, not modified.

    options:
      Keyword arguments of Parser (preprocess, preamble, handlers, timeout,
      missing_mainmenu, reverse_dependencies, warn, warn_to_stderr).

    Raises KconfigError (or a subclass) on the first error.
    """
    return Parser(filename, env, **options).parse()


def parse_data(data: str, filename: str, env=None, **options) -> Optional[KConfigFile]:
    """
    Like parse(), with 'data' as the contents of 'filename'. Relative 'source'
    paths are resolved against the directory of 'filename'.
    """
    return Parser(filename, env, **options).parse(data)
