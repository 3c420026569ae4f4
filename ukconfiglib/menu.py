# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
"""
Menu tree built by the Kconfig parser and the dependency resolver working on it.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable
from typing import Dict
from typing import FrozenSet
from typing import Iterator
from typing import List
from typing import Optional
from typing import Set

from .expr import Expr
from .expr import expr_and
from .expr import expr_items
from .report import DependencyLoopArea
from .report import KconfigReport


class MenuKind(Enum):
    MAIN = "main"
    MENUCONFIG = "menuconfig"
    CONFIG = "config"
    GROUP = "group"  # menu and if
    CHOICE = "choice"
    COMMENT = "comment"


class ConfigType(Enum):
    BOOL = "bool"
    TRISTATE = "tristate"
    STRING = "string"
    INT = "int"
    HEX = "hex"


@dataclass
class KConfigPrompt:
    text: str = ""
    condition: Optional[Expr] = None


@dataclass
class DefaultValue:
    value: Optional[Expr] = None
    condition: Optional[Expr] = None


@dataclass
class Range:
    low: Expr
    high: Expr
    condition: Optional[Expr] = None


@dataclass
class ReverseDependency:
    """
    'select NAME if COND' or 'imply NAME if COND'
    """

    name: str
    condition: Optional[Expr] = None


def _str_or_none(expr: Optional[Expr]) -> Optional[str]:
    return None if expr is None else str(expr)


class KConfigMenu:
    """
    A single node of the menu tree: mainmenu, menu/if group, choice, config,
    menuconfig or comment.

    dep/visibility:
      "depends on" and "visible if" conditions. After the parse, they also
      include the conditions of all parent nodes.
    """

    def __init__(
        self,
        kind: MenuKind,
        name: str = "",
        prompt: Optional[KConfigPrompt] = None,
        source: str = "",
        linenr: int = 0,
        dep: Optional[Expr] = None,
        visibility: Optional[Expr] = None,
    ) -> None:
        self.kind = kind
        self.type: Optional[ConfigType] = None
        self.name = name
        self.prompt = prompt or KConfigPrompt()
        self.help = ""
        self.defaults: List[DefaultValue] = []
        self.selects: List[ReverseDependency] = []
        self.implies: List[ReverseDependency] = []
        self.ranges: List[Range] = []
        self.options: List[str] = []
        self.optional = False
        self.source = source
        self.linenr = linenr
        self.dep = dep
        self.visibility = visibility

        self.parent: Optional["KConfigMenu"] = None
        self.children: List["KConfigMenu"] = []
        self.kconfig_file: Optional["KConfigFile"] = None

        self._deps: Optional[FrozenSet[str]] = None
        self._deps_lock = threading.Lock()

    @property
    def default(self) -> Optional[DefaultValue]:
        """
        The first 'default' of the entry, which is the first one considered by Kconfig.
        """
        return self.defaults[0] if self.defaults else None

    @property
    def is_config(self) -> bool:
        return self.kind in (MenuKind.CONFIG, MenuKind.MENUCONFIG)

    @property
    def location(self) -> str:
        return f"{self.source}:{self.linenr}"

    def add_child(self, child: "KConfigMenu") -> None:
        child.parent = self
        self.children.append(child)

    def depends_on(self) -> FrozenSet[str]:
        """
        Names of all configs this node depends on, directly or transitively, through
        "depends on" and "visible if" conditions. Names which are not configs of the
        owning KConfigFile are left out. A config which is part of a dependency loop
        is included in its own result.

        The result is computed on the first call only; concurrent first calls wait
        for the one doing the computation.
        """
        deps = self._deps
        if deps is not None:
            return deps

        with self._deps_lock:
            if self._deps is None:
                if self.kconfig_file is None:
                    self._deps = frozenset()
                else:
                    self._deps = self.kconfig_file._resolve(self)
            return self._deps

    def to_dict(self) -> dict:
        res: Dict = {"kind": self.kind.value}
        if self.type is not None:
            res["type"] = self.type.value
        if self.name:
            res["name"] = self.name
        if self.prompt.text:
            res["prompt"] = self.prompt.text
            if self.prompt.condition is not None:
                res["prompt_if"] = str(self.prompt.condition)
        if self.help:
            res["help"] = self.help
        if self.defaults:
            res["default"] = [
                {"value": _str_or_none(d.value), "condition": _str_or_none(d.condition)} for d in self.defaults
            ]
        if self.ranges:
            res["range"] = [
                {"low": str(r.low), "high": str(r.high), "condition": _str_or_none(r.condition)} for r in self.ranges
            ]
        for key, rdeps in (("select", self.selects), ("imply", self.implies)):
            if rdeps:
                res[key] = [{"name": r.name, "condition": _str_or_none(r.condition)} for r in rdeps]
        if self.dep is not None:
            res["depends_on"] = str(self.dep)
        if self.visibility is not None:
            res["visible_if"] = str(self.visibility)
        if self.source:
            res["source"] = self.source
            res["linenr"] = self.linenr
        if self.children:
            res["children"] = [child.to_dict() for child in self.children]
        return res

    def __repr__(self) -> str:
        fields = [self.kind.value]
        if self.name:
            fields.append(self.name)
        if self.prompt.text:
            fields.append(f'"{self.prompt.text}"')
        if self.source:
            fields.append(self.location)
        return "<{}>".format(", ".join(fields))


class KConfigFile:
    """
    Result of a parse: the menu tree (root) and its config/menuconfig entries
    (configs, by name).

    reverse_dependencies:
      If True, 'select X'/'imply X' on a config S make X depend on S (and on the
      symbols of the select/imply condition) in depends_on(). Off by default.
    """

    def __init__(
        self,
        root: KConfigMenu,
        filename: str = "",
        report: Optional[KconfigReport] = None,
        reverse_dependencies: bool = False,
    ) -> None:
        self.root = root
        self.filename = filename or root.source
        self.report = report if report is not None else KconfigReport(self.filename)
        self.reverse_dependencies = reverse_dependencies

        self.configs: Dict[str, KConfigMenu] = {}
        # Every definition of every config name, in declaration order
        self.definitions: Dict[str, List[KConfigMenu]] = {}
        self._reverse_deps: Dict[str, List[ReverseDependency]] = {}

        self._walk(root, None, None)
        self.report.configs_parsed = len(self.configs)

    def _walk(self, node: KConfigMenu, dep: Optional[Expr], visibility: Optional[Expr]) -> None:
        stack = [(node, dep, visibility)]
        while stack:
            node, dep, visibility = stack.pop()
            node.kconfig_file = self
            node.dep = expr_and(dep, node.dep)
            node.visibility = expr_and(visibility, node.visibility)

            if node.is_config:
                self.configs[node.name] = node
                self.definitions.setdefault(node.name, []).append(node)
                for rdep in node.selects + node.implies:
                    self._reverse_deps.setdefault(rdep.name, []).append(
                        ReverseDependency(node.name, rdep.condition)
                    )

            for child in reversed(node.children):
                stack.append((child, node.dep, node.visibility))

    def _direct_deps(self, node: KConfigMenu) -> Set[str]:
        names = expr_items(node.dep) | expr_items(node.visibility)
        if self.reverse_dependencies and node.is_config:
            for rdep in self._reverse_deps.get(node.name, ()):
                names.add(rdep.name)
                names |= expr_items(rdep.condition)
        return {name for name in names if name in self.configs}

    def _resolve(self, node: KConfigMenu) -> FrozenSet[str]:
        deps: Set[str] = set()
        todo = list(self._direct_deps(node))
        while todo:
            name = todo.pop()
            if name in deps:
                continue
            deps.add(name)

            dep_node = self.configs[name]
            memo = dep_node._deps
            if memo is not None:
                # Already a transitive closure
                deps.update(memo)
                continue
            todo.extend(self._direct_deps(dep_node))

        if node.is_config and node.name in deps:
            self.report.add_record(DependencyLoopArea, name=node.name, dependencies=deps)

        return frozenset(deps)

    def resolve_all(self) -> Dict[str, FrozenSet[str]]:
        return {name: node.depends_on() for name, node in self.configs.items()}

    def walk(self, callback: Callable[[KConfigMenu], None]) -> None:
        """
        Call 'callback' for every config/menuconfig entry and all of its children.
        An exception raised by the callback stops the walk.
        """

        def walk_node(node: KConfigMenu) -> None:
            callback(node)
            for child in node.children:
                walk_node(child)

        for node in self.configs.values():
            walk_node(node)

    def node_iter(self) -> Iterator[KConfigMenu]:
        """
        Yield every node of the menu tree, depth-first, starting with the root.
        """
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> dict:
        return {"root": self.root.to_dict(), "configs": sorted(self.configs)}
