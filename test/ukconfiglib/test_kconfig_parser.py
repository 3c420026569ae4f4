# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
import os
import textwrap

import pytest

from ukconfiglib import ConfigType
from ukconfiglib import KconfigError
from ukconfiglib import KconfigParseError
from ukconfiglib import KeyValueMap
from ukconfiglib import Literal
from ukconfiglib import MenuKind
from ukconfiglib import MissingMainmenuPolicy
from ukconfiglib import Parser
from ukconfiglib import PreprocessorError
from ukconfiglib import Symbol
from ukconfiglib import parse
from ukconfiglib import parse_data
from ukconfiglib.expr import And
from ukconfiglib.menu import ReverseDependency
from ukconfiglib.report import STATUS_OK
from ukconfiglib.report import STATUS_OK_WITH_INFO
from ukconfiglib.report import MiscArea
from ukconfiglib.report import MultipleDefinitionArea


class KconfigTestCase:
    @pytest.fixture(autouse=True)
    def kconfig_path(self, tmp_path):
        self.tmp_path = tmp_path
        self.path = str(tmp_path / "Config.uk")

    def parse(self, text, **options):
        options.setdefault("warn_to_stderr", False)
        return parse_data(textwrap.dedent(text), self.path, **options)

    def parser(self, text, **options):
        options.setdefault("warn_to_stderr", False)
        parser = Parser(self.path, **options)
        return parser, parser.parse(textwrap.dedent(text))

    def write(self, name, text):
        path = self.tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text))
        return str(path)


class TestStructure(KconfigTestCase):
    def test_simple_tree(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config A
                bool "A"
            config B
                bool "B"
                depends on A
            """
        )
        assert set(kconfig.configs) == {"A", "B"}
        assert kconfig.configs["B"].depends_on() == frozenset({"A"})
        assert [child.name for child in kconfig.root.children] == ["A", "B"]

        root = kconfig.root
        assert root.kind == MenuKind.MAIN
        assert root.prompt.text == "Test"
        assert root.parent is None
        a = kconfig.configs["A"]
        assert a.kind == MenuKind.CONFIG
        assert a.type == ConfigType.BOOL
        assert a.prompt.text == "A"
        assert a.parent is root
        assert a.source == self.path
        assert a.linenr == 3

    def test_nested_scopes(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config NET
                bool "Networking"

            menu "Network options"
                depends on NET
                visible if NET

            config TCP
                bool "TCP"

            if TCP
            config TCP_FAST
                bool "Fast"
            endif

            endmenu

            choice
                prompt "Allocator"
                optional
            config ALLOC_A
                bool "A"
            config ALLOC_B
                bool "B"
            endchoice

            menuconfig EXTRA
                bool "Extra"
            comment "The end"
            """
        )
        root = kconfig.root
        assert [child.kind for child in root.children] == [
            MenuKind.CONFIG,
            MenuKind.GROUP,
            MenuKind.CHOICE,
            MenuKind.MENUCONFIG,
            MenuKind.COMMENT,
        ]
        menu = root.children[1]
        assert menu.prompt.text == "Network options"
        assert [child.name for child in menu.children] == ["TCP", ""]
        if_group = menu.children[1]
        assert if_group.dep == And(Symbol("NET"), Symbol("TCP"))
        assert [child.name for child in if_group.children] == ["TCP_FAST"]
        assert kconfig.configs["TCP_FAST"].parent is if_group
        assert kconfig.configs["TCP_FAST"].visibility == Symbol("NET")
        assert kconfig.configs["TCP_FAST"].depends_on() == frozenset({"NET", "TCP"})

        choice = root.children[2]
        assert choice.prompt.text == "Allocator"
        assert choice.optional
        assert [child.name for child in choice.children] == ["ALLOC_A", "ALLOC_B"]

        assert root.children[4].prompt.text == "The end"
        assert set(kconfig.configs) == {"NET", "TCP", "TCP_FAST", "ALLOC_A", "ALLOC_B", "EXTRA"}

    def test_named_choice(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            choice ALLOC
                bool "Allocator"
            endchoice
            """
        )
        assert kconfig.root.children[0].name == "ALLOC"
        assert "ALLOC" not in kconfig.configs

    def test_missing_closers(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            menu "M"
            if A
            config B
                bool "B"
            """
        )
        menu = kconfig.root.children[0]
        assert menu.kind == MenuKind.GROUP
        assert menu.children[0].children[0] is kconfig.configs["B"]
        assert kconfig.configs["B"].dep == Symbol("A")

    def test_extra_closer_is_ignored(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            endmenu
            config A
                bool "A"
            """
        )
        assert kconfig.configs["A"].parent is kconfig.root

    def test_walk_and_node_iter(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            menu "M"
            config A
                bool "A"
            endmenu
            config B
                bool "B"
            """
        )
        assert [node.kind for node in kconfig.node_iter()] == [
            MenuKind.MAIN,
            MenuKind.GROUP,
            MenuKind.CONFIG,
            MenuKind.CONFIG,
        ]

        visited = []
        kconfig.walk(lambda node: visited.append(node.name))
        assert sorted(visited) == ["A", "B"]

        class Abort(Exception):
            pass

        def stop(node):
            raise Abort(node.name)

        with pytest.raises(Abort):
            kconfig.walk(stop)

    def test_to_dict(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config A
                bool "A"
                default y if !B
            config B
                int "B"
                depends on A
            """
        )
        tree = kconfig.to_dict()
        assert tree["configs"] == ["A", "B"]
        assert tree["root"]["kind"] == "main"
        a, b = tree["root"]["children"]
        assert a["type"] == "bool"
        assert a["default"] == [{"value": "y", "condition": "!B"}]
        assert b["depends_on"] == "A"
        assert b["source"] == self.path


class TestProperties(KconfigTestCase):
    def test_defaults(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config A
                def_bool y if B
            config B
                int "B"
                default 3 if A
                default 5
                range 1 10
            config S
                string "S"
                default "hello"
            config T
                def_tristate m
            """
        )
        a = kconfig.configs["A"]
        assert a.type == ConfigType.BOOL
        assert a.default.value == Literal("y")
        assert a.default.condition == Symbol("B")
        assert a.depends_on() == frozenset()

        b = kconfig.configs["B"]
        assert b.type == ConfigType.INT
        assert [d.value for d in b.defaults] == [Literal("3"), Literal("5")]
        assert b.default.condition == Symbol("A")
        assert b.ranges[0].low == Literal("1")
        assert b.ranges[0].high == Literal("10")
        assert b.ranges[0].condition is None

        assert kconfig.configs["S"].default.value == Literal("hello", quoted=True)
        assert kconfig.configs["T"].type == ConfigType.TRISTATE

    def test_prompt_condition(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config A
                hex
                prompt "Address" if B
            """
        )
        a = kconfig.configs["A"]
        assert a.type == ConfigType.HEX
        assert a.prompt.text == "Address"
        assert a.prompt.condition == Symbol("B")

    def test_depends_on_accumulates(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config A
                bool "A"
                depends on B
                depends on C || D
            """
        )
        assert str(kconfig.configs["A"].dep) == "B && (C || D)"

    def test_select_and_imply(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config A
                bool "A"
                select B if C
                imply D
            config B
                bool "B"
            config C
                bool "C"
            config D
                bool "D"
            """
        )
        a = kconfig.configs["A"]
        assert a.selects == [ReverseDependency("B", Symbol("C"))]
        assert a.implies == [ReverseDependency("D")]
        assert kconfig.configs["B"].depends_on() == frozenset()

    def test_options(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config A
                boolean "A"
                option env="FOO"
                modules
            """
        )
        a = kconfig.configs["A"]
        assert a.type == ConfigType.BOOL
        assert a.options == ['env="FOO"', "modules"]

    def test_help(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config A
                bool "A"
                help
                  First line.

                    Indented line.
                  Last line.
            config B
                bool "B"
                ---help---
                  Old style.

            config C
                bool "C"
                help
            config D
                bool "D"
            """
        )
        assert kconfig.configs["A"].help == "First line.\n\n  Indented line.\nLast line."
        assert kconfig.configs["B"].help == "Old style."
        assert kconfig.configs["C"].help == ""
        assert [child.name for child in kconfig.root.children] == ["A", "B", "C", "D"]

    def test_help_with_tabs(self):
        kconfig = parse_data(
            'mainmenu "Test"\nconfig A\n\tbool "A"\n\thelp\n\t  Tabbed\n\t    more\n',
            self.path,
            warn_to_stderr=False,
        )
        assert kconfig.configs["A"].help == "Tabbed\n  more"

    def test_comments(self):
        parser, kconfig = self.parser(
            """
            mainmenu "Test"
            # a comment
            config A # trailing
                bool "A"   # also trailing
            """
        )
        assert set(kconfig.configs) == {"A"}
        assert parser.warnings == []

    def test_extra_tokens(self):
        parser, kconfig = self.parser(
            """
            mainmenu "Test"
            config A extra
                bool "A"
            """
        )
        assert set(kconfig.configs) == {"A"}
        assert len(parser.warnings) == 1
        assert "ignoring extra tokens at end of line: 'extra'" in parser.warnings[0]
        assert kconfig.report.area(MiscArea).messages == parser.warnings
        assert kconfig.report.status == STATUS_OK_WITH_INFO

    def test_no_warnings_in_report(self):
        _, kconfig = self.parser('mainmenu "Test"\nconfig A\n    bool "A"\n')
        assert kconfig.report.area(MiscArea).messages == []
        assert kconfig.report.status == STATUS_OK


class TestMacros(KconfigTestCase):
    def test_expansion(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            ARCH := x86_64
            config ARCH_$(ARCH)
                bool "Arch"
            config PLAT_$(PLAT)
                string "Platform $(PLAT)"
            """,
            env={"PLAT": "kvm"},
        )
        assert set(kconfig.configs) == {"ARCH_x86_64", "PLAT_kvm"}
        assert kconfig.configs["PLAT_kvm"].prompt.text == "Platform kvm"

    def test_env_is_copied(self):
        env = KeyValueMap.from_map({"A": "1"})
        self.parse(
            """
            mainmenu "Test"
            B := 2
            """,
            env=env,
        )
        assert env.to_dict() == {"A": "1"}

    def test_recursive_assignments_are_ignored(self):
        parser, kconfig = self.parser(
            """
            mainmenu "Test"
            A := a
            B = b
            C += c
            config X
                bool "X"
            """
        )
        assert set(kconfig.configs) == {"X"}
        assert len(parser.warnings) == 2
        assert f"{self.path}:4: warning: ignoring 'B = ...': only ':=' assignments define macros" == parser.warnings[0]
        assert "ignoring 'C += ...'" in parser.warnings[1]
        assert kconfig.report.area(MiscArea).messages == parser.warnings

    def test_preprocessor_warnings_in_report(self):
        parser, kconfig = self.parser(
            """
            mainmenu "Test"
            $(warning-if, y, careful)
            $(warning-if, n, never shown)
            """
        )
        assert parser.warnings == [f"{self.path}:3: warning: careful"]
        assert kconfig.report.area(MiscArea).messages == parser.warnings

    def test_without_preprocessing(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            $(warning-if, y, never evaluated)
            config A
                string "Base $(UK_BASE)"
            """,
            env={"UK_BASE": "/uk"},
            preprocess=False,
        )
        assert kconfig.configs["A"].prompt.text == "Base /uk"

    def test_preprocessor_error(self):
        with pytest.raises(PreprocessorError, match="unknown substitution 'NOPE'"):
            self.parse(
                """
                mainmenu "Test"
                config $(NOPE)
                """
            )

    def test_preamble(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            config LIBS
                string "$(CONFIG_UK_LIB)"
            """,
            env={"UK_BASE": "/uk"},
            handlers={"shell": lambda ctx, *args: ""},
        )
        assert kconfig.configs["LIBS"].prompt.text == "/uk/lib/"

    def test_no_preamble(self):
        with pytest.raises(PreprocessorError, match="unknown substitution 'CONFIG_UK_LIB'"):
            self.parse(
                """
                mainmenu "Test"
                config LIBS
                    string "$(CONFIG_UK_LIB)"
                """,
                env={"UK_BASE": "/uk"},
                preamble=False,
            )


class TestSource(KconfigTestCase):
    def test_relative_source(self):
        sub = self.write(
            "sub/Config.uk",
            """
            config SUB
                bool "Sub"
                depends on AFTER
            """,
        )
        kconfig = self.parse(
            """
            mainmenu "Test"
            source "sub/Config.uk"
            config AFTER
                bool "After"
            """
        )
        assert [child.name for child in kconfig.root.children] == ["SUB", "AFTER"]
        assert kconfig.configs["SUB"].source == os.path.normpath(sub)
        assert kconfig.configs["SUB"].linenr == 2
        assert kconfig.configs["SUB"].depends_on() == frozenset({"AFTER"})

    def test_source_relative_to_including_file(self):
        self.write("a/Config.uk", 'source "b/Config.uk"\n')
        self.write("a/b/Config.uk", 'config DEEP\n    bool "Deep"\n')
        kconfig = self.parse(
            """
            mainmenu "Test"
            rsource "a/Config.uk"
            """
        )
        assert set(kconfig.configs) == {"DEEP"}

    def test_absolute_source(self):
        path = self.write("elsewhere/Config.uk", 'config ABS\n    bool "Abs"\n')
        kconfig = self.parse(f'mainmenu "Test"\nsource "{path}"\n')
        assert set(kconfig.configs) == {"ABS"}

    def test_glob(self):
        self.write("libs/b/Config.uk", 'config LIB_B\n    bool "B"\n')
        self.write("libs/a/Config.uk", 'config LIB_A\n    bool "A"\n')
        kconfig = self.parse(
            """
            mainmenu "Test"
            source "libs/*/Config.uk"
            """
        )
        assert [child.name for child in kconfig.root.children] == ["LIB_A", "LIB_B"]

    def test_source_inside_menu(self):
        self.write("sub/Config.uk", 'config SUB\n    bool "Sub"\n')
        kconfig = self.parse(
            """
            mainmenu "Test"
            menu "Libraries"
                depends on HAVE_LIBS
            source "sub/Config.uk"
            endmenu
            config HAVE_LIBS
                bool "Libs"
            """
        )
        menu = kconfig.root.children[0]
        assert kconfig.configs["SUB"].parent is menu
        assert kconfig.configs["SUB"].depends_on() == frozenset({"HAVE_LIBS"})

    def test_optional_source(self):
        kconfig = self.parse(
            """
            mainmenu "Test"
            osource "missing/Config.uk"
            orsource "missing/*.uk"
            config A
                bool "A"
            """
        )
        assert set(kconfig.configs) == {"A"}

    def test_missing_source(self):
        with pytest.raises(KconfigParseError, match="could not find"):
            self.parse(
                """
                mainmenu "Test"
                source "missing/Config.uk"
                """
            )

    def test_assignment_visible_after_source(self):
        self.write("defs.uk", "NAME := FROM_SUB\n")
        kconfig = self.parse(
            """
            mainmenu "Test"
            source "defs.uk"
            config $(NAME)
                bool "Named"
            """
        )
        assert set(kconfig.configs) == {"FROM_SUB"}

    def test_recursive_source(self):
        self.write("a.uk", 'source "b.uk"\n')
        self.write("b.uk", 'source "a.uk"\n')
        with pytest.raises(KconfigParseError) as e:
            self.parse(
                """
                mainmenu "Test"
                source "a.uk"
                """
            )
        assert "recursive 'source' of" in str(e.value)

    def test_self_source(self):
        with pytest.raises(KconfigParseError, match="recursive 'source'"):
            parse(self.write("Config.uk", 'mainmenu "Test"\nsource "Config.uk"\n'), warn_to_stderr=False)

    def test_nested_error(self):
        sub = self.write("sub.uk", 'config A\n    bool "A"\n    bogus\n')
        with pytest.raises(KconfigParseError) as e:
            self.parse('mainmenu "Test"\nsource "sub.uk"\n')
        lines = str(e.value).splitlines()
        assert lines[0] == f"{self.path}:2:15: error in sourced file"
        assert lines[1] == 'source "sub.uk"'
        assert lines[2] == f"{sub}:3:9: unknown line"
        assert lines[3] == "    bogus"


class TestErrors(KconfigTestCase):
    def test_unknown_line(self):
        with pytest.raises(KconfigParseError) as e:
            self.parse('mainmenu "Test"\nconfig A\n    bogus\n')
        assert str(e.value) == f"{self.path}:3:9: unknown line\n    bogus"

    def test_property_outside_config(self):
        with pytest.raises(KconfigParseError, match="config property outside of config"):
            self.parse(
                """
                mainmenu "Test"
                menu "M"
                endmenu
                bool "x"
                """
            )

    def test_bad_expression(self):
        with pytest.raises(KconfigParseError, match="invalid expression"):
            self.parse(
                """
                mainmenu "Test"
                config A
                    bool "A"
                    depends on && B
                """
            )

    def test_missing_on(self):
        with pytest.raises(KconfigParseError, match="expected 'on'"):
            self.parse(
                """
                mainmenu "Test"
                config A
                    depends B
                """
            )

    def test_missing_file(self):
        with pytest.raises(KconfigError, match="failed to open Kconfig file"):
            parse(str(self.tmp_path / "missing"))

    def test_parse_file(self):
        self.write("Config.uk", 'mainmenu "Test"\nconfig A\n    bool "A"\n')
        kconfig = parse(self.path)
        assert set(kconfig.configs) == {"A"}
        assert kconfig.filename == self.path


class TestMissingMainmenu(KconfigTestCase):
    TEXT = """
        config A
            bool "A"
        config B
            bool "B"
        """

    def test_error(self):
        with pytest.raises(KconfigError, match="no mainmenu in config"):
            self.parse(self.TEXT)

    def test_empty(self):
        assert self.parse(self.TEXT, missing_mainmenu=MissingMainmenuPolicy.EMPTY) is None

    def test_implicit(self):
        kconfig = self.parse(self.TEXT, missing_mainmenu="implicit")
        assert kconfig.root.name == "A"
        assert kconfig.configs["B"].parent is kconfig.root
        assert set(kconfig.configs) == {"A", "B"}

    def test_implicit_empty_file(self):
        kconfig = self.parse("", missing_mainmenu="implicit")
        assert kconfig.root.kind == MenuKind.MAIN
        assert kconfig.configs == {}

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("UKCONFIG_MISSING_MAINMENU", "empty")
        assert self.parse(self.TEXT) is None

    def test_invalid_environment(self, monkeypatch):
        monkeypatch.setenv("UKCONFIG_MISSING_MAINMENU", "bogus")
        with pytest.raises(ValueError, match="UKCONFIG_MISSING_MAINMENU"):
            self.parse(self.TEXT)

    def test_descriptions(self):
        for policy in MissingMainmenuPolicy:
            assert policy.description != "Unknown policy"


class TestMultipleDefinitions(KconfigTestCase):
    def test_last_definition_wins(self):
        parser, kconfig = self.parser(
            """
            mainmenu "Test"
            config A
                bool "First"
            config B
                bool "B"
            config A
                bool "Second"
                depends on B
            """
        )
        assert kconfig.configs["A"].prompt.text == "Second"
        assert kconfig.configs["A"].depends_on() == frozenset({"B"})
        assert [node.linenr for node in kconfig.definitions["A"]] == [3, 7]
        assert any("config A is defined 2 times" in warning for warning in parser.warnings)

        area = kconfig.report.area(MultipleDefinitionArea)
        assert area.multiple_definitions == {"A": [f"{self.path}:3", f"{self.path}:7"]}

    def test_warnings_to_stderr(self, capsys):
        Parser(self.path).parse('mainmenu "Test"\nconfig A\nconfig A\n')
        _, err = capsys.readouterr()
        assert "warning: config A is defined 2 times" in err
