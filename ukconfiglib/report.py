# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0

"""
Configuration report.

Instead of continuously logging messages, KconfigReport stores notable
findings of a parse (multiple definitions, dependency loops, ...) and prints
them at the end as one report.
"""

import json
import os
import textwrap
from abc import ABC
from abc import abstractmethod
from typing import Dict
from typing import List
from typing import Optional
from typing import Set

from rich import print as rprint
from rich.box import HORIZONTALS
from rich.console import Console
from rich.table import Table

from .constants import ENV_REPORT_VERBOSITY

STATUS_NONE = 0
STATUS_OK = 1
STATUS_OK_WITH_INFO = 2
STATUS_WARNING = 3
STATUS_ERROR = 4

_INDENT = " " * 4
VERBOSITY_QUIET = "quiet"  # Report only if there is an error
VERBOSITY_DEFAULT = "default"  # Report standard information
VERBOSITY_VERBOSE = "verbose"  # Report everything every time

AREA_TITLE_STYLE = "bold blue"
INFO_STRING_STYLE = "italic"
SUBTITLE_STYLE = "bold"


class Area(ABC):
    """
    Abstract class holding the base structure of every area in the report.
    """

    def __init__(self, title: str, info_string: str):
        """
        title:
        info_string:
            Both are used to describe the area in the report.
            Title is printed every time specific area is printed, info string provides additional information
            about the area, which may further help to understand the issue.
        """
        self.title: str = title
        self.info_string: str = info_string

    @abstractmethod
    def add_record(self, **kwargs) -> None:
        """
        Adding a new record to the area.
        """
        pass

    @abstractmethod
    def report_severity(self) -> int:
        """
        If given area has nothing to report, STATUS_OK should be returned.
        Otherwise, STATUS_OK_WITH_INFO, STATUS_WARNING or STATUS_ERROR should be returned,
        depending how severe record in given area is.
        """
        pass

    @abstractmethod
    def print(self, verbosity: str) -> Optional[Table]:
        """
        Print the area sub-report.
        """
        pass

    @abstractmethod
    def return_json(self) -> Optional[dict]:
        """
        Return the area report in JSON format.
        """
        ret_json = dict()
        ret_json["title"] = self.title
        ret_json["severity"] = self.severity_to_str(self.report_severity())
        return ret_json

    @staticmethod
    def severity_to_str(severity: int) -> str:
        if severity == STATUS_OK:
            return "OK"
        elif severity == STATUS_OK_WITH_INFO:
            return "Info"
        elif severity == STATUS_WARNING:
            return "Warning"
        else:
            return "Error"

    def _make_table(self) -> Table:
        table = Table(title=self.title, title_justify="left", show_header=False, title_style=AREA_TITLE_STYLE)
        table.box = HORIZONTALS
        table.add_column("", justify="left", no_wrap=True)
        return table


class MultipleDefinitionArea(Area):
    """
    Multiple definition: two or more config/menuconfig entries with the same name.
    The last definition is the one registered in KConfigFile.configs.
    """

    def __init__(self):
        super().__init__(
            title="Multiple Config Definitions",
            info_string=textwrap.dedent(
                """\
                Multiple definitions of the same config name are allowed by the Kconfig syntax.
                Only the last definition is used when resolving dependencies. It may happen that
                e.g. two different libraries accidentally define the same name.
                """
            ),
        )

        self.multiple_definitions: Dict[str, List[str]] = dict()

    def add_record(self, **kwargs) -> None:
        """
        kwargs:
            name: str
            occurrences: List[str]
        """
        name: str = kwargs["name"]
        occurrences: List[str] = kwargs.get("occurrences", [])
        definitions = self.multiple_definitions.setdefault(name, [])
        for occurrence in occurrences:
            if occurrence not in definitions:
                definitions.append(occurrence)

    def report_severity(self) -> int:
        return STATUS_OK if not self.multiple_definitions else STATUS_OK_WITH_INFO

    def print(self, verbosity: str) -> Optional[Table]:
        if not self.multiple_definitions:
            return None

        table = self._make_table()
        if verbosity == VERBOSITY_VERBOSE:
            table.add_row(self.info_string, style=INFO_STRING_STYLE)

        for name, definitions in self.multiple_definitions.items():
            table.add_row(name, style=SUBTITLE_STYLE)
            for definition in definitions:
                table.add_row(_INDENT + definition)

        return table

    def return_json(self) -> Optional[dict]:
        if not self.multiple_definitions:
            return None
        ret_json = super().return_json() or dict()
        ret_json["data"] = {name: list(definitions) for name, definitions in self.multiple_definitions.items()}
        return ret_json


class DependencyLoopArea(Area):
    """
    Configs which (transitively) depend on themselves.
    """

    def __init__(self):
        super().__init__(
            title="Dependency Loops",
            info_string=textwrap.dedent(
                """\
                These configs depend on themselves through a chain of "depends on"/"visible if"
                conditions. Such configs can never be enabled by the Kconfig resolution.
                """
            ),
        )
        self.loops: Dict[str, Set[str]] = dict()

    def add_record(self, **kwargs) -> None:
        """
        kwargs:
            name: str
            dependencies: Set[str]
        """
        self.loops.setdefault(kwargs["name"], set()).update(kwargs.get("dependencies", set()))

    def report_severity(self) -> int:
        return STATUS_OK if not self.loops else STATUS_WARNING

    def print(self, verbosity: str) -> Optional[Table]:
        if not self.loops:
            return None

        table = self._make_table()
        if verbosity == VERBOSITY_VERBOSE:
            table.add_row(self.info_string, style=INFO_STRING_STYLE)
        for name in sorted(self.loops):
            table.add_row(name, style=SUBTITLE_STYLE)
            if verbosity == VERBOSITY_VERBOSE:
                table.add_row(_INDENT + "depends on: " + " ".join(sorted(self.loops[name])))

        return table

    def return_json(self) -> Optional[dict]:
        if not self.loops:
            return None
        ret_json = super().return_json() or dict()
        ret_json["data"] = {name: sorted(deps) for name, deps in sorted(self.loops.items())}
        return ret_json


class MiscArea(Area):
    """
    All the messages not related to the other areas.
    """

    def __init__(self):
        super().__init__(
            title="Miscellaneous",
            info_string="",
        )

        self.messages: List[str] = list()

    def add_record(self, **kwargs) -> None:
        """
        kwargs:
            message: str
        """
        if "message" not in kwargs.keys():
            raise AttributeError("Message must be specified for MiscArea.")
        message = str(kwargs["message"])
        if message not in self.messages:
            self.messages.append(message)

    def report_severity(self) -> int:
        return STATUS_OK if not self.messages else STATUS_OK_WITH_INFO

    def print(self, verbosity: str) -> Optional[Table]:
        if not self.messages:
            return None

        table = self._make_table()
        for message in self.messages:
            table.add_row(f"* {message}")
        return table

    def return_json(self) -> Optional[dict]:
        if not self.messages:
            return None
        ret_json = super().return_json() or dict()
        ret_json["data"] = list(self.messages)
        return ret_json


class KconfigReport:
    """
    By add_record() method, new records are added to the report.
    Every time, it is needed to specify report area for given record.
    Every area is described by a class inheriting from Area class.

    Every parse has its own report.
    """

    def __init__(self, filename: str, verbosity: Optional[str] = None) -> None:
        self.filename = filename
        self.verbosity: str = verbosity or os.getenv(ENV_REPORT_VERBOSITY, VERBOSITY_DEFAULT)
        self.configs_parsed = 0

        self.areas = (MultipleDefinitionArea(), DependencyLoopArea(), MiscArea())
        """
        area_to_instance:
            Mapping from Area class to the Area object. It is used to quickly find the Area object for given Area class.
        """
        self.area_to_instance: Dict[type, Area] = {area.__class__: area for area in self.areas}

    @property
    def status(self) -> int:
        """
        Get the status of the configuration.
        """
        return max(area.report_severity() for area in self.areas) or STATUS_OK

    def add_record(self, area, **kwargs):
        self.area_to_instance[area].add_record(**kwargs)

    def area(self, area) -> Area:
        return self.area_to_instance[area]

    def _make_header(self) -> Table:
        header_table = Table(title_style="bold", show_header=False)
        header_table.box = None
        header_table.add_column("Configuration", justify="left")
        header_table.add_row(f"Kconfig: {self.filename}")
        header_table.add_row(f"Verbosity: {self.verbosity}")
        if self.verbosity == VERBOSITY_VERBOSE:
            header_table.add_row(f"Configs parsed: {self.configs_parsed}")

        status = self.status
        if status == STATUS_OK:
            header_table.add_row("Status: Finished successfully", style="green")
        elif status == STATUS_OK_WITH_INFO:
            header_table.add_row("Status: Finished with notifications", style="green_yellow")
        elif status == STATUS_WARNING:
            header_table.add_row("Status: Finished with warnings", style="yellow")
            if self.verbosity == VERBOSITY_VERBOSE:
                header_table.add_row(
                    "Parsing is successfully finished, but the system has identified situations that probably "
                    "will cause some issues. Please check the relevant areas.",
                    style="yellow",
                )
        else:
            header_table.add_row("Status: Failed", style="red")

        header_table.add_row("")

        return header_table

    def print_report(self, file: Optional[str] = None) -> None:
        if self.verbosity == VERBOSITY_QUIET and self.status in (STATUS_OK, STATUS_OK_WITH_INFO, STATUS_WARNING):
            return

        report_table = Table(title="Configuration Report", title_style="bold", show_header=False, title_justify="left")
        report_table.box = HORIZONTALS
        report_table.add_column("Configuration", justify="center", no_wrap=False)
        report_table.add_row(self._make_header())

        for area in self.areas:
            sub_report = area.print(verbosity=self.verbosity)
            if sub_report:
                report_table.add_row(sub_report)

        if not file:
            console = Console(stderr=True)
            console.print(report_table)
        else:
            with open(file, "w", encoding="utf-8") as f:
                rprint(report_table, file=f)

    def to_json(self) -> dict:
        report_json: Dict = dict()
        report_json["header"] = dict()
        report_json["header"]["report_type"] = "kconfig"
        report_json["header"]["kconfig"] = self.filename
        report_json["header"]["verbosity"] = self.verbosity
        report_json["header"]["status"] = Area.severity_to_str(self.status)
        report_json["header"]["configs_parsed"] = self.configs_parsed

        report_json["areas"] = list()
        for area in self.areas:
            # Status OK means that there is nothing to report in the area
            if area.report_severity() == STATUS_OK:
                continue
            report_json["areas"].append(area.return_json())
        return report_json

    def output_json(self, file: Optional[str] = None) -> None:
        report_json = self.to_json()
        if not file:
            console = Console(stderr=True)
            console.print(json.dumps(report_json, indent=4))
        else:
            with open(file, "w+") as f:
                json.dump(report_json, f, indent=4)
