# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
"""
Model of a .config file (resolved values of config options).

Config names never include the CONFIG_ prefix here; the prefix is only added
and removed when the file is parsed or serialized. Use YES/MOD/NO to check for
or set particular values. Lines which are neither an assignment nor a
"is not set" comment are kept verbatim and attached to the entry that follows
them (or to the end of the file).
"""

import copy
import os
import re
from typing import Callable
from typing import Dict
from typing import Iterator
from typing import List
from typing import Optional
from typing import Tuple

from .constants import MOD
from .constants import NO
from .constants import YES
from .constants import config_prefix
from .errors import KconfigError
from .errors import io_error
from .key_value import KeyValueMap

# y, m, decimal and hex numbers, quoted strings
_VALUE_PATTERN = r'(y|m|(?:-?[0-9]+)|(?:0x[0-9a-fA-F]+)|(?:".*?"))'
_VALUE_RE = re.compile(r"^" + _VALUE_PATTERN + r"$")
_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


class KConfigValue:
    def __init__(self, name: str, value: str, comments: Optional[List[str]] = None) -> None:
        self.name = name
        self.value = value
        # Lines preceding the entry in the file
        self.comments: List[str] = comments if comments is not None else []

    @property
    def is_set(self) -> bool:
        return self.value != NO

    def __eq__(self, other) -> bool:
        if not isinstance(other, KConfigValue):
            return NotImplemented
        return (self.name, self.value, self.comments) == (other.name, other.value, other.comments)

    def __repr__(self) -> str:
        return f"KConfigValue({self.name!r}, {self.value!r})"


class DotConfigFile:
    """
    Parsed .config file. Entries keep the order in which they were first set.

    configs:
      Entries in file order.
    map:
      The same entries by name.
    comments:
      Comment lines not yet attached to an entry; they are attached to the next
      entry added by set(), or written at the end of the file.
    """

    def __init__(self, prefix: Optional[str] = None) -> None:
        self.prefix = prefix if prefix is not None else config_prefix()
        self.configs: List[KConfigValue] = []
        self.map: Dict[str, KConfigValue] = {}
        self.comments: List[str] = []

        escaped = re.escape(self.prefix)
        self._re_config_y = re.compile(r"^" + escaped + r"([A-Za-z0-9_]+)=" + _VALUE_PATTERN + r"$")
        self._re_config_n = re.compile(r"^# " + escaped + r"([A-Za-z0-9_]+) is not set$")

    def value(self, name: str) -> str:
        """
        Value of the config 'name', or NO if it is not present at all.
        """
        cfg = self.map.get(name)
        if cfg is None:
            return NO
        return cfg.value

    def set(self, name: str, value: str) -> None:
        """
        Change the value of 'name', or add it at the end if it is not present yet.
        A new entry takes over the pending comments. Raises KconfigError if
        'value' (or 'name') could not be read back from the serialized file.
        """
        if not _NAME_RE.match(name):
            raise KconfigError(f"invalid config name '{name}'")
        if value != NO and not _VALUE_RE.match(value):
            raise KconfigError(
                f"invalid value '{value}' for config {name} (expected y, m, a number or a quoted string)"
            )

        cfg = self.map.get(name)
        if cfg is not None:
            cfg.value = value
            return

        cfg = KConfigValue(name, value, comments=self.comments)
        self.map[name] = cfg
        self.configs.append(cfg)
        self.comments = []

    def unset(self, name: str) -> None:
        """
        Set the value of 'name' to NO. Names which are not present are ignored.
        """
        cfg = self.map.get(name)
        if cfg is None:
            return
        cfg.value = NO

    def mod_to_yes(self) -> None:
        self._replace_mod(YES)

    def mod_to_no(self) -> None:
        self._replace_mod(NO)

    def _replace_mod(self, value: str) -> None:
        for cfg in self.configs:
            if cfg.value == MOD:
                cfg.value = value

    def serialize(self) -> str:
        lines = []
        for cfg in self.configs:
            lines.extend(cfg.comments)
            if cfg.value == NO:
                lines.append(f"# {self.prefix}{cfg.name} is not set")
            else:
                lines.append(f"{self.prefix}{cfg.name}={cfg.value}")
        lines.extend(self.comments)
        return "".join(f"{line}\n" for line in lines)

    def write(self, filename: str) -> bool:
        """
        Write the serialized file to 'filename' if its contents differ. Returns True
        if the file was written.
        """
        contents = self.serialize()
        try:
            with open(filename, "r", encoding="utf-8") as f:
                if f.read() == contents:
                    return False
        except FileNotFoundError:
            pass
        except OSError as e:
            raise io_error(e, ".config file", filename)

        try:
            with open(filename, "w", encoding="utf-8") as f:
                f.write(contents)
        except OSError as e:
            raise io_error(e, ".config file", filename)
        return True

    def clone(self) -> "DotConfigFile":
        return copy.deepcopy(self)

    def to_key_value_map(self) -> KeyValueMap:
        """
        Values of the entries which are set, by name (without the prefix).
        """
        kvm = KeyValueMap()
        for cfg in self.configs:
            if cfg.is_set:
                kvm.set(cfg.name, cfg.value)
        return kvm

    def parse_line(self, text: str) -> None:
        match = self._re_config_y.match(text)
        if match:
            self.set(match.group(1), match.group(2))
            return

        match = self._re_config_n.match(text)
        if match:
            self.set(match.group(1), NO)
            return

        self.comments.append(text)

    def __contains__(self, name: str) -> bool:
        return name in self.map

    def __len__(self) -> int:
        return len(self.configs)

    def __iter__(self) -> Iterator[KConfigValue]:
        return iter(self.configs)


def parse_config(filename: str, prefix: Optional[str] = None) -> DotConfigFile:
    try:
        with open(filename, "r", encoding="utf-8") as f:
            data = f.read()
    except OSError as e:
        raise io_error(e, ".config file", filename)

    return parse_config_data(data, filename, prefix=prefix)


def parse_config_data(data: str, file: Optional[str] = None, prefix: Optional[str] = None) -> DotConfigFile:
    # 'file' is only informative, the data never refers to it
    cf = DotConfigFile(prefix=prefix)
    for line in data.splitlines():
        cf.parse_line(line)
    return cf


class KConfigValues(dict):
    """
    Values given by the user (e.g. on the command line), by name. A name given
    without "=" maps to None until resolve() finds a value for it.
    """

    @classmethod
    def from_strings(cls, *values: str) -> "KConfigValues":
        kcv = cls()
        for text in values:
            name, sep, value = text.partition("=")
            kcv[name] = KConfigValue(name, value) if sep else None
        return kcv

    def override_by(self, other: Dict[str, Optional[KConfigValue]]) -> "KConfigValues":
        self.update(other)
        return self

    def set(self, name: str, value: str) -> "KConfigValues":
        self[name] = KConfigValue(name, value)
        return self

    def unset(self, name: str) -> "KConfigValues":
        self.pop(name, None)
        return self

    def resolve(self, lookup: Callable[[str], Tuple[str, bool]]) -> "KConfigValues":
        """
        Fill in the names without a value using 'lookup', which returns (value, found).
        """
        for name, cfg in list(self.items()):
            if cfg is None:
                value, found = lookup(name)
                if found:
                    self[name] = KConfigValue(name, value)
        return self

    def remove_empty(self) -> "KConfigValues":
        for name, cfg in list(self.items()):
            if cfg is None or cfg.value == "":
                del self[name]
        return self

    def apply(self, dot_config: DotConfigFile) -> DotConfigFile:
        """
        Set every value on 'dot_config'. Names without a value are unset.
        """
        for name, cfg in self.items():
            if cfg is None:
                dot_config.unset(name)
            else:
                dot_config.set(name, cfg.value)
        return dot_config


def env_lookup(name: str) -> Tuple[str, bool]:
    value = os.environ.get(name)
    return (value or "", value is not None)
