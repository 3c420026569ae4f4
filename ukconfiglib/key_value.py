# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
"""
Key/value bindings used to seed the preprocessor environment.

A KeyValueMap maps a key to its KeyValue. The same map object is shared by the
preprocessor and the parser of every file taking part in a single parse, so
assignments done in one file are visible in the rest of the parse.
"""

from dataclasses import dataclass
from typing import Iterable
from typing import List
from typing import Mapping
from typing import Optional


@dataclass
class KeyValue:
    key: str
    value: str = ""

    @classmethod
    def from_string(cls, text: str) -> "KeyValue":
        """
        Build a KeyValue from a "KEY=VALUE" string. A string without "=" is a key with an empty value.
        """
        key, _, value = text.partition("=")
        return cls(key=key, value=value)

    def __str__(self) -> str:
        return f"{self.key}={self.value}"


class KeyValueMap(dict):
    @classmethod
    def from_strings(cls, *values: str) -> "KeyValueMap":
        kvm = cls()
        for value in values:
            kvm.override(KeyValue.from_string(value))
        return kvm

    @classmethod
    def from_map(cls, mapping: Mapping[str, str]) -> "KeyValueMap":
        return cls((key, KeyValue(key, str(value))) for key, value in mapping.items())

    @classmethod
    def from_slice(cls, values: Iterable[KeyValue]) -> "KeyValueMap":
        kvm = cls()
        for kv in values:
            kvm[kv.key] = kv
        return kvm

    @classmethod
    def from_file(cls, filename: str, prefix: Optional[str] = None) -> "KeyValueMap":
        """
        Load the values of a .config file. Entries which are not set are skipped,
        names are stored without the config prefix.
        """
        from .dotconfig import parse_config  # dotconfig depends on this module

        return parse_config(filename, prefix=prefix).to_key_value_map()

    @classmethod
    def coerce(cls, env) -> "KeyValueMap":
        """
        Return a new KeyValueMap built from a KeyValueMap, a plain str -> str mapping,
        or an iterable of KeyValue objects.
        """
        if env is None:
            return cls()
        if isinstance(env, KeyValueMap):
            return cls(env)
        if isinstance(env, Mapping):
            return cls.from_map(env)
        return cls.from_slice(env)

    def value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        kv = self.get(key)
        return default if kv is None else kv.value

    def set(self, key: str, value: str) -> "KeyValueMap":
        self[key] = KeyValue(key, value)
        return self

    def unset(self, key: str) -> "KeyValueMap":
        self.pop(key, None)
        return self

    def override(self, *kvs: KeyValue) -> "KeyValueMap":
        for kv in kvs:
            self[kv.key] = kv
        return self

    def override_by(self, other: Mapping[str, KeyValue]) -> "KeyValueMap":
        self.update(other)
        return self

    def slice(self) -> List[KeyValue]:
        return list(self.values())

    def to_dict(self) -> dict:
        return {key: kv.value for key, kv in self.items()}
