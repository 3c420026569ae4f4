# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
import os
from enum import Enum


class MissingMainmenuPolicy(Enum):
    ERROR = "error"
    EMPTY = "empty"
    IMPLICIT = "implicit"

    @property
    def description(self) -> str:
        """Return a human-readable description of the policy."""
        if self == MissingMainmenuPolicy.ERROR:
            return "Kconfig files without a mainmenu are rejected"
        elif self == MissingMainmenuPolicy.EMPTY:
            return "Kconfig files without a mainmenu produce no result"
        elif self == MissingMainmenuPolicy.IMPLICIT:
            return "The first top-level entry is used as the root menu"
        else:
            return "Unknown policy"

    @classmethod
    def from_env(cls) -> "MissingMainmenuPolicy":
        value = os.environ.get(ENV_MISSING_MAINMENU, cls.ERROR.value)
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Invalid value '{value}' of {ENV_MISSING_MAINMENU}. "
                f"Expected one of: {', '.join(p.value for p in cls)}"
            )


# Environment variables read by the library
ENV_MISSING_MAINMENU = "UKCONFIG_MISSING_MAINMENU"
ENV_REPORT_VERBOSITY = "UKCONFIG_REPORT_VERBOSITY"
ENV_DEBUG = "UKCONFIG_DEBUG"

YES = "y"
MOD = "m"
# Value of entries which are not set. Chosen so it is obvious when some code
# writes it to a file directly.
NO = "---===[[[is not set]]]===---"

DEFAULT_CONFIG_PREFIX = "CONFIG_"
DOT_CONFIG_FILE_NAME = ".config"


def config_prefix() -> str:
    return os.getenv("CONFIG_", DEFAULT_CONFIG_PREFIX)
