# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
"""
Kconfig language support for Unikraft: macro preprocessor, Kconfig parser,
dependency resolver and .config file model.
"""

from .constants import DOT_CONFIG_FILE_NAME
from .constants import MOD
from .constants import NO
from .constants import YES
from .constants import MissingMainmenuPolicy
from .dotconfig import DotConfigFile
from .dotconfig import KConfigValue
from .dotconfig import KConfigValues
from .dotconfig import env_lookup
from .dotconfig import parse_config
from .dotconfig import parse_config_data
from .errors import KconfigError
from .errors import KconfigIOError
from .errors import KconfigParseError
from .errors import PreprocessorError
from .expr import And
from .expr import Compare
from .expr import Expr
from .expr import Literal
from .expr import Not
from .expr import Or
from .expr import Symbol
from .expr import expr_and
from .expr import expr_items
from .expr import parse_expr
from .kconfig_parser import Parser
from .kconfig_parser import parse
from .kconfig_parser import parse_data
from .key_value import KeyValue
from .key_value import KeyValueMap
from .macros import DEFAULT_HANDLERS
from .macros import MacroContext
from .menu import ConfigType
from .menu import KConfigFile
from .menu import KConfigMenu
from .menu import MenuKind
from .preprocessor import Preprocessor
from .preprocessor import preamble_env
from .preprocessor import preprocess
from .preprocessor import preprocess_file
from .scanner import LineScanner
