# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
import errno


class KconfigError(Exception):
    """
    Exception raised for Kconfig-related errors.

    Both the preprocessor and the parser stop at the first error they find and
    raise it as a single KconfigError (or subclass) carrying the file, line,
    column and offending source line.
    """


class PreprocessorError(KconfigError):
    """
    Raised when macro expansion fails (undefined macro, unknown handler,
    failing subprocess, unterminated substitution).
    """


class KconfigParseError(KconfigError):
    """
    Raised for syntax errors in Kconfig files, including errors in sourced files.
    """


# If 'errno' and 'strerror' are set on OSError, then __str__() always returns
# "[Errno <errno>] <strerror>", ignoring any custom message passed to the
# constructor. This subclass keeps the custom message while still providing
# 'errno', 'strerror' and 'filename' to callers.
class KconfigIOError(KconfigError, OSError):
    def __init__(self, oserror: OSError, msg: str):
        self.msg = msg
        OSError.__init__(self, oserror.errno, oserror.strerror, oserror.filename)

    def __str__(self):
        return self.msg


def io_error(e: OSError, what: str, filename: str) -> KconfigIOError:
    code = errno.errorcode.get(e.errno, "EIO") if e.errno is not None else "EIO"
    return KconfigIOError(e, f"failed to open {what} {filename} ({code}: {e.strerror})")
