"""Shell quoting and remote script assembly.

Every value interpolated into a remote script goes through ``sh_quote``.

Example:
    >>> print(sh_quote("it's"))
    'it'"'"'s'
    >>> remote_script("echo hi").splitlines()
    ['set -euo pipefail', 'echo hi']
"""

from __future__ import annotations

STRICT_MODE = "set -euo pipefail"


def sh_quote(value: str) -> str:
    """Quote ``value`` as a single POSIX shell word.

    Embedded single quotes close the quoted run, emit a double-quoted
    quote, and reopen it (``'"'"'``).
    """
    return "'" + value.replace("'", "'\"'\"'") + "'"


def remote_script(*lines: str) -> str:
    """Join script lines behind the strict-mode preamble."""
    return "\n".join([STRICT_MODE, *lines])
