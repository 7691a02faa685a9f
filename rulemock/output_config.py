"""Log output format selection for the rulemock CLI."""

import os
from typing import Literal, Optional


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"

_ALIASES: dict[str, LogFormat] = {
    "json": "json",
    "plain": "plain",
    "console": "console",
    "auto": "console",
    "rich": "console",
}


def get_log_format(cli_override: Optional[str] = None) -> LogFormat:
    """
    Resolve the log format: CLI option first, then ``CONSOLE_OUTPUT_FORMAT``, then console.

    Unknown values at either level are ignored and resolution falls through.
    """
    for candidate in (cli_override, os.environ.get(ENV_VAR_NAME)):
        if candidate and candidate.lower() in _ALIASES:
            return _ALIASES[candidate.lower()]
    return "console"
