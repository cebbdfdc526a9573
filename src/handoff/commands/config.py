"""Implementation for the ``handoff config`` command."""

from __future__ import annotations

import json

from .. import config
from ..errors import ServiceFailure
from ..io import confirm, die, say
from ..models import HandoffConfig


def show_config(args: object) -> None:
    """Print the resolved configuration, or write a default config file."""
    init_values = bool(getattr(args, "init", False))
    assume_yes = bool(getattr(args, "yes", False))
    target = config.resolve_config_path()

    if init_values:
        if target.exists() and not assume_yes:
            if not confirm(f"Overwrite {target} with defaults?", default=False):
                say("Kept existing config.")
                return
        defaults = HandoffConfig().model_dump(
            mode="json", exclude_none=True, exclude={"remote": {"name"}}
        )
        config.write_json(target, defaults)
        say(f"Wrote {target}")
        return

    try:
        resolved = config.load_config(target)
    except ServiceFailure as exc:
        die(str(exc))
    payload = {"path": str(target), "config": resolved.model_dump(mode="json")}
    say(json.dumps(payload, indent=2))
