# flows/diagnostic.py
# Quick check that API keys are loaded from the environment / .env.
# Usage: python -m flows.diagnostic

import os
import sys
from typing import List, Mapping, Optional

from core.config import CREDENTIAL_LIST_VAR, CREDENTIAL_PREFIX, CREDENTIAL_SLOTS
from core.credential_pool import load_credentials

PREVIEW_CHARS = 8


def mask(key: str) -> str:
    return key[:PREVIEW_CHARS] + "..."


def build_report(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    env = os.environ if environ is None else environ
    lines = ["=" * 60, "API KEY DIAGNOSTIC", "=" * 60, "", "Environment Variables:"]

    for slot in range(1, CREDENTIAL_SLOTS + 1):
        name = f"{CREDENTIAL_PREFIX}{slot}"
        if (env.get(name) or "").strip():
            lines.append(f"  {name}: set")
        elif slot <= 2:
            lines.append(f"  {name}: not set")
    listed = [k for k in (env.get(CREDENTIAL_LIST_VAR) or "").split(",") if k.strip()]
    lines.append(f"  {CREDENTIAL_LIST_VAR}: {len(listed)} key(s)")

    keys = load_credentials(env)
    lines.append("")
    lines.append(f"Loaded API Keys: {len(keys)}")

    if keys:
        for index, key in enumerate(keys, 1):
            lines.append(f"  Key {index}: {mask(key)}")
    else:
        lines.extend([
            "",
            "WARNING: No API keys loaded!",
            "",
            "To fix this:",
            "1. Create/edit the .env file in the project root",
            "2. Add these lines:",
            f"   {CREDENTIAL_PREFIX}1=your_first_key_here",
            f"   {CREDENTIAL_PREFIX}2=your_second_key_here",
            "3. Restart the server",
        ])

    lines.extend(["", "=" * 60])
    return lines


def main() -> int:
    print("\n".join(build_report()))
    return 0 if load_credentials() else 1


if __name__ == "__main__":
    sys.exit(main())
