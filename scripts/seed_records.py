#!/usr/bin/env python3
import argparse
import asyncio
import json
import os
import sys

# Ensure repository root is importable (for 'tool_server' package)
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from tool_server.client import ToolClient


async def seed(path: str, server_config: str | None):
    """
    Load {"patients": [...], "prescriptions": [...]} through the tool server so
    every write goes through the same validation as a live caller.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    command = [sys.executable, "-m", "tool_server.main"]
    if server_config:
        command += ["--config", server_config]

    async with ToolClient(command, cwd=REPO_ROOT) as tools:
        for patient in data.get("patients", []):
            await tools.call_tool("create_or_update_patient", patient)
        for entry in data.get("prescriptions", []):
            await tools.call_tool("add_prescription", entry)
        patients = await tools.call_tool_json("get_all_patients")
    print(f"[seed_records] {len(patients)} patient(s), {len(data.get('prescriptions', []))} prescription(s) loaded")


def main():
    p = argparse.ArgumentParser(description="Seed the record store from a JSON file")
    p.add_argument("input", help="JSON file with 'patients' and 'prescriptions' lists")
    p.add_argument("--server-config", default=None, help="Path to tool server YAML config")
    args = p.parse_args()
    asyncio.run(seed(args.input, args.server_config))


if __name__ == "__main__":
    main()
