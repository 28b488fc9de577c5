#!/usr/bin/env python3
import argparse
import asyncio
import os
import sys

# Ensure repository root is importable (for 'agents' and 'tool_server' packages)
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from agents.prescription_agent import PrescriptionAgent
from tool_server.client import ToolClient
from tool_server.errors import ToolError


async def run(args):
    command = [sys.executable, "-m", "tool_server.main"]
    if args.server_config:
        command += ["--config", args.server_config]

    async with ToolClient(command, cwd=REPO_ROOT) as tools:
        if args.dry_run_retrieval:
            print(f"[rx_query] Dry-run retrieval only for patient {args.patient_id}")
            text = await tools.call_tool_text(
                "get_similar_prescriptions", {"patient_id": args.patient_id, "symptoms": args.symptoms}
            )
            print(text)
            return

        agent = PrescriptionAgent(args.config, tools)
        print(f"[rx_query] Using model {agent.model_name} at {agent.llm_url}")
        prescription = await agent.generate_prescription(args.patient_id, args.symptoms)
        print(prescription)
        if args.save:
            print(await agent.save_prescription(args.patient_id, args.symptoms, prescription, args.doctor_id))


def main():
    p = argparse.ArgumentParser(description="Draft a prescription from similar past cases")
    p.add_argument("--config", default="configs/prescription_agent.yaml", help="Path to PrescriptionAgent YAML config")
    p.add_argument("--server-config", default=None, help="Path to tool server YAML config")
    p.add_argument("--patient-id", required=True)
    p.add_argument("--symptoms", required=True)
    p.add_argument("--doctor-id", default="doctor1")
    p.add_argument("--dry-run-retrieval", action="store_true", help="Only run retrieval, skip LLM call")
    p.add_argument("--save", action="store_true", help="Log the generated prescription")
    args = p.parse_args()

    try:
        asyncio.run(run(args))
    except ToolError as e:
        print(f"[rx_query] {e.kind}: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
