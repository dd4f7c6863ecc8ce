#!/usr/bin/env python3
"""
Run one check pass and print its JSON summary. Meant for crontab or a platform scheduler.
Usage: python run_checks.py monitors|domains
"""
import json
import logging
import sys
from api.dependencies import build_monitor_service
from db.engine import SessionLocal

PASSES = {
    "monitors": lambda service: service.check_due_monitors(),
    "domains": lambda service: service.check_due_domains(),
}


def run_pass(name: str) -> dict:
    db = SessionLocal()
    try:
        summary = PASSES[name](build_monitor_service(db))
        return summary.to_dict()
    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) != 2 or sys.argv[1] not in PASSES:
        print("Usage: python run_checks.py monitors|domains")
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    print(json.dumps(run_pass(sys.argv[1])))
