import argparse
import datetime
import json
import logging
import os
import shutil
from typing import Optional

from algorithms import ProgressionAdvisor, WeightConverter
from app_context import AppContext
from models import SetRecord


def export_ledger(db_path: str, yaml_path: str, out_path: str) -> None:
    ctx = AppContext(db_path, yaml_path)
    try:
        data = {
            "client_id": ctx.client_id,
            "snapshot": ctx.service.snapshot.model_dump(),
            "rest_overrides": ctx.service.overrides,
        }
    finally:
        ctx.close()
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, yaml_path: str) -> None:
    """Populate the ledger with a few demo logs if it is empty."""
    ctx = AppContext(db_path, yaml_path)
    try:
        if ctx.service.logs():
            print("Ledger already contains logs")
            return
        today = datetime.date.today()
        for weeks_ago, (weight, rir) in enumerate([(62.5, 2), (60.0, 3)]):
            date = (today - datetime.timedelta(weeks=weeks_ago)).isoformat()
            ctx.service.save_log(
                date,
                "bench_press",
                [SetRecord(reps=8, weight=weight, rir=rir) for _ in range(3)],
            )
        print("Demo data inserted")
    finally:
        ctx.close()


def sync_once(db_path: str, yaml_path: str, direction: str) -> int:
    ctx = AppContext(db_path, yaml_path)
    try:
        if not ctx.remote.is_configured():
            print("Remote store is not configured")
            return 1
        future = ctx.sync.pull() if direction == "pull" else ctx.sync.push_logs()
        future.result()
        status = ctx.sync.status
        print(f"{direction}: {status.state}" + (f" ({status.message})" if status.message else ""))
        return 0 if status.state == "synced" else 1
    finally:
        ctx.close()


def ping_remote(db_path: str, yaml_path: str) -> int:
    ctx = AppContext(db_path, yaml_path)
    try:
        reachable, message = ctx.sync.check_remote()
        print("Remote store reachable" if reachable else f"Remote store unreachable: {message}")
        return 0 if reachable else 1
    finally:
        ctx.close()


def advise(db_path: str, yaml_path: str, exercise_id: str, date: Optional[str]) -> None:
    ctx = AppContext(db_path, yaml_path)
    try:
        unit = ctx.settings.get_text("weight_unit", "kg")
        suggestion = ctx.service.advise(exercise_id, date)
        weight = WeightConverter.to_display(suggestion.weight, unit)
        target = f"{weight:g} {unit} x {suggestion.reps}" if weight is not None else f"{suggestion.reps} reps"
        print(f"{target}: {suggestion.message}")
        print(f"Rest {ctx.service.rest_seconds(exercise_id)}s")
    finally:
        ctx.close()


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Training ledger utility commands")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="cmd", required=True)
    default_db = os.environ.get("LEDGER_DB", "ledger.db")

    exp = sub.add_parser("export")
    exp.add_argument("--db", default=default_db)
    exp.add_argument("--yaml", default="settings.yaml")
    exp.add_argument("--out", default="ledger.json")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default=default_db)
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default=default_db)

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default=default_db)
    demo.add_argument("--yaml", default="settings.yaml")

    for name in ("pull", "push", "ping"):
        cmd = sub.add_parser(name)
        cmd.add_argument("--db", default=default_db)
        cmd.add_argument("--yaml", default="settings.yaml")

    adv = sub.add_parser("advise")
    adv.add_argument("exercise")
    adv.add_argument("--date")
    adv.add_argument("--db", default=default_db)
    adv.add_argument("--yaml", default="settings.yaml")

    prs = sub.add_parser("parse")
    prs.add_argument("text")

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=["kg", "lb"], required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.add_argument("--db", default=default_db)

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())

    if args.cmd == "export":
        export_ledger(args.db, args.yaml, args.out)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml)
    elif args.cmd == "ping":
        return ping_remote(args.db, args.yaml)
    elif args.cmd in ("pull", "push"):
        return sync_once(args.db, args.yaml, args.cmd)
    elif args.cmd == "advise":
        advise(args.db, args.yaml, args.exercise, args.date)
    elif args.cmd == "parse":
        print(json.dumps(ProgressionAdvisor.parse_prescription(args.text).model_dump(), ensure_ascii=False))
    elif args.cmd == "convert":
        if args.unit == "kg":
            print(f"{args.weight} kg = {WeightConverter.kg_to_lb(args.weight)} lb")
        else:
            print(f"{args.weight} lb = {WeightConverter.lb_to_kg(args.weight)} kg")
    elif args.cmd == "serve":
        import uvicorn

        os.environ["LEDGER_DB"] = args.db
        uvicorn.run("rest_api:app", host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
