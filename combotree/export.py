"""
Report export for a session.

Supports JSON (full report) and CSV (one row per leaf) output. The report
carries enough to reconstruct results: dimensions, result dimensions, and
per leaf its path, per-key results and remark.
"""

from datetime import datetime
import json
from pathlib import Path
from typing import Literal

import pandas as pd

from combotree.core.status import derived_leaf_status
from combotree.session import Session


def build_report(session: Session) -> dict:
    """Serializable snapshot of the session's schema and leaf results."""
    schema = session.schema
    return {
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        "dimensions": [
            {"name": d.name, "key": d.key, "values": list(d.values)} for d in schema.dimensions
        ],
        "result_dimensions": [
            {"name": rd.name, "key": rd.key} for rd in schema.result_dimensions
        ],
        "leaves": [
            {
                "id": leaf.id,
                "path": list(leaf.path),
                "results": {k: v.value for k, v in leaf.results.items()},
                "status": derived_leaf_status(leaf).value,
                "remark": leaf.remark,
            }
            for leaf in session.tree.leaves
        ],
        "summary": session.summary().as_dict(),
    }


def report_to_dataframe(report: dict) -> pd.DataFrame:
    """
    One row per leaf.

    Columns: one per dimension (by name), one per result key, then
    `status` and `remark`.
    """
    dim_names = [d["name"] for d in report["dimensions"]]
    rows = []
    for leaf in report["leaves"]:
        row = dict(zip(dim_names, leaf["path"]))
        row.update(leaf["results"])
        row["status"] = leaf["status"]
        row["remark"] = leaf["remark"]
        rows.append(row)

    result_keys = list(report["leaves"][0]["results"]) if report["leaves"] else []
    columns = dim_names + result_keys + ["status", "remark"]
    return pd.DataFrame(rows, columns=columns)


def write_report_json(session: Session, output_path: str | Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(build_report(session), f, indent=2)
    return output_path


def write_report_csv(session: Session, output_path: str | Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    report_to_dataframe(build_report(session)).to_csv(output_path, index=False)
    return output_path


def write_report(
    session: Session,
    output_path: str | Path,
    format: Literal["json", "csv"] = "json",
) -> Path:
    """Write the session report in the requested format."""
    if format == "json":
        return write_report_json(session, output_path)
    elif format == "csv":
        return write_report_csv(session, output_path)
    else:
        raise ValueError(f"Unknown format: {format}")
