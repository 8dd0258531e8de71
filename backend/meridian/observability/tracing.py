from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from meridian.config.runtime_paths import get_trace_dir

logger = logging.getLogger(__name__)


def create_trace_id() -> str:
    return str(uuid.uuid4())


def trace_event(
    trace_id: str,
    step_name: str,
    inputs_ref: Optional[Dict[str, Any]] = None,
    outputs_ref: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
    export: Optional[str] = None,
) -> None:
    event = {
        "trace_id": trace_id,
        "step_name": step_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "inputs_ref": inputs_ref or {},
        "outputs_ref": outputs_ref or {},
        "notes": notes or "",
    }
    logger.debug("trace %s %s inputs=%s outputs=%s", trace_id, step_name, event["inputs_ref"], event["outputs_ref"])

    exporters = (export or os.getenv("TRACE_EXPORT", "none")).lower().split(",")
    if "jsonl" not in exporters:
        return
    try:
        path = get_trace_dir() / f"{trace_id}.jsonl"
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")
    except OSError as exc:
        logger.warning("Trace export failed for %s: %s", trace_id, exc)


def read_trace(trace_id: str) -> List[Dict[str, Any]]:
    path = get_trace_dir() / f"{trace_id}.jsonl"
    if not path.exists():
        return []
    events: List[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return events
