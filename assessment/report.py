import csv
import io
from html import escape
from typing import Dict, List, Optional

from .models import IntegrityEvent, IntegrityEventType, Problem, Snapshot, TestSession


EVENT_WEIGHTS = {
    IntegrityEventType.COPY.value: 2,
    IntegrityEventType.CUT.value: 2,
    IntegrityEventType.PASTE.value: 5,
    IntegrityEventType.TAB_SWITCH.value: 3,
    IntegrityEventType.WINDOW_BLUR.value: 1,
}


def summarize_events(events: List[IntegrityEvent]) -> Dict[str, int]:
    counts: Dict[str, int] = {kind.value: 0 for kind in IntegrityEventType}
    for e in events:
        counts[IntegrityEventType(e.event_type).value] += 1
    return counts


def compute_integrity_score(counts: Dict[str, int]) -> int:
    score = 100
    for k, v in counts.items():
        score -= v * EVENT_WEIGHTS.get(k, 0)
    return max(0, score)


def count_flagged(snapshots: List[Snapshot]) -> int:
    return sum(1 for s in snapshots if s.observation and s.observation.get("suspicious"))


def session_duration_seconds(session: TestSession) -> int:
    if session.end_time is None:
        return 0
    return int((session.end_time - session.start_time).total_seconds())


def build_report(
    session: TestSession,
    problem: Problem,
    events: List[IntegrityEvent],
    snapshots: List[Snapshot],
) -> Dict[str, object]:
    counts = summarize_events(events)
    return {
        "session_id": session.id,
        "title": problem.title,
        "status": session.status.value,
        "started_at": session.start_time,
        "submitted_at": session.end_time,
        "duration_seconds": session_duration_seconds(session),
        "late": session.late,
        "event_counts": counts,
        "total_events": sum(counts.values()),
        "snapshot_count": len(snapshots),
        "flagged_snapshots": count_flagged(snapshots),
        "integrity_score": compute_integrity_score(counts),
    }


def build_html_report_content(report: Dict[str, object], snapshots: Optional[List[Snapshot]] = None) -> str:
    counts: Dict[str, int] = report["event_counts"]  # type: ignore[assignment]
    items = "\n".join(
        f"                <li>{escape(kind.replace('_', ' ').capitalize())}: {count}</li>"
        for kind, count in counts.items()
    )
    gallery = "\n".join(
        f"            <img src='{escape(s.image_url)}' title='{s.timestamp.isoformat()}' />"
        for s in (snapshots or [])
    )
    return f"""
    <!doctype html>
    <html>
    <head>
        <meta charset='utf-8' />
        <title>Assessment Integrity Report</title>
        <style>
            body {{ font-family: Arial, sans-serif; padding: 24px; }}
            h1 {{ margin-top: 0; }}
            .grid {{ display: grid; grid-template-columns: 240px 1fr; gap: 8px 16px; }}
            .card {{ border: 1px solid #e5e7eb; border-radius: 8px; padding: 16px; margin-top: 16px; }}
            .card img {{ width: 160px; margin: 4px; border-radius: 4px; }}
        </style>
    </head>
    <body>
        <h1>Assessment Integrity Report</h1>
        <div class='grid'>
            <div><strong>Problem</strong></div><div>{escape(str(report['title']))}</div>
            <div><strong>Session ID</strong></div><div>{report['session_id']}</div>
            <div><strong>Status</strong></div><div>{report['status']}</div>
            <div><strong>Started</strong></div><div>{report['started_at']}</div>
            <div><strong>Submitted</strong></div><div>{report['submitted_at'] or ''}</div>
            <div><strong>Duration (s)</strong></div><div>{report['duration_seconds']}</div>
            <div><strong>Late</strong></div><div>{'yes' if report['late'] else 'no'}</div>
            <div><strong>Integrity Score</strong></div><div>{report['integrity_score']}</div>
        </div>

        <div class='card'>
            <h3>Integrity Events</h3>
            <ul>
{items}
            </ul>
        </div>

        <div class='card'>
            <h3>Snapshots ({report['snapshot_count']}, flagged {report['flagged_snapshots']})</h3>
{gallery}
        </div>
    </body>
    </html>
    """


def build_csv_report_content(report: Dict[str, object]) -> str:
    counts: Dict[str, int] = report["event_counts"]  # type: ignore[assignment]
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["field", "value"])
    for field in ("session_id", "title", "status", "started_at", "submitted_at",
                  "duration_seconds", "late", "snapshot_count", "flagged_snapshots",
                  "integrity_score"):
        value = report[field]
        writer.writerow([field, "" if value is None else value])
    for kind, count in counts.items():
        writer.writerow([f"{kind}_count", count])
    return buffer.getvalue()
