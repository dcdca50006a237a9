from datetime import timedelta

from assessment.models import IntegrityEvent, Snapshot, TestSession
from assessment.report import (
    build_csv_report_content,
    build_html_report_content,
    build_report,
    compute_integrity_score,
    summarize_events,
)
from tests.conftest import NOW


def _events(*kinds):
    return [IntegrityEvent(session_id="s1", event_type=k, timestamp=NOW) for k in kinds]


def test_summarize_counts_every_kind():
    counts = summarize_events(_events("copy", "copy", "window_blur"))
    assert counts == {"copy": 2, "paste": 0, "cut": 0, "tab_switch": 0, "window_blur": 1}


def test_score_is_floored_at_zero():
    assert compute_integrity_score({"paste": 30}) == 0
    assert compute_integrity_score({"copy": 1, "window_blur": 2}) == 96


def test_report_and_renderings(problem):
    session = TestSession(
        id="s1", problem_id=problem.id,
        start_time=NOW - timedelta(minutes=20), end_time=NOW, status="completed",
    )
    snapshots = [
        Snapshot(session_id="s1", image_url="/uploads/snapshots/a.jpg", timestamp=NOW,
                 observation={"suspicious": True, "reason": "phone"}),
        Snapshot(session_id="s1", image_url="/uploads/snapshots/b.jpg", timestamp=NOW),
    ]
    report = build_report(session, problem, _events("cut"), snapshots)

    assert report["duration_seconds"] == 1200
    assert report["flagged_snapshots"] == 1
    assert report["integrity_score"] == 98

    html = build_html_report_content(report, snapshots)
    assert "Two Sum" in html
    assert "/uploads/snapshots/b.jpg" in html

    csv_text = build_csv_report_content(report)
    assert "cut_count,1" in csv_text
    assert "flagged_snapshots,1" in csv_text
