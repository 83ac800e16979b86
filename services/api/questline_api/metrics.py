from __future__ import annotations

from collections import Counter
from threading import Lock
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from questline_api.models import Event, UserQuest


_HTTP_LOCK = Lock()
_HTTP_REQUESTS: Counter[tuple[str, str, str]] = Counter()
_HTTP_LATENCY_BUCKETS_S: tuple[float, ...] = (
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)
_HTTP_LATENCY_BINS: dict[tuple[str, str], list[int]] = {}
_HTTP_LATENCY_SUM_S: dict[tuple[str, str], float] = {}
_HTTP_LATENCY_COUNT: dict[tuple[str, str], int] = {}

# (metric name, sorted label items) -> count
_DOMAIN_COUNTERS: Counter[tuple[str, tuple[tuple[str, str], ...]]] = Counter()

_DOMAIN_HELP: dict[str, str] = {
    "questline_quest_accepts_total": "Quest acceptances by outcome (in-process).",
    "questline_step_submissions_total": "Step submissions by outcome (in-process).",
    "questline_rewards_applied_total": "Reward applications by source kind (in-process).",
    "questline_synergy_bonus_total": "Quest completions that earned the friend synergy bonus (in-process).",
}


def inc_counter(name: str, **labels: str) -> None:
    key = (str(name), tuple(sorted((str(k), str(v)) for k, v in labels.items())))
    with _HTTP_LOCK:
        _DOMAIN_COUNTERS[key] += 1


def observe_http_request(
    *,
    path: str,
    method: str,
    status: str,
    duration_ms: float | None = None,
) -> None:
    path_s = str(path)
    method_s = str(method)
    status_s = str(status)

    dur_s: float | None = None
    if duration_ms is not None:
        try:
            dur_s = max(0.0, float(duration_ms) / 1000.0)
        except Exception:  # noqa: BLE001
            dur_s = None

    key = (path_s, method_s, status_s)
    latency_key = (path_s, method_s)

    with _HTTP_LOCK:
        _HTTP_REQUESTS[key] += 1

        if dur_s is not None:
            bins = _HTTP_LATENCY_BINS.get(latency_key)
            if bins is None:
                bins = [0 for _ in range(len(_HTTP_LATENCY_BUCKETS_S) + 1)]
                _HTTP_LATENCY_BINS[latency_key] = bins

            idx = len(_HTTP_LATENCY_BUCKETS_S)
            for i, edge in enumerate(_HTTP_LATENCY_BUCKETS_S):
                if dur_s <= float(edge):
                    idx = i
                    break
            bins[idx] += 1

            _HTTP_LATENCY_SUM_S[latency_key] = float(
                _HTTP_LATENCY_SUM_S.get(latency_key, 0.0)
            ) + float(dur_s)
            _HTTP_LATENCY_COUNT[latency_key] = int(
                _HTTP_LATENCY_COUNT.get(latency_key, 0)
            ) + 1


def _snapshot_http() -> list[tuple[tuple[str, str, str], int]]:
    with _HTTP_LOCK:
        return list(_HTTP_REQUESTS.items())


def _snapshot_latency() -> list[tuple[tuple[str, str], list[int], float, int]]:
    with _HTTP_LOCK:
        out: list[tuple[tuple[str, str], list[int], float, int]] = []
        for key, bins in _HTTP_LATENCY_BINS.items():
            out.append(
                (
                    key,
                    list(bins),
                    float(_HTTP_LATENCY_SUM_S.get(key, 0.0)),
                    int(_HTTP_LATENCY_COUNT.get(key, 0)),
                )
            )
        return out


def _snapshot_domain() -> dict[str, list[tuple[dict[str, str], int]]]:
    with _HTTP_LOCK:
        items = list(_DOMAIN_COUNTERS.items())
    out: dict[str, list[tuple[dict[str, str], int]]] = {}
    for (name, labels), value in sorted(items):
        out.setdefault(name, []).append((dict(labels), int(value)))
    return out


def _fmt_labels(**labels: str) -> str:
    def esc(value: str) -> str:
        return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')

    parts = [f'{k}="{esc(v)}"' for k, v in labels.items()]
    return "{" + ",".join(parts) + "}" if parts else ""


def _render_counter(
    *,
    name: str,
    help_text: str,
    rows: Iterable[tuple[dict[str, str], int]],
) -> str:
    lines: list[str] = [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} counter",
    ]
    for labels, value in rows:
        lines.append(f"{name}{_fmt_labels(**labels)} {int(value)}")
    return "\n".join(lines) + "\n"


def _render_gauge(
    *,
    name: str,
    help_text: str,
    rows: Iterable[tuple[dict[str, str], int]],
) -> str:
    lines: list[str] = [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} gauge",
    ]
    for labels, value in rows:
        lines.append(f"{name}{_fmt_labels(**labels)} {int(value)}")
    return "\n".join(lines) + "\n"


def _render_histogram(
    *,
    name: str,
    help_text: str,
    buckets: Iterable[float],
    rows: Iterable[tuple[dict[str, str], list[int], float, int]],
) -> str:
    lines: list[str] = [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} histogram",
    ]
    bucket_edges = [float(b) for b in buckets]
    for labels, bin_counts, sum_s, count in rows:
        base_labels = dict(labels)
        cumulative = 0
        for i, edge in enumerate(bucket_edges):
            cumulative += int(bin_counts[i]) if i < len(bin_counts) else 0
            lines.append(
                f"{name}_bucket{_fmt_labels(**base_labels, le=str(edge))} {cumulative}"
            )
        cumulative += int(bin_counts[len(bucket_edges)]) if len(bin_counts) > len(
            bucket_edges
        ) else 0
        lines.append(
            f"{name}_bucket{_fmt_labels(**base_labels, le='+Inf')} {cumulative}"
        )
        lines.append(f"{name}_sum{_fmt_labels(**base_labels)} {float(sum_s):.6f}")
        lines.append(f"{name}_count{_fmt_labels(**base_labels)} {int(count)}")
    return "\n".join(lines) + "\n"


def render_prometheus_metrics(*, db: Session) -> str:
    out: list[str] = []

    http_rows = [
        ({"path": path, "method": method, "status": status}, count)
        for (path, method, status), count in sorted(_snapshot_http())
    ]
    out.append(
        _render_counter(
            name="questline_http_requests_total",
            help_text="Total HTTP requests processed by this API process.",
            rows=http_rows,
        )
    )

    latency_rows = [
        ({"path": path, "method": method}, bins, sum_s, count)
        for ((path, method), bins, sum_s, count) in sorted(_snapshot_latency())
    ]
    out.append(
        _render_histogram(
            name="questline_http_request_duration_seconds",
            help_text="HTTP request duration (seconds) by route template and method (in-process).",
            buckets=_HTTP_LATENCY_BUCKETS_S,
            rows=latency_rows,
        )
    )

    for name, rows in _snapshot_domain().items():
        out.append(
            _render_counter(
                name=name,
                help_text=_DOMAIN_HELP.get(name, name),
                rows=rows,
            )
        )

    uq_rows = db.execute(
        select(UserQuest.is_completed, func.count(UserQuest.id)).group_by(
            UserQuest.is_completed
        )
    ).all()
    out.append(
        _render_gauge(
            name="questline_user_quests",
            help_text="Accepted user quests by completion state.",
            rows=[
                ({"state": "completed" if bool(done) else "in_progress"}, int(cnt or 0))
                for (done, cnt) in uq_rows
            ],
        )
    )

    ev_types = ("quest_completed", "level_up", "badge_granted", "title_granted")
    ev_rows = db.execute(
        select(Event.type, func.count(Event.id))
        .where(Event.type.in_(ev_types))
        .group_by(Event.type)
    ).all()
    out.append(
        _render_counter(
            name="questline_progression_events_total",
            help_text="Progression events by type.",
            rows=[({"type": str(t)}, int(cnt or 0)) for (t, cnt) in ev_rows],
        )
    )

    return "\n".join(out)
