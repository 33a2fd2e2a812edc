from collections import defaultdict
from threading import Lock
import re

METRIC_DESCRIPTIONS: dict[str, str] = {
    "http_requests_total": "HTTP requests served by the API.",
    "http_errors_total": "HTTP error responses (4xx/5xx) raised by handlers.",
    "permission_denied_total": "Requests rejected by the permission gate.",
    "permission_check_failed_total": "Permission checks aborted by a role lookup failure.",
    "auth_login_total": "Login attempts.",
    "auth_login_result_total": "Login attempts by outcome.",
    "activity_log_total": "Activity log entries written.",
}

_metrics_lock = Lock()
_counters: dict[str, dict[tuple[tuple[str, str], ...], int]] = defaultdict(dict)


def _label_key(labels: dict[str, str] | None) -> tuple[tuple[str, str], ...]:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def increment_counter(name: str, value: int = 1, **labels: str) -> None:
    key = _label_key(labels)
    with _metrics_lock:
        _counters[name][key] = _counters[name].get(key, 0) + int(value)


def counter_value(name: str, **labels: str) -> int:
    with _metrics_lock:
        return _counters.get(name, {}).get(_label_key(labels), 0)


def reset_metrics() -> None:
    with _metrics_lock:
        _counters.clear()


def snapshot_metrics() -> dict[str, dict]:
    with _metrics_lock:
        return {
            metric_name: {
                "description": METRIC_DESCRIPTIONS.get(metric_name, ""),
                "series": [
                    {"labels": dict(label_key), "value": value}
                    for label_key, value in items.items()
                ],
            }
            for metric_name, items in _counters.items()
        }


def _sanitize_metric_name(name: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9_:]", "_", name)
    if not re.match(r"^[a-zA-Z_:]", clean):
        clean = f"metric_{clean}"
    return clean


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def prometheus_text() -> str:
    lines: list[str] = []
    with _metrics_lock:
        for raw_name, items in sorted(_counters.items(), key=lambda x: x[0]):
            name = _sanitize_metric_name(raw_name)
            description = METRIC_DESCRIPTIONS.get(raw_name)
            if description:
                lines.append(f"# HELP {name} {description}")
            lines.append(f"# TYPE {name} counter")
            for label_key, value in items.items():
                if label_key:
                    labels = ",".join(f'{k}="{_escape_label_value(v)}"' for k, v in label_key)
                    lines.append(f"{name}{{{labels}}} {int(value)}")
                else:
                    lines.append(f"{name} {int(value)}")
    return "\n".join(lines) + "\n"
