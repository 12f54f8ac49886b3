from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str, amount: int = 1) -> None:
    with _lock:
        _metrics[key] += amount


def record_login_success() -> None:
    _inc("logins")


def record_login_failure() -> None:
    _inc("login_failures")


def record_login_locked() -> None:
    _inc("login_lockouts")


def record_subscription_requested() -> None:
    _inc("subscription_requests")


def record_dispatch_run(sent: int, skipped: int, failed: int) -> None:
    _inc("dispatch_runs")
    _inc("dispatch_sent", sent)
    _inc("dispatch_skipped", skipped)
    _inc("dispatch_failed", failed)


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
