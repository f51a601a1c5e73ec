"""Append-only sink for check results."""

from __future__ import annotations

import threading
from collections.abc import Iterator

from esshealth.domain.models import CheckResult, CheckStatus, ResultSummary


class ResultCollector:
    """Ordered, thread-safe collection of :class:`CheckResult` records.

    One collector is created per run and handed to every rule and to the
    health-check client. Results are never deduplicated: the same category and
    check name legitimately repeat once per instance.
    """

    def __init__(self) -> None:
        self._results: list[CheckResult] = []
        self._lock = threading.Lock()

    def add(
        self,
        category: str,
        check: str,
        status: CheckStatus,
        message: str,
    ) -> CheckResult:
        result = CheckResult(
            category=category,
            check=check,
            status=CheckStatus(status),
            message=message,
        )
        with self._lock:
            self._results.append(result)
        return result

    @property
    def results(self) -> tuple[CheckResult, ...]:
        with self._lock:
            return tuple(self._results)

    def summary(self) -> ResultSummary:
        snapshot = self.results
        counts = {status: 0 for status in CheckStatus}
        for result in snapshot:
            counts[result.status] += 1
        return ResultSummary(
            total=len(snapshot),
            passed=counts[CheckStatus.PASS],
            failed=counts[CheckStatus.FAIL],
            warnings=counts[CheckStatus.WARNING],
            info=counts[CheckStatus.INFO],
        )

    def by_category(self, category: str) -> tuple[CheckResult, ...]:
        return tuple(result for result in self.results if result.category == category)

    def by_status(self, status: CheckStatus) -> tuple[CheckResult, ...]:
        wanted = CheckStatus(status)
        return tuple(result for result in self.results if result.status is wanted)

    def categories(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for result in self.results:
            seen.setdefault(result.category, None)
        return tuple(seen)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def __iter__(self) -> Iterator[CheckResult]:
        return iter(self.results)


__all__ = ["ResultCollector"]
