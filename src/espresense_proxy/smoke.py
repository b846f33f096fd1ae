"""
=============================================================================
DEPLOYMENT SMOKE TEST
=============================================================================

Checks a deployed site end to end by requesting the two redirect
endpoints users hit most and expecting a 302 from each. Redirects are not
followed: a 302 proves the proxy reached GitHub and found something.

    $ espresense-proxy smoke --base-url https://espresense.com
    ============================================================
    Deployment Test Suite
    ============================================================

    Artifact Proxy Tests (/artifacts/*)
    ------------------------------------------------------------
    ✓ Latest download (master branch)
      URL: https://espresense.com/artifacts/latest/download/master/esp32.bin
      Status: 302 (expected 302)
      Redirect: /artifacts/download/runs/4242/1a2b3c4/esp32.bin
    ...
    Results: 2/2 tests passed

Exit status is 0 only when every check passed.

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

import requests


DEFAULT_BASE_URL = "https://espresense.com"


@dataclass
class SmokeCheck:
    name: str
    path: str
    expected_status: int = 302
    group: str = ""


@dataclass
class SmokeResult:
    check: SmokeCheck
    url: str
    status: Optional[int] = None
    location: Optional[str] = None
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.error is None and self.status == self.check.expected_status


CHECKS = [
    SmokeCheck(
        "Latest download (master branch)",
        "/artifacts/latest/download/master/esp32.bin",
        group="Artifact Proxy Tests (/artifacts/*)",
    ),
    SmokeCheck(
        "Latest any download",
        "/releases/latest-any/download/esp32.bin",
        group="Release Proxy Tests (/releases/*)",
    ),
]


def run_check(
    check: SmokeCheck,
    base_url: str,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
) -> SmokeResult:
    url = base_url.rstrip("/") + check.path
    http = session or requests

    try:
        response = http.get(url, allow_redirects=False, timeout=timeout)
    except requests.RequestException as e:
        return SmokeResult(check=check, url=url, error=str(e))

    return SmokeResult(
        check=check,
        url=url,
        status=response.status_code,
        location=response.headers.get("Location"),
    )


def report(result: SmokeResult, out: Callable[[str], None] = print) -> None:
    out(f"{'✓' if result.passed else '✗'} {result.check.name}")
    out(f"  URL: {result.url}")

    if result.error is not None:
        out(f"  Error: {result.error}")
    else:
        out(f"  Status: {result.status} (expected {result.check.expected_status})")
        if result.status == 302 and result.location:
            out(f"  Redirect: {result.location}")
        if not result.passed:
            out(f"  FAILED: Expected {result.check.expected_status}, got {result.status}")
    out("")


def run_smoke_tests(
    base_url: str = DEFAULT_BASE_URL,
    checks: Optional[List[SmokeCheck]] = None,
    session: Optional[requests.Session] = None,
    out: Callable[[str], None] = print,
) -> bool:
    """Run every check, print a report, return True if all passed."""
    out("=" * 60)
    out("Deployment Test Suite")
    out("=" * 60)
    out("")

    results = []
    group = None
    for check in checks if checks is not None else CHECKS:
        if check.group and check.group != group:
            group = check.group
            out(group)
            out("-" * 60)
        result = run_check(check, base_url, session=session)
        report(result, out)
        results.append(result)

    passed = sum(1 for r in results if r.passed)
    total = len(results)

    out("=" * 60)
    out(f"Results: {passed}/{total} tests passed")
    if passed == total:
        out("✓ All deployment tests passed!")
    else:
        out(f"✗ {total - passed} test(s) failed")
    out("=" * 60)

    return passed == total
