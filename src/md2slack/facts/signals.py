"""Line and path heuristics that tag what a diff probably does.

Each detector looks at one added line (plus the file path) and either
returns ``(signal_type, hint)`` or ``None``. The tags are hints for the
model, not ground truth, so the rules stay cheap and a little noisy.
"""

from __future__ import annotations

from collections.abc import Callable

from md2slack.facts.models import CommitSemantic, FileChange, Signal

Detection = tuple[str, str] | None
Detector = Callable[[str, str], Detection]

NEW_FILE = "new_file"
TEST_ADDED = "test_added"
TEST_MODIFIED = "test_modified"


def is_test_path(path: str) -> bool:
    lowered = path.lower()
    name = lowered.rsplit("/", 1)[-1]
    return (
        "/test" in lowered
        or lowered.startswith("test")
        or ".spec." in lowered
        or ".test." in lowered
        or name.startswith("test_")
        or name.endswith("_test.go")
        or name.endswith("_test.py")
    )


def _any(line: str, *needles: str) -> bool:
    return any(needle in line for needle in needles)


def detect_timeout(line: str, path: str) -> Detection:
    if "timeout" in line.lower() and _any(line, "waitFor", "setTimeout", "timeout=", "timeout:"):
        return "timeout_change", "timing or timeout adjusted"
    return None


def detect_error_handling(line: str, path: str) -> Detection:
    if _any(line, "try {", "catch", "if err !=", "throw new Error", "except ", "raise ", "try:"):
        return "error_handling", "guarded failure path"
    return None


def detect_schema(line: str, path: str) -> Detection:
    if _any(path, "migration", "schema") or _any(line, "CREATE TABLE", "ALTER TABLE"):
        return "schema_change", "data model update"
    return None


def detect_migration(line: str, path: str) -> Detection:
    if "migration" in path and path.endswith((".sql", ".ts", ".py")):
        return "migration", "database migration file"
    if _any(line, "CREATE INDEX", "DROP TABLE", "ALTER COLUMN"):
        return "migration", "database schema migration"
    return None


def detect_ui_state(line: str, path: str) -> Detection:
    if _any(line, "useState", "useEffect", "useRef", "loading"):
        return "logic_change", "ui state management"
    return None


def detect_logic(line: str, path: str) -> Detection:
    if _any(line, "for ", "if ", "return", "else", "while "):
        return "logic_change", "flow control logic"
    return None


def detect_route(line: str, path: str) -> Detection:
    if _any(
        line,
        "router.get(",
        "router.post(",
        "router.put(",
        "router.delete(",
        "app.use(",
        "@app.get(",
        "@app.post(",
        "@router.",
        "HandleFunc(",
        "NextResponse",
        "NextRequest",
    ):
        return "route_change", "http route or middleware"
    return None


def detect_auth(line: str, path: str) -> Detection:
    if _any(
        line,
        "NextAuth",
        "getServerSession",
        "useSession",
        "authorize",
        "credentials",
        "jwt",
        "JWT",
        "Bearer",
        "clerk",
        "Clerk",
    ) or ("headers" in line and "authorization" in line.lower()):
        return "auth_change", "authentication/authorization logic"
    return None


def detect_refactor(line: str, path: str) -> Detection:
    if _any(line, "extract", "refactor", "helper", "utils/", "shared/"):
        return "refactor", "extracted reusable logic"
    return None


def detect_test_stability(line: str, path: str) -> Detection:
    if "test" in path and _any(line, "timeout", "waitFor", "retry", "poll("):
        return "test_stability", "stabilized flaky test behavior"
    return None


def detect_retry(line: str, path: str) -> Detection:
    if _any(line, "for (let attempt", "retry", "attempt <", "for attempt in", "backoff"):
        return "retry_logic", "added retry mechanism"
    return None


def detect_state_guard(line: str, path: str) -> Detection:
    if "useRef" in line and "initialized" in line:
        return "state_guard", "prevented duplicate initialization"
    if "if" in line and "return" in line and "already" in line:
        return "state_guard", "guarded repeated execution"
    return None


def detect_regression_test(line: str, path: str) -> Detection:
    if "test" in path and _any(line, "not.toBe", "assert ", "pytest.raises"):
        return "regression_test", "added regression coverage"
    return None


def detect_style(line: str, path: str) -> Detection:
    if path.endswith((".css", ".scss")) or _any(line, "font-weight", "color:"):
        return "ui_style", "adjusted visual styling"
    return None


DETECTORS: tuple[Detector, ...] = (
    detect_timeout,
    detect_error_handling,
    detect_schema,
    detect_migration,
    detect_ui_state,
    detect_logic,
    detect_route,
    detect_auth,
    detect_refactor,
    detect_test_stability,
    detect_retry,
    detect_state_guard,
    detect_regression_test,
    detect_style,
)


def extract_signals(change: FileChange, detectors: tuple[Detector, ...] = DETECTORS) -> Signal:
    signal = Signal(file=change.path)

    def add_type(kind: str) -> None:
        if kind not in signal.types:
            signal.types.append(kind)

    if change.is_new:
        add_type(NEW_FILE)
    if change.is_test:
        add_type(TEST_ADDED if change.is_new else TEST_MODIFIED)

    for line in change.additions:
        for detector in detectors:
            found = detector(line, change.path)
            if found is None:
                continue
            kind, hint = found
            add_type(kind)
            if hint and hint not in signal.hints:
                signal.hints.append(hint)
    return signal


def domain_key(path: str) -> str:
    parts = path.split("/")
    if len(parts) > 2:
        return parts[-2]
    return path


def commit_semantic(commit_hash: str, files: list[FileChange]) -> CommitSemantic:
    signals = [extract_signals(item) for item in files]
    interesting = [signal for signal in signals if signal.types]
    return CommitSemantic(
        commit=commit_hash,
        signals=interesting,
        files_touched=len(files),
        touches_tests=any(
            kind in (TEST_ADDED, TEST_MODIFIED) for signal in interesting for kind in signal.types
        ),
    )
