"""Discovery, loading, and static validation of migration scripts."""

from __future__ import annotations

import importlib.util
import inspect
import logging
import re
from pathlib import Path
from types import ModuleType

from drift_engine.errors import MigrationValidationError
from drift_engine.generator.naming import MIGRATION_FILENAME_RE
from drift_engine.models.migration import MigrationScript, ValidationReport

logger = logging.getLogger(__name__)

ENTRY_POINTS: tuple[str, ...] = ("up", "down")

# Patterns that indicate data or structure loss.  They produce warnings, never errors.
DANGEROUS_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\.drop\(\s*\)"), "drops a collection"),
    (re.compile(r"\bdrop_collection\("), "drops a collection"),
    (re.compile(r"\bdelete_many\(\s*\{\s*\}"), "deletes every document in a collection"),
    (re.compile(r"\$unset"), "unsets fields"),
    (re.compile(r"\bdrop_index\("), "drops an index"),
)


def discover_scripts(directory: Path) -> list[MigrationScript]:
    """Return the migration scripts in *directory*, oldest first.

    Files not named ``YYYYMMDD_HHMMSS_<slug>.py`` are ignored.  A missing
    directory yields an empty list.
    """
    if not directory.is_dir():
        logger.debug("Migrations directory %s does not exist", directory)
        return []

    scripts: list[MigrationScript] = []
    for path in directory.glob("*.py"):
        match = MIGRATION_FILENAME_RE.match(path.stem)
        if match is None:
            logger.debug("Skipping %s: not a migration filename", path.name)
            continue
        scripts.append(
            MigrationScript(
                filename=path.stem,
                path=path,
                timestamp=match.group("timestamp"),
                name=match.group("name"),
            )
        )
    return sorted(scripts, key=lambda s: (s.timestamp, s.filename))


def load_script(script: MigrationScript) -> ModuleType:
    """Import *script* as a module without touching ``sys.modules``.

    Raises
    ------
    MigrationValidationError
        If the file cannot be imported.
    """
    spec = importlib.util.spec_from_file_location(f"docdrift_migration_{script.filename}", script.path)
    if spec is None or spec.loader is None:
        raise MigrationValidationError(
            f"Cannot load migration {script.filename}",
            errors={script.filename: ["not an importable Python file"]},
        )
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise MigrationValidationError(
            f"Cannot load migration {script.filename}: {exc}",
            errors={script.filename: [f"import failed: {exc}"]},
        ) from exc
    return module


def _check_entry_point(module: ModuleType, name: str) -> str | None:
    fn = getattr(module, name, None)
    if fn is None:
        return f"missing '{name}' function"
    if not callable(fn):
        return f"'{name}' is not callable"

    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return None
    params = signature.parameters
    has_var_keyword = any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params.values())
    if "session" not in params and not has_var_keyword:
        return f"'{name}' must accept a 'session' keyword argument"
    try:
        signature.bind(object(), session=None)
    except TypeError:
        return f"'{name}' must have the signature {name}(db, session=None)"
    return None


def scan_dangerous_patterns(source: str) -> list[str]:
    """Return one warning per dangerous pattern found in executable lines of *source*."""
    warnings: list[str] = []
    for lineno, line in enumerate(source.splitlines(), start=1):
        code = line.strip()
        if not code or code.startswith("#"):
            continue
        for pattern, meaning in DANGEROUS_PATTERNS:
            if pattern.search(code):
                warnings.append(f"line {lineno} {meaning}: {code}")
    return warnings


def inspect_script(script: MigrationScript) -> tuple[ValidationReport, ModuleType | None]:
    """Validate *script* and return the loaded module alongside the report.

    Structural problems (unloadable file, missing or mis-shaped ``up`` /
    ``down``) are errors; dangerous operations are warnings.  Returns the
    report and, when the script loaded, its module.
    """
    report = ValidationReport(filename=script.filename)

    try:
        source = script.path.read_text(encoding="utf-8")
    except OSError as exc:
        report.errors.append(f"cannot read file: {exc}")
        return report, None
    report.warnings.extend(scan_dangerous_patterns(source))

    try:
        module = load_script(script)
    except MigrationValidationError as exc:
        report.errors.extend(exc.errors.get(script.filename, [str(exc)]))
        return report, None

    for name in ENTRY_POINTS:
        problem = _check_entry_point(module, name)
        if problem:
            report.errors.append(problem)

    return report, module


def validate_script(script: MigrationScript) -> ValidationReport:
    """Statically validate *script*; see :func:`inspect_script`."""
    report, _ = inspect_script(script)
    return report
