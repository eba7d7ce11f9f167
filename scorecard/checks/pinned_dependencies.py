"""Checks that a repository's dependencies are pinned to exact versions."""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Iterable

import yaml

from scorecard.checks.details import DetailLogger
from scorecard.checks.shell_download import (
    is_shell_script_file,
    is_supported_shell,
    is_supported_shell_script_file,
    validate_shell_file,
)
from scorecard.clients import InternalError

CHECK_PINNED_DEPENDENCIES = "Pinned-Dependencies"

MAX_RESULT_SCORE = 10
MIN_RESULT_SCORE = 0
INCONCLUSIVE_RESULT_SCORE = -1

_IMAGE_DIGEST = re.compile(r".*@sha256:[a-f\d]{64}")
_ACTION_HASH = re.compile(r"^.*@[a-f\d]{40,}")
_GITHUB_VAR = re.compile(r"{{[^{}]*}}")
_DIRECTIVE = re.compile(r"^#\s*([a-zA-Z][a-zA-Z0-9]*)\s*=\s*(.+?)\s*$")

_JSON_COMMANDS = frozenset({"run", "cmd", "entrypoint", "shell", "copy", "add", "volume"})
_WHITESPACE_COMMANDS = frozenset({"from", "expose", "arg", "stopsignal"})

_LOCK_FILES = {
    "go.sum": "go lock file detected: %s",
    "vendor/": "vendoring detected in: %s",
    "third_party/": "vendoring detected in: %s",
    "third-party/": "vendoring detected in: %s",
    "package-lock.json": "javascript lock file detected: %s",
    "npm-shrinkwrap.json": "javascript lock file detected: %s",
    # requirements.txt does not cover transitive dependencies, so it is not a lock file.
    "pipfile.lock": "python lock file detected: %s",
    "gemfile.lock": "ruby lock file detected: %s",
    "cargo.lock": "rust lock file detected: %s",
    "yarn.lock": "yarn lock file detected: %s",
    "composer.lock": "composer lock file detected: %s",
}


class PinnedResult(Enum):
    """Accumulated pinning verdict over several files."""

    UNDEFINED = "undefined"
    PINNED = "pinned"
    NOT_PINNED = "not_pinned"

    def combine(self, pinned: bool) -> PinnedResult:
        """Fold one more verdict in; once not pinned, always not pinned."""
        if self is PinnedResult.NOT_PINNED:
            return self
        return PinnedResult.PINNED if pinned else PinnedResult.NOT_PINNED


class InvalidDockerfileError(InternalError):
    """The Dockerfile could not be interpreted."""


class InvalidYamlError(InternalError):
    """The workflow file is not valid YAML of the expected shape."""


def _as_text(content: bytes | str) -> str:
    return content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content


def _contains_commands(content: bytes | str, comment: str) -> bool:
    return any(
        line.strip() and not line.strip().startswith(comment) for line in _as_text(content).splitlines()
    )


def _score(result: PinnedResult, info_msg: str, dl: DetailLogger) -> int:
    if result is PinnedResult.NOT_PINNED:
        # Findings were already logged by the validators.
        return MIN_RESULT_SCORE
    dl.info(info_msg)
    return MAX_RESULT_SCORE


def _maybe_json(rest: str) -> list[str]:
    if rest.startswith("["):
        try:
            parsed = json.loads(rest)
        except ValueError:
            parsed = None
        if isinstance(parsed, list) and all(isinstance(item, str) for item in parsed):
            return parsed
    return [rest] if rest else []


def _instruction(line: str) -> tuple[str, list[str]]:
    pieces = line.strip().split(None, 1)
    command = pieces[0].lower()
    rest = pieces[1].strip() if len(pieces) > 1 else ""
    while rest.startswith("--"):
        flag_and_rest = rest.split(None, 1)
        rest = flag_and_rest[1].strip() if len(flag_and_rest) > 1 else ""
    if command in _WHITESPACE_COMMANDS:
        return command, rest.split()
    if command in _JSON_COMMANDS:
        return command, _maybe_json(rest)
    return command, [rest] if rest else []


def parse_dockerfile(content: bytes | str) -> list[tuple[str, list[str]]]:
    """Return the Dockerfile's instructions as (lower-case command, values) pairs.

    Comments and blank lines are dropped and continuation lines joined. ``FROM``
    values are split on whitespace; ``RUN`` and similar take either a JSON array
    or the whole remaining text as one value.
    """
    lines = _as_text(content).splitlines()

    escape = "\\"
    seen: set[str] = set()
    for line in lines:
        match = _DIRECTIVE.match(line)
        if match is None:
            break
        name = match.group(1).lower()
        if name in seen:
            raise InvalidDockerfileError(f"internal error: invalid Dockerfile: only one {name} parser directive can be used")
        seen.add(name)
        if name == "escape":
            if match.group(2) not in ("\\", "`"):
                raise InvalidDockerfileError(
                    f"internal error: invalid Dockerfile: invalid escape token '{match.group(2)}'"
                )
            escape = match.group(2)

    continuation = re.compile(re.escape(escape) + r"[ \t]*$")
    instructions: list[tuple[str, list[str]]] = []
    pending: str | None = None
    for raw in lines:
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        line = raw.lstrip() if pending is None else raw
        match = continuation.search(line)
        if match is not None:
            pending = (pending or "") + line[: match.start()]
            continue
        instructions.append(_instruction((pending or "") + line))
        pending = None
    if pending is not None and pending.strip():
        instructions.append(_instruction(pending))
    return instructions


def _parse_dockerfile_checked(content: bytes | str) -> list[tuple[str, list[str]]]:
    try:
        return parse_dockerfile(content)
    except InvalidDockerfileError:
        raise
    except ValueError as err:
        raise InvalidDockerfileError(f"internal error: invalid Dockerfile: {err}") from err


def validate_shell_script_downloads(pathfn: str, content: bytes | str, dl: DetailLogger) -> int:
    """Score a shell script for unpinned downloads that get executed."""
    result = PinnedResult.UNDEFINED
    if not is_supported_shell_script_file(pathfn, content):
        result = result.combine(True)
    else:
        result = result.combine(validate_shell_file(pathfn, content, dl))
    return _score(result, "no insecure (unpinned) dependency downloads found in shell scripts", dl)


def validate_dockerfile_downloads(pathfn: str, content: bytes | str, dl: DetailLogger) -> int:
    """Score the RUN commands of a Dockerfile for unpinned downloads that get executed."""
    result = PinnedResult.UNDEFINED
    info = "no insecure (unpinned) dependency downloads found in Dockerfiles"
    if is_shell_script_file(pathfn, content) or not _contains_commands(content, "#"):
        return _score(result.combine(True), info, dl)

    script_lines = []
    for command, values in _parse_dockerfile_checked(content):
        if command != "run":
            continue
        if not values:
            raise InvalidDockerfileError("internal error: invalid Dockerfile")
        script_lines.append(" ".join(values) + "\n")

    result = result.combine(validate_shell_file(pathfn, "".join(script_lines), dl))
    return _score(result, info, dl)


def validate_dockerfile_pinned(pathfn: str, content: bytes | str, dl: DetailLogger) -> int:
    """Score a Dockerfile on whether every base image is pinned by digest."""
    result = PinnedResult.UNDEFINED
    info = "Dockerfile dependencies are pinned"
    # Scripts such as script_dockerfile_something.sh also match the file pattern.
    if is_shell_script_file(pathfn, content) or not _contains_commands(content, "#"):
        return _score(result.combine(True), info, dl)

    pinned = True
    pinned_as_names: set[str] = set()
    for command, values in _parse_dockerfile_checked(content):
        if command != "from":
            continue
        if values and values[0].casefold() == "scratch":
            continue
        if len(values) == 3 and values[1].casefold() == "as":
            name, as_name = values[0], values[2]
            if name in pinned_as_names or _IMAGE_DIGEST.search(name):
                pinned_as_names.add(as_name)
                continue
            pinned = False
            dl.warn("unpinned dependency detected in %s: '%s'", pathfn, name)
        elif len(values) == 1:
            if not _IMAGE_DIGEST.search(values[0]):
                pinned = False
                dl.warn("unpinned dependency detected in %s: '%s'", pathfn, values[0])
        else:
            raise InvalidDockerfileError("internal error: invalid Dockerfile")

    # A Dockerfile need not contain a FROM instruction at all.
    return _score(result.combine(pinned), info, dl)


def _yaml_error(detail: Any) -> InvalidYamlError:
    return InvalidYamlError(f"internal error: invalid YAML file: {detail}")


def _text(mapping: dict, key: str) -> str:
    value = mapping.get(key)
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise _yaml_error(f"field '{key}' is not a string")
    return str(value)


def _mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _yaml_error(f"'{what}' is not a mapping")
    return value


def _load_jobs(content: bytes | str) -> list[tuple[str, dict]]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise _yaml_error(err) from err
    workflow = _mapping(data, "workflow")
    jobs = _mapping(workflow.get("jobs"), "jobs")
    return [(str(job_id), _mapping(job, str(job_id))) for job_id, job in jobs.items()]


def _steps(job: dict) -> list[dict]:
    steps = job.get("steps")
    if steps is None:
        return []
    if not isinstance(steps, list):
        raise _yaml_error("'steps' is not a list")
    return [_mapping(step, "step") for step in steps]


def validate_workflow_script_downloads(pathfn: str, content: bytes | str, dl: DetailLogger) -> int:
    """Score the ``run`` scripts of a workflow for unpinned downloads that get executed."""
    result = PinnedResult.UNDEFINED
    info = "no insecure (unpinned) dependency downloads found in GitHub workflows"
    if not _contains_commands(content, "#"):
        return _score(result.combine(True), info, dl)

    default_shell = "bash"
    script_content = ""
    for _, job in _load_jobs(content):
        run_defaults = _mapping(_mapping(job.get("defaults"), "defaults").get("run"), "run")
        job_shell = _text(run_defaults, "shell")
        if job_shell:
            default_shell = job_shell
        for step in _steps(job):
            run = _text(step, "run")
            if not run:
                continue
            shell = _text(step, "shell") or default_shell
            # Windows shells cannot be parsed.
            if not is_supported_shell(shell):
                continue
            # ${{ github.var }} expressions would break shell parsing.
            script = _GITHUB_VAR.sub("GITHUB_REDACTED_VAR", run)
            script_content = f"{script_content}\n{script}"

    validated = True
    if script_content:
        validated = validate_shell_file(pathfn, script_content, dl)
    return _score(result.combine(validated), info, dl)


def validate_workflow_actions_pinned(pathfn: str, content: bytes | str, dl: DetailLogger) -> int:
    """Score a workflow on whether every action it uses is pinned by commit hash."""
    result = PinnedResult.UNDEFINED
    info = "GitHub actions are pinned"
    if not _contains_commands(content, "#"):
        return _score(result.combine(True), info, dl)

    pinned = True
    for job_id, job in _load_jobs(content):
        job_name = _text(job, "name") or job_id
        for step in _steps(job):
            uses = _text(step, "uses")
            # At least a SHA1-sized hash: action-name@hash.
            if uses and not _ACTION_HASH.match(uses):
                pinned = False
                dl.warn("unpinned dependency detected in %s: '%s' (job '%s')", pathfn, uses, job_name)
    return _score(result.combine(pinned), info, dl)


def is_lock_file(name: str, dl: DetailLogger) -> bool:
    """Return whether ``name`` is a package manager lock file or vendoring directory."""
    message = _LOCK_FILES.get(name.lower())
    if message is None:
        return False
    dl.info(message, name)
    return True


def package_manager_lock_file_score(names: Iterable[str], dl: DetailLogger) -> int:
    """Score a repository on whether any of its files is a lock file."""
    if any(is_lock_file(name, dl) for name in names):
        return MAX_RESULT_SCORE
    dl.warn("no lock files detected for a package manager")
    return INCONCLUSIVE_RESULT_SCORE