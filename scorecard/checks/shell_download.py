"""Detection of unpinned downloads and executions in shell scripts."""

from __future__ import annotations

import posixpath
import re
from typing import Sequence
from urllib.parse import urlsplit

from scorecard.checks.details import DetailLogger
from scorecard.checks.shell_syntax import (
    BinaryCmd,
    CallExpr,
    DblQuoted,
    Lit,
    ProcSubst,
    SglQuoted,
    ShellSyntaxError,
    Stmt,
    Word,
    node_to_string,
    parse,
    walk,
)
from scorecard.clients import InternalError

SUPPORTED_SHELLS = ("sh", "bash", "mksh")
OTHER_SHELLS = ("dash", "ksh")
SHELL_NAMES = SUPPORTED_SHELLS + OTHER_SHELLS
PYTHON_INTERPRETERS = ("python", "python3", "python2.7")
SHELL_INTERPRETERS = ("exec", "su") + SHELL_NAMES
OTHER_INTERPRETERS = ("perl", "ruby", "php", "node", "nodejs", "java")
INTERPRETERS = OTHER_INTERPRETERS + SHELL_INTERPRETERS + SHELL_NAMES + PYTHON_INTERPRETERS

# aws is handled separately because it takes different options.
DOWNLOAD_UTILS = ("curl", "wget", "gsutil")

_HASH = re.compile(r"[A-Fa-f0-9]{40,}")
_INSECURE_MSG = "insecure (unpinned) download detected in %s: '%s'"


class InvalidShellCodeError(InternalError):
    """The shell text could not be parsed."""


def _base(name: str) -> str:
    if not name:
        return "."
    stripped = name.rstrip("/")
    if not stripped:
        return "/"
    return stripped.rsplit("/", 1)[-1]


def _clean(name: str) -> str:
    return posixpath.normpath(name) if name else "."


def _dir(name: str) -> str:
    parent = name[: name.rfind("/") + 1]
    return _clean(parent) if parent else "."


def _join(first: str, second: str) -> str:
    pieces = [p for p in (first, second) if p]
    return _clean("/".join(pieces)) if pieces else ""


def _url_base(raw: str) -> str:
    try:
        return _base(urlsplit(raw).path)
    except ValueError as err:
        raise InternalError(f"url.Parse: {err}") from err


def _is_binary_name(expected: str, name: str) -> bool:
    return _base(name).casefold() == expected.casefold()


def _equal_fold(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()


def _is_execute_file(cmd: Sequence[str], fn: str) -> bool:
    return bool(cmd) and _equal_fold(_clean(cmd[0]), _clean(fn))


def is_download_utility(cmd: Sequence[str]) -> bool:
    """Return whether ``cmd`` runs a known download tool."""
    if not cmd:
        return False
    if any(_is_binary_name(b, cmd[0]) for b in DOWNLOAD_UTILS):
        return True
    return (
        _is_binary_name("aws", cmd[0])
        and len(cmd) >= 3
        and _equal_fold(cmd[1], "s3api")
        and _equal_fold(cmd[2], "get-object")
    )


def _wget_output_file(cmd: Sequence[str]) -> str | None:
    if not _is_binary_name("wget", cmd[0]):
        return None
    for flag, value in zip(cmd[1:-1], cmd[2:]):
        if _equal_fold(flag, "-O"):
            return value
    for arg in cmd[1:]:
        if arg.startswith("http"):
            return _url_base(arg)
    return None


def _gsutil_output_file(cmd: Sequence[str]) -> str | None:
    if not _is_binary_name("gsutil", cmd[0]):
        return None
    for source, target in zip(cmd[1:-1], cmd[2:]):
        if not source.startswith("gs://"):
            continue
        if _clean(_dir(target)) == _clean(target):
            return _join(_dir(target), _url_base(source))
        return target
    return None


def _aws_output_file(cmd: Sequence[str]) -> str | None:
    if not _is_binary_name("aws", cmd[0]):
        return None
    if len(cmd) < 3 or not _equal_fold(cmd[1], "s3api") or not _equal_fold(cmd[2], "get-object"):
        return None
    source, target = cmd[-2], cmd[-1]
    if _clean(_dir(target)) == _clean(target):
        return _join(_dir(target), _url_base(source))
    return target


def get_output_file(cmd: Sequence[str]) -> str | None:
    """Return the file a download command writes to, or None if unknown."""
    if not cmd:
        return None
    for finder in (_wget_output_file, _gsutil_output_file, _aws_output_file):
        found = finder(cmd)
        if found is not None:
            return found
    return None


def is_interpreter(cmd: Sequence[str]) -> bool:
    """Return whether ``cmd`` starts a script interpreter."""
    return bool(cmd) and any(_is_binary_name(b, cmd[0]) for b in INTERPRETERS)


def _is_python_command(cmd: Sequence[str]) -> bool:
    return bool(cmd) and any(_is_binary_name(p, cmd[0]) for p in PYTHON_INTERPRETERS)


def _is_shell_interpreter_or_command(cmd: Sequence[str]) -> bool:
    if not cmd or _is_python_command(cmd):
        return False
    return not any(_is_binary_name(b, cmd[0]) for b in OTHER_INTERPRETERS)


def _is_command(cmd: Sequence[str], binary: str) -> bool:
    is_bin = False
    for arg in cmd:
        if _is_binary_name(binary, arg):
            is_bin = True
        elif is_bin and arg.startswith("-") and "c" in arg:
            return True
    return False


def _extract_interpreter(cmd: Sequence[str]) -> str | None:
    if not cmd:
        return None
    return next((b for b in INTERPRETERS if _is_command(cmd, b)), None)


def _is_interpreter_with_file(cmd: Sequence[str], fn: str) -> bool:
    if not cmd or not any(_is_binary_name(b, cmd[0]) for b in INTERPRETERS):
        return False
    target = _clean(fn)
    return any(_equal_fold(_clean(arg), target) for arg in cmd[1:])


def extract_command(node: object) -> list[str] | None:
    """Return the literal arguments of a simple command, or None for other nodes.

    ``sudo`` is dropped; quoted arguments keep their quotes.
    """
    if not isinstance(node, CallExpr):
        return None
    ret: list[str] = []
    for word in node.args:
        if len(word.parts) != 1:
            continue
        part = word.parts[0]
        if isinstance(part, SglQuoted):
            ret.append(f"'{part.value}'")
        elif isinstance(part, DblQuoted):
            if len(part.parts) == 1 and isinstance(part.parts[0], Lit):
                ret.append(f'"{part.parts[0].value}"')
        elif isinstance(part, Lit):
            if not _equal_fold(part.value, "sudo"):
                ret.append(part.value)
    return ret


def _is_fetch_pipe_execute(node: object, cmd: str, pathfn: str, dl: DetailLogger) -> bool:
    if not isinstance(node, BinaryCmd) or node.op != "|":
        return False
    left = extract_command(node.x.cmd)
    right = extract_command(node.y.cmd)
    if left is None or right is None:
        return False
    if not is_download_utility(left) or not is_interpreter(right):
        return False
    dl.warn(_INSECURE_MSG, pathfn, cmd)
    return True


def _redirect_file(stmt: Stmt) -> str | None:
    for redirect in stmt.redirs:
        if redirect.op != ">" or len(redirect.word.parts) != 1:
            continue
        part = redirect.word.parts[0]
        if isinstance(part, Lit):
            return part.value
    return None


def _is_execute_files(node: object, cmd: str, pathfn: str, files: set[str], dl: DetailLogger) -> bool:
    args = extract_command(node)
    if args is None:
        return False
    found = False
    for fn in list(files):
        if _is_interpreter_with_file(args, fn) or _is_execute_file(args, fn):
            dl.warn(_INSECURE_MSG, pathfn, cmd)
            found = True
    return found


def is_go_unpinned_download(cmd: Sequence[str]) -> bool:
    """Return whether ``cmd`` is a ``go get``/``go install`` of a package not pinned by hash."""
    if not cmd or not _is_binary_name("go", cmd[0]) or len(cmd) <= 2:
        return False
    found = False
    for arg, pkg in zip(cmd[1:-1], cmd[2:]):
        if _equal_fold(arg, "install") or _equal_fold(arg, "get"):
            found = True
        if not found:
            continue
        parts = pkg.split("@")
        if len(parts) == 2 and _HASH.fullmatch(parts[1]):
            return False
    return found


def _is_unpinned_pip_install(cmd: Sequence[str]) -> bool:
    if not cmd or not (_is_binary_name("pip", cmd[0]) or _is_binary_name("pip3", cmd[0])):
        return False
    is_install = False
    has_whl = False
    for arg in cmd[1:]:
        if _equal_fold(arg, "install"):
            is_install = True
            continue
        if not is_install:
            continue
        # Wheels are mostly local test artifacts.
        if arg.endswith(".whl"):
            has_whl = True
            continue
        return True
    return is_install and not has_whl


def _extract_pip_command(cmd: Sequence[str]) -> list[str] | None:
    for i in range(1, len(cmd) - 1):
        if _equal_fold(cmd[i], "-m") and _equal_fold(cmd[i + 1], "pip"):
            return list(cmd[i + 1:])
    return None


def is_pip_unpinned_download(cmd: Sequence[str]) -> bool:
    """Return whether ``cmd`` installs Python packages without pinning."""
    if not cmd:
        return False
    if _is_unpinned_pip_install(cmd):
        return True
    if not _is_python_command(cmd):
        return False
    pip_command = _extract_pip_command(cmd)
    return pip_command is not None and _is_unpinned_pip_install(pip_command)


def _is_unpinned_package_manager_download(node: object, cmd: str, pathfn: str, dl: DetailLogger) -> bool:
    args = extract_command(node)
    if args is None:
        return False
    if is_go_unpinned_download(args) or is_pip_unpinned_download(args):
        dl.warn(_INSECURE_MSG, pathfn, cmd)
        return True
    return False


def _record_fetch_file(node: object) -> str | None:
    if not isinstance(node, Stmt):
        return None
    args = extract_command(node.cmd)
    if args is None or not is_download_utility(args):
        return None
    redirected = _redirect_file(node)
    if redirected is None:
        return get_output_file(args)
    return redirected


def _is_fetch_proc_subs_execute(node: object, cmd: str, pathfn: str, dl: DetailLogger) -> bool:
    args = extract_command(node)
    if args is None or not is_interpreter(args):
        return False
    assert isinstance(node, CallExpr)
    if len(node.args) < 2 or len(node.args[1].parts) != 1:
        return False
    part = node.args[1].parts[0]
    if not isinstance(part, ProcSubst) or part.op != "<(" or not part.stmts:
        return False
    inner = extract_command(part.stmts[0].cmd)
    if inner is None or not is_download_utility(inner):
        return False
    dl.warn(_INSECURE_MSG, pathfn, cmd)
    return True


def _interpreter_command_from_args(args: Sequence[Word]) -> str | None:
    for word in args:
        if len(word.parts) != 1:
            continue
        part = word.parts[0]
        if isinstance(part, DblQuoted):
            if len(part.parts) == 1 and isinstance(part.parts[0], Lit):
                return part.parts[0].value
        elif isinstance(part, SglQuoted):
            return part.value
    return None


def _interpreter_and_command(node: object) -> tuple[str, str] | None:
    args = extract_command(node)
    if args is None:
        return None
    interpreter = _extract_interpreter(args)
    if interpreter is None:
        return None
    assert isinstance(node, CallExpr)
    command = _interpreter_command_from_args(node.args)
    if command is None:
        return None
    return interpreter, command


def _node_text(node: object) -> str:
    try:
        return node_to_string(node)
    except TypeError:
        return ""


def _validate_and_record(pathfn: str, text: str, files: set[str], dl: DetailLogger) -> bool:
    try:
        tree = parse(text)
    except ShellSyntaxError as err:
        raise InvalidShellCodeError(f"invalid shell code: {err}") from err

    validated = True
    error: InternalError | None = None
    for node in walk(tree):
        cmd_str = _node_text(node)

        # interpreter -c "CMD"
        found = _interpreter_and_command(node)
        if found is not None and _is_shell_interpreter_or_command([found[0]]):
            try:
                validated = _validate_and_record(pathfn, found[1], files, dl)
            except InternalError as err:
                validated = False
                error = err

        if _is_fetch_pipe_execute(node, cmd_str, pathfn, dl):
            validated = False
        if _is_execute_files(node, cmd_str, pathfn, files, dl):
            validated = False
        if _is_fetch_proc_subs_execute(node, cmd_str, pathfn, dl):
            validated = False
        if _is_unpinned_package_manager_download(node, cmd_str, pathfn, dl):
            validated = False

        try:
            fetched = _record_fetch_file(node)
        except InternalError as err:
            error = err
        else:
            if fetched is not None:
                files.add(fetched)

    if error is not None:
        raise error
    return validated


def is_supported_shell(shell_name: str) -> bool:
    """Return whether scripts for ``shell_name`` can be parsed."""
    return any(_is_binary_name(name, shell_name) for name in SUPPORTED_SHELLS)


def _is_matching_shell_script_file(pathfn: str, content: bytes | str, shells: Sequence[str]) -> bool:
    has_extension = any(pathfn.endswith("." + name) for name in shells)
    text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
    if not text:
        return has_extension
    line = text.split("\n", 1)[0].removesuffix("\r")
    if not line.startswith("#!"):
        return has_extension
    parts = line[2:].split(" ")
    for name in shells:
        if _is_binary_name(name, parts[0]):
            return True
        if len(parts) >= 2 and _is_binary_name("env", parts[0]) and _is_binary_name(name, parts[1]):
            return True
    return False


def is_shell_script_file(pathfn: str, content: bytes | str) -> bool:
    """Return whether the file is a script for any known shell or shell launcher."""
    return _is_matching_shell_script_file(pathfn, content, SHELL_INTERPRETERS)


def is_supported_shell_script_file(pathfn: str, content: bytes | str) -> bool:
    """Return whether the file is a shell script that can be parsed.

    A shebang decides on its own; without one the file extension is used.
    """
    return _is_matching_shell_script_file(pathfn, content, SUPPORTED_SHELLS)


def validate_shell_file(pathfn: str, content: bytes | str, dl: DetailLogger) -> bool:
    """Return False if the script downloads and runs code without pinning.

    Findings are logged as warnings on ``dl``. Unparsable shell code is logged
    at debug level and raises InvalidShellCodeError.
    """
    text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
    try:
        return _validate_and_record(pathfn, text, set(), dl)
    except InvalidShellCodeError as err:
        dl.debug(str(err))
        raise