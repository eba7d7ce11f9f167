import pytest

from scorecard.checks.details import DetailLogger, DetailType
from scorecard.checks.pinned_dependencies import (
    INCONCLUSIVE_RESULT_SCORE,
    MAX_RESULT_SCORE,
    MIN_RESULT_SCORE,
    InvalidDockerfileError,
    InvalidYamlError,
    PinnedResult,
    is_lock_file,
    package_manager_lock_file_score,
    parse_dockerfile,
    validate_dockerfile_downloads,
    validate_dockerfile_pinned,
    validate_shell_script_downloads,
    validate_workflow_actions_pinned,
    validate_workflow_script_downloads,
)
from scorecard.checks.shell_download import InvalidShellCodeError

ACTION_SHA = "0123456789abcdef" * 2 + "01234567"
DIGEST = "abcdef0123456789" * 4


def run(fn, pathfn, content):
    dl = DetailLogger()
    score = fn(pathfn, content.encode(), dl)
    return score, dl.count(DetailType.WARN), dl.count(DetailType.INFO), dl.count(DetailType.DEBUG)


def test_pinned_result_combine():
    assert PinnedResult.UNDEFINED.combine(True) is PinnedResult.PINNED
    assert PinnedResult.UNDEFINED.combine(False) is PinnedResult.NOT_PINNED
    assert PinnedResult.PINNED.combine(False) is PinnedResult.NOT_PINNED
    assert PinnedResult.NOT_PINNED.combine(True) is PinnedResult.NOT_PINNED


# GitHub workflow action pinning.

WORKFLOW_PINNED = f"""name: CI
on: push
jobs:
  build:
    name: Build
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@{ACTION_SHA}
      - run: make
"""

WORKFLOW_NOT_PINNED = f"""name: CI
on: push
jobs:
  build:
    name: Build
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v2
      - uses: actions/setup-go@{ACTION_SHA}
"""


@pytest.mark.parametrize(
    "content, expected",
    [
        ("", (MAX_RESULT_SCORE, 0, 1, 0)),
        ("# comment\n# another comment\n", (MAX_RESULT_SCORE, 0, 1, 0)),
        (WORKFLOW_PINNED, (MAX_RESULT_SCORE, 0, 1, 0)),
        (WORKFLOW_NOT_PINNED, (MIN_RESULT_SCORE, 1, 0, 0)),
    ],
    ids=["empty file", "comments only", "pinned workflow", "non-pinned workflow"],
)
def test_github_workflow_pinning(content, expected):
    assert run(validate_workflow_actions_pinned, ".github/workflows/ci.yml", content) == expected


def test_workflow_warning_names_job():
    dl = DetailLogger()
    validate_workflow_actions_pinned("ci.yml", WORKFLOW_NOT_PINNED, dl)
    assert dl.details[0].msg == "unpinned dependency detected in ci.yml: 'actions/checkout@v2' (job 'Build')"


def test_workflow_warning_uses_job_id_without_name():
    content = "jobs:\n  lint:\n    steps:\n      - uses: actions/checkout@main\n"
    dl = DetailLogger()
    assert validate_workflow_actions_pinned("ci.yml", content, dl) == MIN_RESULT_SCORE
    assert dl.details[0].msg.endswith("(job 'lint')")


def test_workflow_invalid_yaml():
    with pytest.raises(InvalidYamlError):
        validate_workflow_actions_pinned("ci.yml", "jobs: [unclosed\n", DetailLogger())


def test_workflow_not_a_mapping():
    with pytest.raises(InvalidYamlError):
        validate_workflow_actions_pinned("ci.yml", "- a\n- b\n", DetailLogger())


# Dockerfile base image pinning.


@pytest.mark.parametrize(
    "pathfn, content, expected",
    [
        ("Dockerfile-invalid", "this is not an instruction\n", (MAX_RESULT_SCORE, 0, 1, 0)),
        ("script-sh", "#!/bin/sh\ncurl https://example.com/a.sh | sh\n", (MAX_RESULT_SCORE, 0, 1, 0)),
        ("Dockerfile", "", (MAX_RESULT_SCORE, 0, 1, 0)),
        ("Dockerfile", "# comment\n  # indented comment\n", (MAX_RESULT_SCORE, 0, 1, 0)),
        (
            "Dockerfile",
            f"FROM python:3.7@sha256:{DIGEST}\nFROM scratch\nRUN echo hi\n",
            (MAX_RESULT_SCORE, 0, 1, 0),
        ),
        (
            "Dockerfile",
            f"FROM alpine@sha256:{DIGEST} AS build\nFROM build AS final\n",
            (MAX_RESULT_SCORE, 0, 1, 0),
        ),
        (
            "Dockerfile",
            "FROM python:3.7 AS build\nFROM build AS final\nFROM final AS other\n",
            (MIN_RESULT_SCORE, 3, 0, 0),
        ),
        ("Dockerfile", "FROM python:3.7\n", (MIN_RESULT_SCORE, 1, 0, 0)),
        (
            "Dockerfile",
            f"FROM --platform=linux/amd64 python@sha256:{DIGEST}\n",
            (MAX_RESULT_SCORE, 0, 1, 0),
        ),
    ],
    ids=[
        "invalid dockerfile",
        "invalid dockerfile sh",
        "empty file",
        "comments only",
        "pinned dockerfile",
        "pinned dockerfile as",
        "non-pinned dockerfile as",
        "non-pinned dockerfile",
        "platform flag",
    ],
)
def test_dockerfile_pinning(pathfn, content, expected):
    assert run(validate_dockerfile_pinned, pathfn, content) == expected


def test_dockerfile_pinning_message():
    dl = DetailLogger()
    validate_dockerfile_pinned("Dockerfile", "FROM python:3.7\n", dl)
    assert dl.details[0].msg == "unpinned dependency detected in Dockerfile: 'python:3.7'"


def test_dockerfile_pinning_bad_from():
    with pytest.raises(InvalidDockerfileError):
        validate_dockerfile_pinned("Dockerfile", "FROM a b\n", DetailLogger())


# Dockerfile downloads.

DOCKERFILE_CURL_SH = (
    "FROM python:3.7\n"
    "RUN curl -s https://example.com/install.sh | sh\n"
    "RUN sudo curl -s https://example.com/a.sh \\\n"
    "    | sudo bash\n"
)

DOCKERFILE_PKG_MANAGERS = (
    "FROM python:3.7\n"
    "RUN pip install requests\n"
    "RUN python3 -m pip install requests\n"
    "RUN go get github.com/example/tool\n"
    f"RUN go install github.com/example/tool@{ACTION_SHA}\n"
    "RUN pip install ./dist/tool.whl\n"
)


@pytest.mark.parametrize(
    "pathfn, content, expected",
    [
        ("Dockerfile", DOCKERFILE_CURL_SH, (MIN_RESULT_SCORE, 2, 0, 0)),
        ("Dockerfile", "", (MAX_RESULT_SCORE, 0, 1, 0)),
        ("script.sh", "#!/bin/sh\ncurl https://example.com/a.sh | sh\n", (MAX_RESULT_SCORE, 0, 1, 0)),
        ("Dockerfile", "# only a comment\n", (MAX_RESULT_SCORE, 0, 1, 0)),
        (
            "Dockerfile",
            "FROM debian\nRUN wget https://example.com/file.tar.gz\n",
            (MAX_RESULT_SCORE, 0, 1, 0),
        ),
        (
            "Dockerfile",
            "FROM debian\nRUN wget -O /tmp/install.sh https://example.com/install.sh\nRUN bash /tmp/install.sh\n",
            (MIN_RESULT_SCORE, 1, 0, 0),
        ),
        (
            "Dockerfile",
            "FROM debian\nRUN bash <(curl -s https://example.com/a.sh)\n",
            (MIN_RESULT_SCORE, 1, 0, 0),
        ),
        ("Dockerfile", DOCKERFILE_PKG_MANAGERS, (MIN_RESULT_SCORE, 3, 0, 0)),
        (
            "Dockerfile",
            "FROM debian\nRUN python3 -c 'import sys; print(sys.version)' && curl https://example.com/a.sh | bash\n",
            (MIN_RESULT_SCORE, 1, 0, 0),
        ),
        (
            "Dockerfile",
            'FROM debian\nRUN sh -c "curl https://example.com/a.sh | bash"\n',
            (MIN_RESULT_SCORE, 1, 0, 0),
        ),
    ],
    ids=[
        "curl | sh",
        "empty file",
        "invalid file sh",
        "comments only",
        "wget no exec",
        "wget file",
        "proc substitution",
        "pkg managers",
        "download with some python",
        "nested sh -c",
    ],
)
def test_dockerfile_script_download(pathfn, content, expected):
    assert run(validate_dockerfile_downloads, pathfn, content) == expected


def test_dockerfile_download_message():
    dl = DetailLogger()
    validate_dockerfile_downloads("Dockerfile", "FROM x\nRUN curl https://example.com/a.sh | bash\n", dl)
    assert dl.details[0].msg == (
        "insecure (unpinned) download detected in Dockerfile: 'curl https://example.com/a.sh | bash'"
    )


def test_dockerfile_download_empty_run():
    with pytest.raises(InvalidDockerfileError):
        validate_dockerfile_downloads("Dockerfile", "FROM x\nRUN\n", DetailLogger())


def test_dockerfile_download_invalid_shell():
    dl = DetailLogger()
    with pytest.raises(InvalidShellCodeError):
        validate_dockerfile_downloads("Dockerfile", "FROM x\nRUN echo 'unterminated\n", dl)
    assert dl.count(DetailType.DEBUG) == 1


# Shell scripts.

SCRIPT_SH = (
    "#!/bin/sh\n"
    "curl https://example.com/a.sh | sh\n"
    "wget -O /tmp/b.sh https://example.com/b.sh\n"
    "sh /tmp/b.sh\n"
)


@pytest.mark.parametrize(
    "pathfn, content, expected",
    [
        ("install", SCRIPT_SH, (MIN_RESULT_SCORE, 2, 0, 0)),
        ("script-empty.sh", "", (MAX_RESULT_SCORE, 0, 1, 0)),
        ("script-comments.sh", "#!/bin/bash\n# a comment\n", (MAX_RESULT_SCORE, 0, 1, 0)),
        ("script-bash", SCRIPT_SH.replace("#!/bin/sh", "#!/bin/bash"), (MIN_RESULT_SCORE, 2, 0, 0)),
        ("tool.py", "#!/usr/bin/env python\nimport os\n", (MAX_RESULT_SCORE, 0, 1, 0)),
        (
            "script-pkg-managers",
            "#!/bin/bash\npip install requests\ngo get github.com/example/tool\n",
            (MIN_RESULT_SCORE, 2, 0, 0),
        ),
    ],
    ids=["sh script", "empty file", "comments", "bash script", "not a shell script", "pkg managers"],
)
def test_shell_script_download(pathfn, content, expected):
    assert run(validate_shell_script_downloads, pathfn, content) == expected


# Workflow run scripts.

WORKFLOW_CURL_DEFAULT = """jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - run: curl -s https://example.com/install.sh | bash
"""

WORKFLOW_CURL_DEFAULT_SHELL = """jobs:
  build:
    runs-on: ubuntu-latest
    defaults:
      run:
        shell: bash
    steps:
      - run: curl -s https://example.com/install.sh | bash
"""

WORKFLOW_WGET_ACROSS_STEPS = """jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - run: wget -O /tmp/a.sh https://example.com/a.sh
      - run: bash /tmp/a.sh
      - run: /tmp/a.sh
"""

WORKFLOW_PWSH = """jobs:
  build:
    runs-on: windows-latest
    steps:
      - shell: pwsh
        run: curl -s https://example.com/install.sh | bash
"""

WORKFLOW_GITHUB_VAR = """jobs:
  build:
    steps:
      - run: "echo ${{ github.ref }}"
"""


@pytest.mark.parametrize(
    "content, expected",
    [
        (WORKFLOW_CURL_DEFAULT, (MIN_RESULT_SCORE, 1, 0, 0)),
        (WORKFLOW_CURL_DEFAULT_SHELL, (MIN_RESULT_SCORE, 1, 0, 0)),
        (WORKFLOW_WGET_ACROSS_STEPS, (MIN_RESULT_SCORE, 2, 0, 0)),
        (WORKFLOW_PWSH, (MAX_RESULT_SCORE, 0, 1, 0)),
        (WORKFLOW_GITHUB_VAR, (MAX_RESULT_SCORE, 0, 1, 0)),
        ("# nothing here\n", (MAX_RESULT_SCORE, 0, 1, 0)),
    ],
    ids=[
        "workflow curl default",
        "workflow curl no default",
        "wget across steps",
        "unsupported shell",
        "github variable",
        "comments only",
    ],
)
def test_github_workflow_run_download(content, expected):
    assert run(validate_workflow_script_downloads, ".github/workflows/ci.yml", content) == expected


def test_workflow_run_invalid_yaml():
    with pytest.raises(InvalidYamlError):
        validate_workflow_script_downloads("ci.yml", "jobs: [unclosed\n", DetailLogger())


# Dockerfile parsing.


def test_parse_dockerfile_instructions():
    content = (
        "FROM python:3.7 AS build\n"
        "RUN apt-get update && \\\n"
        "    apt-get install -y curl\n"
        "# comment\n"
        'CMD ["python", "-V"]\n'
    )
    assert parse_dockerfile(content) == [
        ("from", ["python:3.7", "AS", "build"]),
        ("run", ["apt-get update && " + "    apt-get install -y curl"]),
        ("cmd", ["python", "-V"]),
    ]


def test_parse_dockerfile_comment_inside_continuation():
    assert parse_dockerfile(b"RUN a \\\n# note\n b\n") == [("run", ["a  b"])]


def test_parse_dockerfile_escape_directive():
    content = "# escape=`\nFROM x\nRUN echo a `\n  b\n"
    assert parse_dockerfile(content) == [("from", ["x"]), ("run", ["echo a   b"])]


def test_parse_dockerfile_strips_flags():
    assert parse_dockerfile("RUN --mount=type=cache,target=/root make\n") == [("run", ["make"])]


def test_parse_dockerfile_bad_escape():
    with pytest.raises(InvalidDockerfileError):
        parse_dockerfile("# escape=x\nFROM x\n")


# Lock files.


@pytest.mark.parametrize(
    "name, expected",
    [
        ("go.sum", True),
        ("Cargo.lock", True),
        ("vendor/", True),
        ("package-lock.json", True),
        ("Pipfile.lock", True),
        ("requirements.txt", False),
        ("go.mod", False),
    ],
)
def test_is_lock_file(name, expected):
    dl = DetailLogger()
    assert is_lock_file(name, dl) is expected
    assert dl.count(DetailType.INFO) == (1 if expected else 0)


def test_lock_file_message():
    dl = DetailLogger()
    is_lock_file("go.sum", dl)
    assert dl.details[0].msg == "go lock file detected: go.sum"


def test_lock_file_score_found():
    dl = DetailLogger()
    score = package_manager_lock_file_score(["README.md", "package-lock.json", "yarn.lock"], dl)
    assert score == MAX_RESULT_SCORE
    assert dl.count(DetailType.INFO) == 1
    assert dl.count(DetailType.WARN) == 0


def test_lock_file_score_missing():
    dl = DetailLogger()
    assert package_manager_lock_file_score(["README.md", "main.go"], dl) == INCONCLUSIVE_RESULT_SCORE
    assert [d.msg for d in dl.details] == ["no lock files detected for a package manager"]