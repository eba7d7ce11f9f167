# scorecard

Security health checks for source repositories. The package has two parts:

- `scorecard.clients` and `scorecard.githubrepo` make up a repository client
  for GitHub. The client downloads and unpacks the repository tarball. It also
  collects merged pull requests, commits, releases, the default branch and
  contributors, and it runs code searches.
- `scorecard.checks` holds the file analysis behind a *Pinned-Dependencies*
  check. It finds base images in Dockerfiles that are not pinned by digest,
  actions in GitHub workflows that are not pinned by commit hash, and
  `curl | bash`-style downloads in shell scripts, Dockerfile `RUN` lines and
  workflow `run` steps. It also flags `go get` / `go install` and
  `pip install` invocations that are not pinned.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install .[test]
```

## Checking files for unpinned dependencies

Every validator in `scorecard.checks.pinned_dependencies` takes a path, the
file content (bytes or str) and a `DetailLogger`. It returns `10` when nothing
unpinned was found and `0` otherwise. Findings go to the logger as warnings.
A clean result adds one info message.

```python
from scorecard.checks.details import DetailLogger, DetailType
from scorecard.checks.pinned_dependencies import (
    validate_dockerfile_downloads,
    validate_dockerfile_pinned,
    validate_shell_script_downloads,
    validate_workflow_actions_pinned,
    validate_workflow_script_downloads,
)

dl = DetailLogger()
with open("Dockerfile", "rb") as fh:
    score = validate_dockerfile_pinned("Dockerfile", fh.read(), dl)

print(score, dl.count(DetailType.WARN))
for detail in dl.details:
    print(detail.type.name, detail.msg)
```

Some content cannot be read. A Dockerfile that cannot be interpreted raises
`InvalidDockerfileError`. A workflow that is not YAML of the expected shape
raises `InvalidYamlError`. Shell code that cannot be parsed raises
`InvalidShellCodeError`, and the parse error is logged at debug level first.
All of these are subclasses of `scorecard.clients.InternalError`.

To check a shell script directly:

```python
from scorecard.checks.shell_download import validate_shell_file

ok = validate_shell_file("install.sh", b"curl -s https://example.com/x.sh | bash\n", dl)
# ok is False and dl holds one warning
```

`scorecard.checks.shell_syntax` contains the shell parser these checks use:
`parse`, `walk` and `node_to_string`.

To check whether a list of file names includes a package manager lock file or
a vendoring directory:

```python
from scorecard.checks.pinned_dependencies import package_manager_lock_file_score

package_manager_lock_file_score(["go.mod", "go.sum"], dl)  # 10
package_manager_lock_file_score(["setup.py"], dl)           # -1 (inconclusive)
```

## Accessing a GitHub repository

```python
import requests
from scorecard.clients import SearchRequest
from scorecard.githubrepo.client import create_github_repo_client
from scorecard.githubrepo.transport import TokenUsage, make_github_transport

usage = TokenUsage()
session = requests.Session()
session.mount("https://", make_github_transport(["token"], usage))

with create_github_repo_client(session) as client:
    client.init_repo("owner", "repo")
    print(client.url())
    print(client.list_files(lambda name: name.endswith(".md")))
    print(client.search(SearchRequest(query="github/codeql-action", path="/.github/workflows")))
```

The transport rotates through the given tokens and sends each one as a
bearer `Authorization` header. For every response that carries rate-limit
headers, it records the remaining call count, which you can read with
`usage.remaining(token_index, resource_type)`.

If the repository cannot be reached, `init_repo` raises
`RepoUnavailableError`. Other API failures raise `InternalError`. When the
tarball is missing or corrupt, the client logs a warning and continues with
no files.

## What this package does not do

There is no command-line program. Nothing here runs the checks across a whole
repository or combines the per-file scores into one check result. The
validators work on one file's content at a time, and
`package_manager_lock_file_score` works on a list of names you supply. The
package also has no checks for SAST tools, security policies, signed releases
or known vulnerabilities.

## Running the tests

```
pytest
```